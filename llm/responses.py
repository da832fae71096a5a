"""
Response envelope for the conversation orchestrator.

Every reply carries exactly one payload variant chosen by the branch that
produced it: clarification, quote, follow_up, generic or error.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union


class ResponseKind(str, Enum):
    """Which branch produced the reply."""
    CLARIFICATION = "clarification"
    QUOTE = "quote"
    FOLLOW_UP = "follow_up"
    GENERIC = "generic"
    ERROR = "error"


@dataclass
class ClarificationPayload:
    """More information is needed before a premium can be calculated."""
    insurance_type: Optional[str]
    missing_fields: List[str] = field(default_factory=list)
    known_parameters: Dict[str, Any] = field(default_factory=dict)

    kind = ResponseKind.CLARIFICATION


@dataclass
class QuotePayload:
    """A calculated premium."""
    quote: Dict[str, Any]
    adjustments: List[Dict[str, Any]] = field(default_factory=list)

    kind = ResponseKind.QUOTE


@dataclass
class FollowUpPayload:
    """Reaction to a previously issued quote."""
    action: str  # recalculate, explain_coverage, apply, disambiguate
    quote: Optional[Dict[str, Any]] = None
    previous_coverage: Optional[str] = None

    kind = ResponseKind.FOLLOW_UP


@dataclass
class GenericPayload:
    """Knowledge-grounded reply outside the premium flow."""
    sources: List[Dict[str, Any]] = field(default_factory=list)
    knowledge_confidence: float = 0.0
    used_fallback: bool = False

    kind = ResponseKind.GENERIC


@dataclass
class ErrorPayload:
    """Processing failed; the customer got an apology."""
    error_type: str
    suggested_action: str = "immediate_human_transfer"

    kind = ResponseKind.ERROR


Payload = Union[ClarificationPayload, QuotePayload, FollowUpPayload, GenericPayload, ErrorPayload]


@dataclass
class ChatResponse:
    """Response returned by ConversationOrchestrator.process_message."""
    user_id: str
    message: str
    payload: Payload
    confidence: float
    next_state: str
    recommendations: List[Dict[str, Any]] = field(default_factory=list)
    lead_analysis: Optional[Dict[str, Any]] = None
    lead_id: Optional[str] = None
    delivery: Optional[Dict[str, Any]] = None
    processing_time_ms: float = 0.0
    timestamp: str = field(default_factory=lambda: datetime.utcnow().isoformat())

    @property
    def kind(self) -> ResponseKind:
        return self.payload.kind

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        payload = {k: v for k, v in vars(self.payload).items()}
        return {
            "user_id": self.user_id,
            "kind": self.kind.value,
            "message": self.message,
            "confidence": self.confidence,
            "next_state": self.next_state,
            "recommendations": self.recommendations,
            "payload": payload,
            "lead_analysis": self.lead_analysis,
            "lead_id": self.lead_id,
            "delivery": self.delivery,
            "processing_time_ms": self.processing_time_ms,
            "timestamp": self.timestamp,
        }
