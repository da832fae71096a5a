"""
Lead Store for the Insurance Sales Assistant.

Keeps captured leads for the lifetime of the process. Leads are created by
the orchestrator when the capture scorer says so, or directly through the
leads API, and are updated as sales follow up. Leads are never deleted.
"""

import asyncio
import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class LeadStatus(str, Enum):
    """Lead status in the sales pipeline."""
    NEW = "new"
    CONTACTED = "contacted"
    QUALIFIED = "qualified"
    CONVERTED = "converted"
    LOST = "lost"


class UrgencyLevel(str, Enum):
    """How soon sales should follow up."""
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


@dataclass
class Lead:
    """Lead data structure."""

    # Core identifiers
    lead_id: str
    user_id: Optional[str] = None

    # Contact information
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    # Qualification
    source: str = "chat"
    interests: List[str] = field(default_factory=list)
    urgency_level: UrgencyLevel = UrgencyLevel.MEDIUM
    score: int = 0  # 0-100
    status: LeadStatus = LeadStatus.NEW

    # Routing
    next_steps: List[str] = field(default_factory=list)
    metadata: Dict[str, Any] = field(default_factory=dict)

    created_at: datetime = field(default_factory=datetime.utcnow)
    updated_at: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for API responses."""
        return {
            "lead_id": self.lead_id,
            "user_id": self.user_id,
            "name": self.name,
            "email": self.email,
            "phone": self.phone,
            "source": self.source,
            "interests": list(self.interests),
            "urgency_level": self.urgency_level.value,
            "score": self.score,
            "status": self.status.value,
            "next_steps": list(self.next_steps),
            "metadata": _json_safe(self.metadata),
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }


@dataclass
class CaptureLeadData:
    """Data handed to the store when a conversation is captured."""
    user_id: str
    source: str
    product_interest: Optional[str]
    score: float  # lead analysis score, 0-10
    contact_info: Dict[str, Any] = field(default_factory=dict)
    conversation_context: Dict[str, Any] = field(default_factory=dict)


class InMemoryLeadStore:
    """
    Process-wide lead store.

    Capture scores arrive on the 0-10 analysis scale and are stored on the
    0-100 lead scale. Directly created leads are scored from contact
    completeness, interests, urgency and source quality.
    """

    UPDATABLE_FIELDS = {
        "name", "email", "phone", "source", "interests",
        "urgency_level", "score", "status", "next_steps", "metadata",
    }

    SOURCE_SCORES = {
        "referral": 25,
        "chat": 15,
        "whatsapp": 15,
        "qr_code": 15,
        "web_form": 12,
        "social_media": 10,
    }

    INTEREST_STEPS = {
        "auto": "Prepare auto insurance materials",
        "health": "Prepare health insurance comparison",
        "life": "Prepare life insurance information",
        "business": "Prepare business insurance proposal",
    }

    def __init__(self):
        self._leads: Dict[str, Lead] = {}
        self._lock = asyncio.Lock()

    async def capture(self, data: CaptureLeadData) -> Lead:
        """
        Capture a lead from a qualified conversation.

        Args:
            data: Capture data from the orchestrator

        Returns:
            The stored Lead
        """
        urgency = self.determine_urgency(data.score)
        interests = [data.product_interest] if data.product_interest else []
        contact = data.contact_info or {}

        lead = Lead(
            lead_id=self._generate_lead_id(),
            user_id=data.user_id,
            name=contact.get("name"),
            email=contact.get("email"),
            phone=contact.get("phone"),
            source=data.source,
            interests=interests,
            urgency_level=urgency,
            score=int(round(_clamp(data.score * 10, 0, 100))),
            next_steps=self.generate_next_steps(urgency, interests),
            metadata={
                "user_id": data.user_id,
                "conversation_context": dict(data.conversation_context),
                "captured_at": datetime.utcnow().isoformat(),
            },
        )

        async with self._lock:
            self._leads[lead.lead_id] = lead

        logger.info(f"Lead captured: {lead.lead_id} for user {data.user_id} (score {lead.score})")
        return lead

    async def create_lead(self, data: Dict[str, Any]) -> Lead:
        """Create a lead from a form or API submission."""
        urgency = _parse_enum(UrgencyLevel, data.get("urgency_level"), UrgencyLevel.MEDIUM)
        interests = list(data.get("interests") or [])

        lead = Lead(
            lead_id=self._generate_lead_id(),
            user_id=data.get("user_id"),
            name=data.get("name"),
            email=data.get("email"),
            phone=data.get("phone"),
            source=data.get("source") or "web_form",
            interests=interests,
            urgency_level=urgency,
            score=self.calculate_lead_score(data),
            next_steps=self.generate_next_steps(urgency, interests),
            metadata=dict(data.get("metadata") or {}),
        )

        async with self._lock:
            self._leads[lead.lead_id] = lead

        logger.info(f"New lead created: {lead.lead_id}")
        return lead

    async def get_lead(self, lead_id: str) -> Optional[Lead]:
        return self._leads.get(lead_id)

    async def update_lead(self, lead_id: str, updates: Dict[str, Any]) -> Optional[Lead]:
        """
        Apply field updates to a lead.

        Unknown fields are ignored. Returns None when the lead does not exist.
        """
        async with self._lock:
            lead = self._leads.get(lead_id)
            if lead is None:
                return None

            for key, value in updates.items():
                if key not in self.UPDATABLE_FIELDS or value is None:
                    continue
                if key == "status":
                    value = LeadStatus(value)
                elif key == "urgency_level":
                    value = UrgencyLevel(value)
                elif key == "score":
                    value = int(round(_clamp(float(value), 0, 100)))
                setattr(lead, key, value)

            lead.updated_at = datetime.utcnow()

        logger.info(f"Lead updated: {lead_id} ({', '.join(sorted(updates))})")
        return lead

    async def get_leads(
        self,
        status: Optional[str] = None,
        source: Optional[str] = None,
        min_score: Optional[float] = None,
    ) -> List[Lead]:
        """Leads matching the filters, highest score first, newest first on ties."""
        leads = list(self._leads.values())

        if status:
            leads = [lead for lead in leads if lead.status.value == status]
        if source:
            leads = [lead for lead in leads if lead.source == source]
        if min_score is not None:
            leads = [lead for lead in leads if lead.score >= min_score]

        leads.sort(key=lambda lead: (lead.score, lead.created_at), reverse=True)
        return leads

    def get_stats(self) -> Dict[str, Any]:
        """Get lead statistics."""
        leads = list(self._leads.values())
        return {
            "total": len(leads),
            "by_status": {
                status.value: sum(1 for lead in leads if lead.status == status)
                for status in LeadStatus
            },
            "average_score": round(sum(lead.score for lead in leads) / len(leads), 2) if leads else 0.0,
            "high_priority_leads": sum(1 for lead in leads if lead.urgency_level == UrgencyLevel.HIGH),
        }

    @staticmethod
    def determine_urgency(score: float) -> UrgencyLevel:
        """Urgency from a 0-10 analysis score."""
        if score >= 8.5:
            return UrgencyLevel.HIGH
        if score >= 6.5:
            return UrgencyLevel.MEDIUM
        return UrgencyLevel.LOW

    def generate_next_steps(self, urgency: UrgencyLevel, interests: List[str]) -> List[str]:
        if urgency == UrgencyLevel.HIGH:
            steps = ["Contact within 1 hour", "Prepare personalized quote"]
        elif urgency == UrgencyLevel.MEDIUM:
            steps = ["Contact within 24 hours", "Send educational content"]
        else:
            steps = ["Add to nurture sequence", "Contact within 3 days"]

        for interest in interests:
            step = self.INTEREST_STEPS.get(interest)
            if step and step not in steps:
                steps.append(step)
        return steps

    def calculate_lead_score(self, data: Dict[str, Any]) -> int:
        """Score a directly created lead on the 0-100 scale."""
        score = 0
        if data.get("email"):
            score += 20
        if data.get("phone"):
            score += 25
        if data.get("name"):
            score += 15
        if data.get("interests"):
            score += 20

        urgency = data.get("urgency_level")
        if urgency == UrgencyLevel.HIGH.value:
            score += 15
        elif urgency == UrgencyLevel.MEDIUM.value:
            score += 10

        score += self.SOURCE_SCORES.get(data.get("source") or "web_form", 5)
        return int(_clamp(score, 0, 100))

    def _generate_lead_id(self) -> str:
        return f"lead_{uuid.uuid4().hex[:12]}"


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def _parse_enum(enum_cls, value, default):
    if value is None:
        return default
    try:
        return enum_cls(value)
    except ValueError:
        logger.warning(f"Ignoring unknown {enum_cls.__name__} value: {value}")
        return default


def _json_safe(value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_json_safe(v) for v in value]
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value
