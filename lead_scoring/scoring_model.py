"""
Lead Capture Scoring for the Insurance Sales Assistant.

Combines five sub-scores into a 0-10 lead score and decides whether the
conversation should be handed to a human sales follow-up. The threshold
depends on how deep the conversation is, and is always re-checked here
regardless of what an upstream model suggested.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .intent_classifier import CustomerAnalysis
from .signal_scorer import SignalScorer, SubScores

logger = logging.getLogger(__name__)


@dataclass
class LeadAnalysisResult:
    """Lead capture decision for one customer turn."""
    should_capture: bool
    confidence: float
    score: float  # 0-10
    threshold: float
    reason: str
    risk_factors: List[str] = field(default_factory=list)
    positive_signals: List[str] = field(default_factory=list)
    sub_scores: Optional[SubScores] = None
    degraded: bool = False
    timestamp: datetime = field(default_factory=datetime.utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "should_capture": self.should_capture,
            "confidence": self.confidence,
            "score": self.score,
            "threshold": self.threshold,
            "reason": self.reason,
            "risk_factors": self.risk_factors,
            "positive_signals": self.positive_signals,
            "sub_scores": self.sub_scores.to_dict() if self.sub_scores else None,
            "degraded": self.degraded,
            "timestamp": self.timestamp.isoformat(),
        }


class LeadCaptureAssessment(BaseModel):
    """Schema the LLM must return for a lead capture assessment."""

    model_config = ConfigDict(extra="ignore")

    purchase_intent_strength: float = Field(ge=0, le=10)
    conversation_progression: float = Field(ge=0, le=10)
    negative_intent_absence: float = Field(ge=0, le=10)
    engagement_quality: float = Field(ge=0, le=10)
    urgency_timeline: float = Field(ge=0, le=10)
    should_capture: bool = False
    confidence: float = Field(default=0.5, ge=0, le=1)
    reasoning: str = ""
    risk_factors: List[str] = Field(default_factory=list)
    positive_signals: List[str] = Field(default_factory=list)

    @field_validator(
        "purchase_intent_strength", "conversation_progression", "negative_intent_absence",
        "engagement_quality", "urgency_timeline", mode="before",
    )
    @classmethod
    def _clamp_score(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return _clamp(float(value), 0.0, 10.0)
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> Any:
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return _clamp(float(value), 0.0, 1.0)
        return value

    def sub_scores(self) -> SubScores:
        return SubScores(
            purchase_intent=self.purchase_intent_strength,
            conversation_progression=self.conversation_progression,
            negative_intent_absence=self.negative_intent_absence,
            engagement_quality=self.engagement_quality,
            urgency_timeline=self.urgency_timeline,
        )


class LeadCaptureScorer:
    """
    Scores conversations for lead capture.

    Weighted model (0-10):
    - Purchase intent strength: 30%
    - Conversation progression: 25%
    - Negative intent absence:  20%
    - Engagement quality:       15%
    - Urgency / timeline:       10%

    Thresholds by exchange count (completed user+assistant pairs):
    - 0 exchanges:  score >= 8.5
    - 1 exchange:   score >= 8.0
    - 2 or more:    score >= 6.5

    The threshold is necessary, not sufficient: capture also requires
    the underlying analysis to recommend it.
    """

    WEIGHTS = {
        "purchase_intent": 0.30,
        "conversation_progression": 0.25,
        "negative_intent_absence": 0.20,
        "engagement_quality": 0.15,
        "urgency_timeline": 0.10,
    }

    FIRST_MESSAGE_THRESHOLD = 8.5
    EARLY_CONVERSATION_THRESHOLD = 8.0
    ESTABLISHED_THRESHOLD = 6.5

    DEGRADED_CONFIDENCE = 0.1
    DEGRADED_RISK_FACTOR = "AI analysis unavailable"

    SYSTEM_PROMPT = (
        "You are a lead qualification analyst for an insurance sales team in Ghana. "
        "Assess whether this conversation is ready for a human sales follow-up. "
        "Be conservative: early conversations and generic greetings are rarely ready."
    )

    def __init__(
        self,
        analyzer: Optional[Any] = None,
        signal_scorer: Optional[SignalScorer] = None,
        first_message_threshold: float = FIRST_MESSAGE_THRESHOLD,
        early_conversation_threshold: float = EARLY_CONVERSATION_THRESHOLD,
        established_threshold: float = ESTABLISHED_THRESHOLD,
    ):
        """
        Initialize the lead capture scorer.

        Args:
            analyzer: Optional StructuredAnalyzer; rule-based scoring is used without one
            signal_scorer: Rule-based sub-score model
            first_message_threshold: Threshold with no completed exchange
            early_conversation_threshold: Threshold with one completed exchange
            established_threshold: Threshold from the second exchange on
        """
        self.analyzer = analyzer
        self.signal_scorer = signal_scorer or SignalScorer()
        self.first_message_threshold = first_message_threshold
        self.early_conversation_threshold = early_conversation_threshold
        self.established_threshold = established_threshold

    @property
    def uses_llm(self) -> bool:
        return self.analyzer is not None and getattr(self.analyzer, "enabled", False)

    def threshold_for(self, exchange_count: int) -> float:
        """Capture threshold for a conversation depth."""
        if exchange_count <= 0:
            return self.first_message_threshold
        if exchange_count < 2:
            return self.early_conversation_threshold
        return self.established_threshold

    def weighted_score(self, sub_scores: SubScores) -> float:
        """Weighted sum of clamped sub-scores, rounded to two decimals."""
        values = sub_scores.clamped().to_dict()
        total = sum(values[name] * weight for name, weight in self.WEIGHTS.items())
        return round(_clamp(total, 0.0, 10.0), 2)

    def decide(
        self,
        sub_scores: SubScores,
        exchange_count: int,
        suggested_capture: bool,
        confidence: float = 0.5,
        positive_signals: Optional[List[str]] = None,
        risk_factors: Optional[List[str]] = None,
        reasoning: str = "",
    ) -> LeadAnalysisResult:
        """
        Apply the weighted model and the depth-aware threshold.

        Args:
            sub_scores: Component scores
            exchange_count: Completed exchanges before this message
            suggested_capture: Whether the analysis recommended capture
            confidence: Confidence of the underlying analysis
            positive_signals: Signals supporting capture
            risk_factors: Signals against capture
            reasoning: Optional explanation from the analysis

        Returns:
            LeadAnalysisResult
        """
        score = self.weighted_score(sub_scores)
        threshold = self.threshold_for(exchange_count)
        meets_threshold = score >= threshold
        should_capture = bool(suggested_capture and meets_threshold)

        if should_capture:
            reason = f"Score {score:.2f} meets threshold {threshold:.1f} and analysis recommends capture"
        elif meets_threshold:
            reason = f"Score {score:.2f} meets threshold {threshold:.1f} but analysis does not recommend capture"
        else:
            reason = f"Score {score:.2f} is below threshold {threshold:.1f}"
            if suggested_capture:
                reason += "; capture suggestion overridden"
        if reasoning:
            reason += f". {reasoning}"

        return LeadAnalysisResult(
            should_capture=should_capture,
            confidence=_clamp(confidence, 0.0, 1.0),
            score=score,
            threshold=threshold,
            reason=reason,
            risk_factors=list(risk_factors or []),
            positive_signals=list(positive_signals or []),
            sub_scores=sub_scores.clamped(),
        )

    def degraded_result(self, exchange_count: int, error: str) -> LeadAnalysisResult:
        """Conservative result used whenever scoring cannot complete."""
        return LeadAnalysisResult(
            should_capture=False,
            confidence=self.DEGRADED_CONFIDENCE,
            score=0.0,
            threshold=self.threshold_for(exchange_count),
            reason=f"Lead analysis degraded, capture withheld: {error}",
            risk_factors=[self.DEGRADED_RISK_FACTOR],
            degraded=True,
        )

    async def score(
        self,
        message: str,
        analysis: CustomerAnalysis,
        history: Sequence[Any],
        exchange_count: int,
    ) -> LeadAnalysisResult:
        """
        Score a customer turn for lead capture. Never raises.

        Args:
            message: Latest customer message
            analysis: Customer analysis of that message
            history: Conversation history including the message
            exchange_count: Completed exchanges before this message

        Returns:
            LeadAnalysisResult
        """
        try:
            if self.uses_llm:
                assessment = await self.analyzer.run(
                    self.SYSTEM_PROMPT,
                    self._build_assessment_prompt(message, analysis, history, exchange_count),
                    LeadCaptureAssessment,
                )
                result = self.decide(
                    assessment.sub_scores(),
                    exchange_count,
                    assessment.should_capture,
                    confidence=assessment.confidence,
                    positive_signals=assessment.positive_signals,
                    risk_factors=assessment.risk_factors,
                    reasoning=assessment.reasoning,
                )
            else:
                signals = self.signal_scorer.score(message, analysis, history, exchange_count)
                result = self.decide(
                    signals.sub_scores,
                    exchange_count,
                    signals.suggested_capture,
                    confidence=signals.confidence,
                    positive_signals=signals.positive_signals,
                    risk_factors=signals.risk_factors,
                )
        except Exception as e:
            logger.warning(f"Lead scoring failed, withholding capture: {e}")
            return self.degraded_result(exchange_count, str(e))

        logger.info(
            f"Lead score {result.score:.2f} (threshold {result.threshold:.1f}, "
            f"exchanges {exchange_count}) capture={result.should_capture}"
        )
        return result

    def _build_assessment_prompt(
        self,
        message: str,
        analysis: CustomerAnalysis,
        history: Sequence[Any],
        exchange_count: int,
    ) -> str:
        """Build the lead capture assessment prompt."""
        transcript = []
        for item in list(history)[-10:]:
            role = item.get("role") if isinstance(item, dict) else getattr(item, "role", "")
            content = item.get("content") if isinstance(item, dict) else getattr(item, "content", "")
            transcript.append(f"{'Customer' if role == 'user' else 'Assistant'}: {content}")

        return f"""Conversation so far ({exchange_count} completed exchanges):
{chr(10).join(transcript)}

Latest customer message: "{message}"

Customer analysis: {json.dumps(analysis.model_dump(mode="json"))}

Score each dimension from 0 to 10 and return JSON:
- purchase_intent_strength
- conversation_progression
- negative_intent_absence (10 = no objections or negativity)
- engagement_quality
- urgency_timeline
- should_capture (true only if a sales agent should follow up now)
- confidence (0 to 1)
- reasoning (one sentence)
- risk_factors (list of strings)
- positive_signals (list of strings)"""


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, float(value)))
