"""
Deterministic lead signals.

Rule-based sub-scores used when no LLM is configured. Same contract as
the LLM assessment: five 0-10 components plus a capture suggestion.
"""

import logging
import re
from dataclasses import asdict, dataclass, field
from typing import Any, Dict, List, Sequence

from premium.rules import DEFAULT_RULES, KeywordRules

from .intent_classifier import CustomerAnalysis, Intent, LeadReadiness, Urgency

logger = logging.getLogger(__name__)


@dataclass
class SubScores:
    """The five weighted components of a lead score, each 0-10."""
    purchase_intent: float = 0.0
    conversation_progression: float = 0.0
    negative_intent_absence: float = 10.0
    engagement_quality: float = 0.0
    urgency_timeline: float = 0.0

    def clamped(self) -> "SubScores":
        return SubScores(**{k: max(0.0, min(10.0, float(v))) for k, v in asdict(self).items()})

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass
class SignalResult:
    """Rule-based sub-scores with supporting signals."""
    sub_scores: SubScores
    suggested_capture: bool = False
    confidence: float = 0.5
    positive_signals: List[str] = field(default_factory=list)
    risk_factors: List[str] = field(default_factory=list)


class SignalScorer:
    """
    Scores a customer turn from the rule-based analysis.

    Purchase intent:  base by intent, plus readiness and buying signals
    Progression:      2 points per completed exchange, 2 more once quoted
    Negative absence: 10 minus objection and complaint penalties
    Engagement:       message substance, questions, shared contact details
    Urgency:          high 9, medium 5, low 2
    """

    INTENT_BASE = {
        Intent.PURCHASE: 8.0,
        Intent.PREMIUM_QUOTE: 6.0,
        Intent.HUMAN_AGENT: 6.0,
        Intent.COMPARISON: 5.0,
        Intent.INFORMATION: 3.0,
        Intent.CLAIM: 2.0,
        Intent.OBJECTION: 2.0,
        Intent.COMPLAINT: 1.0,
        Intent.GREETING: 1.0,
    }

    READINESS_BONUS = {
        LeadReadiness.HOT_LEAD: 2.0,
        LeadReadiness.READY: 1.0,
    }

    URGENCY_SCORES = {
        Urgency.HIGH: 9.0,
        Urgency.MEDIUM: 5.0,
        Urgency.LOW: 2.0,
    }

    OBJECTION_PENALTY = 3.0
    COMPLAINT_PENALTY = 4.0

    def __init__(self, rules: KeywordRules = DEFAULT_RULES):
        self.rules = rules

    def score(
        self,
        message: str,
        analysis: CustomerAnalysis,
        history: Sequence[Any],
        exchange_count: int,
    ) -> SignalResult:
        """
        Compute rule-based sub-scores for a customer turn.

        Args:
            message: Latest customer message
            analysis: Rule-based or LLM customer analysis
            history: Conversation history
            exchange_count: Completed exchanges before this message

        Returns:
            SignalResult
        """
        positive: List[str] = []
        risks: List[str] = []

        purchase_intent = self.INTENT_BASE.get(analysis.primary_intent, 3.0)
        purchase_intent += self.READINESS_BONUS.get(analysis.lead_readiness, 0.0)
        purchase_intent += min(0.5 * len(analysis.buying_signals), 2.0)
        if analysis.primary_intent in (Intent.PURCHASE, Intent.PREMIUM_QUOTE):
            positive.append(f"Intent: {analysis.primary_intent.value}")
        positive.extend(f"Buying signal: {s}" for s in analysis.buying_signals)

        quoted = self._has_quote(history)
        progression = min(2.0 * exchange_count, 8.0) + (2.0 if quoted else 0.0)
        if quoted:
            positive.append("Premium quote already provided")

        negative_absence = 10.0 - self.OBJECTION_PENALTY * len(analysis.objections)
        if analysis.primary_intent == Intent.COMPLAINT:
            negative_absence -= self.COMPLAINT_PENALTY
            risks.append("Customer complaint")
        if analysis.primary_intent == Intent.OBJECTION and not analysis.objections:
            negative_absence -= self.OBJECTION_PENALTY
        risks.extend(f"Objection: {o}" for o in analysis.objections)

        engagement = self._engagement(message, analysis)
        urgency = self.URGENCY_SCORES.get(analysis.urgency, 5.0)
        if analysis.urgency == Urgency.HIGH:
            positive.append("Urgent need")

        if exchange_count == 0:
            risks.append("First message in conversation")

        suggested = (
            analysis.lead_readiness in (LeadReadiness.READY, LeadReadiness.HOT_LEAD)
            or analysis.primary_intent in (Intent.PURCHASE, Intent.HUMAN_AGENT)
            or "provided_contact" in analysis.buying_signals
        ) and not analysis.objections

        sub_scores = SubScores(
            purchase_intent=purchase_intent,
            conversation_progression=progression,
            negative_intent_absence=negative_absence,
            engagement_quality=engagement,
            urgency_timeline=urgency,
        ).clamped()

        return SignalResult(
            sub_scores=sub_scores,
            suggested_capture=suggested,
            confidence=min(0.4 + 0.1 * exchange_count, 0.7),
            positive_signals=positive,
            risk_factors=risks,
        )

    def _engagement(self, message: str, analysis: CustomerAnalysis) -> float:
        words = len(re.findall(r"\w+", message or ""))
        if words < 3:
            engagement = 2.0
        elif words < 8:
            engagement = 4.0
        elif words < 20:
            engagement = 6.0
        else:
            engagement = 7.0
        if "?" in (message or ""):
            engagement += 1.0
        if "provided_contact" in analysis.buying_signals:
            engagement += 2.0
        if "shared_personal_details" in analysis.buying_signals:
            engagement += 1.0
        return engagement

    def _has_quote(self, history: Sequence[Any]) -> bool:
        for item in history:
            role = item.get("role") if isinstance(item, dict) else getattr(item, "role", None)
            content = item.get("content", "") if isinstance(item, dict) else getattr(item, "content", "")
            if role == "assistant" and any(m in content.lower() for m in self.rules.premium_markers):
                return True
        return False
