"""
Customer Analysis for the Insurance Sales Assistant.

Classifies what the customer wants, how urgent it is and how ready they
are to buy. An LLM analysis is used when available; the keyword rules
below are the deterministic fallback.
"""

import json
import logging
import re
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator

from premium.insurance_classifier import InsuranceTypeClassifier
from premium.rules import DEFAULT_RULES, contains_any

logger = logging.getLogger(__name__)


class Intent(str, Enum):
    """Customer intent categories."""
    PREMIUM_QUOTE = "premium_quote"    # Asking for a price
    PURCHASE = "purchase"              # Wants to buy / apply
    INFORMATION = "information"        # General questions
    COMPARISON = "comparison"          # Comparing products or insurers
    CLAIM = "claim"                    # Claims process
    COMPLAINT = "complaint"
    OBJECTION = "objection"            # Price, trust or timing pushback
    HUMAN_AGENT = "human_agent"        # Asked for a person
    GREETING = "greeting"


class Urgency(str, Enum):
    """How soon the customer needs cover."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class LeadReadiness(str, Enum):
    """Position in the buying journey."""
    EXPLORING = "exploring"
    CONSIDERING = "considering"
    READY = "ready"
    HOT_LEAD = "hot_lead"


# Profile fields an analysis may infer; contact details and lead ids are
# only ever taken from the customer's own words or the caller's hints
INFERABLE_PROFILE_FIELDS = (
    "age", "location", "family_size", "income_range",
    "vehicle_type", "risk_tolerance", "insurance_interest",
)


class CustomerAnalysis(BaseModel):
    """Structured analysis of one customer message."""

    model_config = ConfigDict(extra="ignore")

    primary_intent: Intent = Intent.INFORMATION
    urgency: Urgency = Urgency.MEDIUM
    buying_signals: List[str] = Field(default_factory=list)
    objections: List[str] = Field(default_factory=list)
    emotional_state: str = "neutral"
    lead_readiness: LeadReadiness = LeadReadiness.EXPLORING
    product_interest: List[str] = Field(default_factory=list)
    recommended_next_action: str = "continue_conversation"
    profile_updates: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(default=0.5, ge=0.0, le=1.0)

    @field_validator("primary_intent", "urgency", "lead_readiness", mode="before")
    @classmethod
    def _lowercase_enum(cls, value: Any) -> Any:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> Any:
        if isinstance(value, (int, float)):
            return max(0.0, min(1.0, float(value)))
        return value

    @field_validator("profile_updates", mode="before")
    @classmethod
    def _keep_inferable(cls, value: Any) -> Any:
        if isinstance(value, dict):
            return {
                k: v for k, v in value.items()
                if k in INFERABLE_PROFILE_FIELDS and v not in (None, "", [])
            }
        return value


# Returned when no analysis at all is possible
DEFAULT_ANALYSIS = CustomerAnalysis()

# Confidence ceiling for rule-based results standing in for a failed LLM call
FALLBACK_CONFIDENCE = 0.3


class IntentClassifier:
    """
    Classifies customer messages for the sales pipeline.

    Keyword scoring gives longer phrases more weight; an exact word match
    earns a small bonus. With no keyword hit the message is treated as an
    information request.
    """

    INTENT_KEYWORDS = {
        Intent.PREMIUM_QUOTE: list(DEFAULT_RULES.premium_keywords),
        Intent.PURCHASE: [
            "buy", "apply", "sign up", "purchase", "get covered", "get insured",
            "take the policy", "i want insurance", "want to insure", "enroll",
            "register", "proceed", "ready to start", "start my policy",
        ],
        Intent.COMPARISON: [
            "compare", "comparison", "difference", "vs", "versus",
            "better than", "other insurers", "other companies",
        ],
        Intent.CLAIM: [
            "claim", "file a claim", "make a claim", "claims process", "accident happened",
        ],
        Intent.COMPLAINT: [
            "complaint", "unhappy", "disappointed", "terrible", "bad service", "poor service",
        ],
        Intent.OBJECTION: [
            "too expensive", "can't afford", "cannot afford", "not sure", "think about it",
            "maybe later", "not interested", "no thanks", "don't need", "dont need",
            "scam", "don't trust",
        ],
        Intent.HUMAN_AGENT: [
            "human", "agent", "speak to someone", "talk to someone", "call me",
            "talk to a person", "representative", "real person",
        ],
        Intent.GREETING: [
            "hi", "hello", "hey", "good morning", "good afternoon", "good evening",
        ],
        Intent.INFORMATION: [
            "what is", "how does", "tell me", "explain", "information",
            "benefits", "what does", "covers", "options",
        ],
    }

    URGENCY_KEYWORDS = {
        Urgency.HIGH: [
            "urgent", "urgently", "today", "now", "immediately", "asap",
            "right away", "this week", "expires", "expiring", "expired",
        ],
        Urgency.LOW: [
            "someday", "next year", "just looking", "just browsing",
            "no rush", "later", "in the future",
        ],
    }

    BUYING_SIGNALS = {
        "asked_for_price": list(DEFAULT_RULES.premium_keywords),
        "asked_how_to_apply": list(DEFAULT_RULES.apply_phrases) + ["how do i apply", "next step"],
        "mentioned_timeline": ["today", "this week", "this month", "asap", "soon"],
        "decision_authority": [
            "my decision", "i decide", "i'm the owner", "i am the owner",
            "my company", "for my staff", "i make the decisions",
        ],
        "shared_personal_details": ["i am", "i'm", "my car", "my family", "years old", "my business"],
    }

    SYSTEM_PROMPT = (
        "You are an insurance sales analyst for the Ghanaian market. "
        "Classify the customer's latest message."
    )

    OBJECTION_TYPES = {
        "price": ["too expensive", "can't afford", "cannot afford", "cheaper elsewhere", "too much"],
        "trust": ["scam", "don't trust", "dont trust", "never pay claims"],
        "timing": ["maybe later", "not now", "think about it", "next year"],
        "need": ["don't need", "dont need", "not interested", "no thanks"],
    }

    def __init__(self, analyzer: Optional[Any] = None):
        """
        Initialize the classifier.

        Args:
            analyzer: Optional StructuredAnalyzer for LLM analysis
        """
        self.analyzer = analyzer
        self.type_classifier = InsuranceTypeClassifier()
        self._contact_pattern = re.compile(
            r'(?:\+?233|0)[\s-]?\d{2}[\s-]?\d{3}[\s-]?\d{4}\b|[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}'
        )

    async def analyze(
        self,
        message: str,
        history: Optional[Sequence[Any]] = None,
        profile: Optional[Dict[str, Any]] = None
    ) -> Tuple[CustomerAnalysis, bool]:
        """
        Analyze a message, preferring the LLM when one is configured.

        Returns:
            Tuple of (analysis, degraded). degraded is True when the LLM
            was expected but the rule-based fallback had to be used.
        """
        if self.analyzer is None or not getattr(self.analyzer, "enabled", False):
            return self.classify(message), False

        try:
            analysis = await self.analyzer.run(
                self.SYSTEM_PROMPT,
                self._build_analysis_prompt(message, history or [], profile or {}),
                CustomerAnalysis,
            )
            return analysis, False
        except Exception as e:
            logger.warning(f"Customer analysis unavailable, using rules: {e}")
            fallback = self.classify(message)
            fallback.confidence = min(fallback.confidence, FALLBACK_CONFIDENCE)
            return fallback, True

    def classify(self, message: str) -> CustomerAnalysis:
        """
        Rule-based analysis of a customer message.

        Args:
            message: The customer message

        Returns:
            CustomerAnalysis
        """
        message_lower = (message or "").lower()

        primary_intent, confidence = self._rule_based_intent(message_lower)
        urgency = self._extract_urgency(message_lower)
        buying_signals = self._extract_buying_signals(message, message_lower)
        objections = [
            name for name, phrases in self.OBJECTION_TYPES.items()
            if contains_any(message_lower, phrases)
        ]
        readiness = self._estimate_readiness(primary_intent, buying_signals, objections)

        detected = self.type_classifier.classify(message_lower)
        product_interest = [detected.value] if detected else []

        return CustomerAnalysis(
            primary_intent=primary_intent,
            urgency=urgency,
            buying_signals=buying_signals,
            objections=objections,
            emotional_state=self._emotional_state(primary_intent, objections, message),
            lead_readiness=readiness,
            product_interest=product_interest,
            recommended_next_action=self._next_action(primary_intent),
            confidence=confidence,
        )

    def _rule_based_intent(self, message_lower: str) -> Tuple[Intent, float]:
        intent_scores: Dict[Intent, float] = {}

        for intent, keywords in self.INTENT_KEYWORDS.items():
            score = 0.0
            for keyword in keywords:
                if contains_any(message_lower, [keyword]):
                    score += len(keyword.split()) * 0.2 + 0.1
            if score > 0:
                intent_scores[intent] = score

        if not intent_scores:
            return Intent.INFORMATION, 0.3

        primary_intent, primary_score = max(intent_scores.items(), key=lambda x: x[1])
        return primary_intent, min(0.4 + primary_score / 2.0, 0.8)

    def _extract_urgency(self, message_lower: str) -> Urgency:
        for urgency, keywords in self.URGENCY_KEYWORDS.items():
            if contains_any(message_lower, keywords):
                return urgency
        return Urgency.MEDIUM

    def _extract_buying_signals(self, message: str, message_lower: str) -> List[str]:
        signals = [
            name for name, phrases in self.BUYING_SIGNALS.items()
            if contains_any(message_lower, phrases)
        ]
        if self._contact_pattern.search(message):
            signals.append("provided_contact")
        return signals

    def _estimate_readiness(
        self,
        intent: Intent,
        buying_signals: List[str],
        objections: List[str]
    ) -> LeadReadiness:
        if objections or intent in (Intent.OBJECTION, Intent.COMPLAINT):
            return LeadReadiness.EXPLORING
        if intent == Intent.PURCHASE and len(buying_signals) >= 2:
            return LeadReadiness.HOT_LEAD
        if intent in (Intent.PURCHASE, Intent.PREMIUM_QUOTE) and len(buying_signals) >= 2:
            return LeadReadiness.READY
        if intent in (Intent.PURCHASE, Intent.PREMIUM_QUOTE, Intent.COMPARISON):
            return LeadReadiness.CONSIDERING
        return LeadReadiness.EXPLORING

    @staticmethod
    def _emotional_state(intent: Intent, objections: List[str], message: str) -> str:
        if intent == Intent.COMPLAINT:
            return "frustrated"
        if objections:
            return "hesitant"
        if "!" in message and intent in (Intent.PURCHASE, Intent.PREMIUM_QUOTE):
            return "excited"
        return "neutral"

    @staticmethod
    def _next_action(intent: Intent) -> str:
        return {
            Intent.HUMAN_AGENT: "transfer_human",
            Intent.PURCHASE: "capture_lead",
            Intent.PREMIUM_QUOTE: "calculate_premium",
            Intent.OBJECTION: "handle_objection",
            Intent.COMPLAINT: "transfer_human",
        }.get(intent, "continue_conversation")

    def _build_analysis_prompt(
        self,
        message: str,
        history: Sequence[Any],
        profile: Dict[str, Any]
    ) -> str:
        """Build the customer-analysis prompt."""
        recent = []
        for item in list(history)[-6:]:
            role = item.get("role") if isinstance(item, dict) else getattr(item, "role", "")
            content = item.get("content") if isinstance(item, dict) else getattr(item, "content", "")
            recent.append(f"{'Customer' if role == 'user' else 'Assistant'}: {content}")

        known_profile = {k: v for k, v in profile.items() if v not in (None, "", [], {})}

        return f"""Analyze the customer's latest message.

Recent conversation:
{chr(10).join(recent) or "(none)"}

Known customer profile: {json.dumps(known_profile, default=str)}

Latest message: "{message}"

Return JSON with these fields:
- primary_intent: one of {[i.value for i in Intent]}
- urgency: low | medium | high
- buying_signals: list of short snake_case signals (e.g. asked_for_price, decision_authority)
- objections: list of objection types (price, trust, timing, need)
- emotional_state: one word
- lead_readiness: exploring | considering | ready | hot_lead
- product_interest: list drawn from auto, health, life, business
- recommended_next_action: continue_conversation | calculate_premium | capture_lead | handle_objection | transfer_human
- profile_updates: object with any of {', '.join(INFERABLE_PROFILE_FIELDS)}
- confidence: number between 0 and 1"""
