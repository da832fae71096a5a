"""
Conversation Orchestrator for the Insurance Sales Assistant.

Routes each customer message through the premium calculation flow or the
knowledge-grounded generic path, scores the turn for lead capture, records
both turns in conversation memory and delivers the reply.
"""

import asyncio
import logging
import re
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence

from pydantic import BaseModel, ConfigDict, ValidationError

from lead_scoring.intent_classifier import (
    INFERABLE_PROFILE_FIELDS,
    CustomerAnalysis,
    Intent,
    IntentClassifier,
)
from lead_scoring.lead_store import CaptureLeadData, InMemoryLeadStore
from lead_scoring.scoring_model import LeadAnalysisResult, LeadCaptureScorer
from lead_scoring.signal_scorer import SubScores
from premium.calculator import PremiumCalculator, PremiumQuote
from premium.errors import MissingParametersError
from premium.insurance_classifier import InsuranceType, InsuranceTypeClassifier
from premium.parameter_extractor import COMPREHENSIVE, THIRD_PARTY, ParameterExtractor
from premium.rules import DEFAULT_RULES, KeywordRules, contains_any
from retrieval.knowledge_base import KnowledgeResult

from .conversation_store import (
    ASSISTANT,
    USER,
    ConversationMessage,
    ConversationStore,
    CustomerProfile,
    InMemoryConversationStore,
)
from .prompt_templates import PromptTemplates
from .responses import (
    ChatResponse,
    ClarificationPayload,
    ErrorPayload,
    FollowUpPayload,
    GenericPayload,
    Payload,
    QuotePayload,
)
from .structured_analysis import StructuredAnalyzer

logger = logging.getLogger(__name__)


class ConversationState(str, Enum):
    """Where a conversation is in the sales journey."""
    DISCOVERY = "discovery"
    PRESENTATION = "presentation"
    COLLECTING_PARAMETERS = "collecting_parameters"
    CALCULATED = "calculated"
    CLOSING = "closing"
    OBJECTION_HANDLING = "objection_handling"
    ESCALATE_TO_HUMAN = "escalate_to_human"
    ERROR = "error"


class ContextHints(BaseModel):
    """Optional caller context. Unknown keys and unusable values are ignored."""

    model_config = ConfigDict(extra="ignore", coerce_numbers_to_str=True)

    source: Optional[str] = None        # channel: web, whatsapp
    session_id: Optional[str] = None
    device_type: Optional[str] = None
    lead_source: Optional[str] = None   # campaign: qr_code, referral, ...
    product_type: Optional[str] = None
    stage: Optional[str] = None
    budget: Optional[str] = None
    name: Optional[str] = None
    email: Optional[str] = None
    phone: Optional[str] = None

    @classmethod
    def parse(cls, raw: Any) -> "ContextHints":
        """Validate caller hints, dropping any field whose value does not fit."""
        if not isinstance(raw, dict):
            if raw is not None:
                logger.warning(f"Ignoring context hints of type {type(raw).__name__}")
            return cls()
        try:
            return cls.model_validate(raw)
        except ValidationError as e:
            rejected = {error["loc"][0] for error in e.errors() if error["loc"]}
            logger.warning(f"Ignoring unusable context hints: {sorted(map(str, rejected))}")
            return cls.model_validate({k: v for k, v in raw.items() if k not in rejected})


# Fixed sub-scores for an explicit application after a quote
APPLY_SUB_SCORES = SubScores(
    purchase_intent=9.0,
    conversation_progression=9.0,
    negative_intent_absence=9.0,
    engagement_quality=9.0,
    urgency_timeline=9.0,
)

# Longest message treated as a bare "yes" / "ok"
SHORT_REPLY_WORDS = 4

COVERAGE_TERMS = ("third party", "third-party", "3rd party", "comprehensive", "cover", "coverage")

QUOTED_PREMIUM_PATTERN = re.compile(r"annual premium:\s*gh₵\s*([\d,]+)", re.IGNORECASE)


@dataclass
class _Turn:
    """Everything known about the message being processed."""
    user_id: str
    text: str
    hints: ContextHints
    prior: List[ConversationMessage]
    exchange_count: int
    previous_state: ConversationState
    analysis: CustomerAnalysis
    analysis_degraded: bool
    profile: CustomerProfile
    current_params: Dict[str, Any]

    @property
    def text_lower(self) -> str:
        return self.text.lower()


@dataclass
class _Reply:
    """Branch output before scoring and delivery."""
    message: str
    payload: Payload
    confidence: float
    next_state: ConversationState
    insurance_type: Optional[str] = None
    lead_override: Optional[LeadAnalysisResult] = None
    handoff: bool = False
    extra_recommendations: List[Dict[str, Any]] = field(default_factory=list)


class ConversationOrchestrator:
    """
    Orchestrates one customer message end to end.

    Pipeline:
    1. Snapshot history and record the user turn
    2. Analyze the customer (LLM with rule-based fallback)
    3. Merge profile inferences
    4. Branch: premium follow-up, premium request or generic answer
    5. Score for lead capture and capture when warranted
    6. Record the assistant turn and deliver it

    Nothing raised inside the pipeline reaches the caller; failures become
    an apology with a human hand-off recommendation.
    """

    def __init__(
        self,
        store: Optional[ConversationStore] = None,
        llm: Optional[Any] = None,
        knowledge: Optional[Any] = None,
        lead_store: Optional[InMemoryLeadStore] = None,
        sender: Optional[Any] = None,
        analyzer: Optional[StructuredAnalyzer] = None,
        intent_classifier: Optional[IntentClassifier] = None,
        lead_scorer: Optional[LeadCaptureScorer] = None,
        extractor: Optional[ParameterExtractor] = None,
        calculator: Optional[PremiumCalculator] = None,
        rules: KeywordRules = DEFAULT_RULES,
        brand_name: str = "Ghana Insurance Assist",
        max_tokens: int = 1024,
        temperature: float = 0.7,
        llm_timeout_seconds: float = 20.0
    ):
        """
        Initialize the orchestrator.

        Args:
            store: Conversation memory (in-memory by default)
            llm: Completion client used for generic replies and analyses
            knowledge: Knowledge retriever for the generic path
            lead_store: Store that receives captured leads
            sender: Outbound sender with send(user_id, text, channel)
            analyzer: Structured analysis helper (built from llm when omitted)
            intent_classifier: Customer analysis
            lead_scorer: Lead capture scorer
            extractor: Calculation parameter extractor
            calculator: Premium calculator
            rules: Keyword rules for premium and follow-up detection
            brand_name: Brand name for prompts
            max_tokens: Max tokens for generic replies
            temperature: Temperature for generic replies
            llm_timeout_seconds: Limit for each LLM call
        """
        self.store = store or InMemoryConversationStore()
        self.llm = llm
        self.knowledge = knowledge
        self.lead_store = lead_store
        self.sender = sender
        self.rules = rules
        self.brand_name = brand_name
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.llm_timeout_seconds = llm_timeout_seconds

        self.analyzer = analyzer or StructuredAnalyzer(llm, timeout_seconds=llm_timeout_seconds)
        self.intent_classifier = intent_classifier or IntentClassifier(self.analyzer)
        self.lead_scorer = lead_scorer or LeadCaptureScorer(self.analyzer)
        self.type_classifier = InsuranceTypeClassifier(rules)
        self.extractor = extractor or ParameterExtractor(rules=rules, classifier=self.type_classifier)
        self.calculator = calculator or PremiumCalculator()

    async def process_message(
        self,
        text: str,
        user_id: str,
        context_hints: Optional[Dict[str, Any]] = None
    ) -> ChatResponse:
        """
        Process one inbound customer message.

        Args:
            text: Message text
            user_id: Conversation key (web session id or phone number)
            context_hints: Optional caller context; unknown keys are ignored

        Returns:
            ChatResponse, also on failure
        """
        start_time = time.time()
        text = (text or "").strip()
        hints = ContextHints()
        user_recorded = False
        assistant_recorded = False

        try:
            hints = ContextHints.parse(context_hints)
            prior = await self.store.history(user_id)
            exchange_count = len(prior) // 2
            previous_state = _parse_state(await self.store.get_state(user_id))

            # History reflects arrival order, so record before any slow work
            await self.store.append(user_id, ConversationMessage(USER, text))
            user_recorded = True

            profile = await self.store.get_profile(user_id)
            analysis, analysis_degraded = await self.intent_classifier.analyze(
                text, prior, profile.to_dict()
            )

            current_params = self.extractor.extract(text)
            profile = await self.store.merge_profile(
                user_id, self._profile_updates(analysis, current_params, text, hints)
            )

            turn = _Turn(
                user_id=user_id,
                text=text,
                hints=hints,
                prior=prior,
                exchange_count=exchange_count,
                previous_state=previous_state,
                analysis=analysis,
                analysis_degraded=analysis_degraded,
                profile=profile,
                current_params=current_params,
            )

            if self.is_premium_follow_up(text, prior):
                reply = await self._handle_follow_up(turn)
            elif self.is_premium_request(turn):
                reply = self._handle_premium_request(turn)
            else:
                reply = await self._handle_generic(turn)

            if reply.lead_override is not None:
                lead_result = reply.lead_override
            else:
                lead_result = await self.lead_scorer.score(
                    text, analysis, prior + [ConversationMessage(USER, text)], exchange_count
                )

            lead_id = None
            if lead_result.should_capture:
                lead_id = await self._capture_lead(turn, reply, lead_result)

            recommendations = self._recommendations(turn, reply, lead_result)

            await self.store.append(user_id, ConversationMessage(ASSISTANT, reply.message))
            assistant_recorded = True
            await self.store.set_state(user_id, reply.next_state.value)

            logger.info(
                f"Processed message for {user_id}: {reply.payload.kind.value} "
                f"({previous_state.value} -> {reply.next_state.value}, lead score {lead_result.score:.2f})"
            )

            response = ChatResponse(
                user_id=user_id,
                message=reply.message,
                payload=reply.payload,
                confidence=round(reply.confidence, 2),
                next_state=reply.next_state.value,
                recommendations=recommendations,
                lead_analysis=lead_result.to_dict(),
                lead_id=lead_id,
            )

        except Exception as e:
            logger.exception(f"Message processing failed for {user_id}: {e}")
            response = await self._error_response(user_id, text, e, user_recorded, assistant_recorded)

        response.delivery = await self._deliver(user_id, response.message, hints)
        response.processing_time_ms = round((time.time() - start_time) * 1000, 2)
        return response

    # ── Branch detection ─────────────────────────────────

    def is_premium_follow_up(self, text: str, prior: Sequence[ConversationMessage]) -> bool:
        """A recent assistant message quoted a premium and this message reacts to it."""
        if self._disambiguation_choice(text.lower(), prior):
            return True
        if not self._recent_quote(prior):
            return False
        return contains_any(text.lower(), self.rules.follow_up_keywords)

    def is_premium_request(self, turn: _Turn) -> bool:
        """
        Premium keywords, an open parameter collection that this message
        contributes to, or a product plus at least two calculation fields.
        """
        if contains_any(turn.text_lower, self.rules.premium_keywords):
            return True

        fields = [k for k in turn.current_params if k != "insurance_type"]
        if turn.previous_state == ConversationState.COLLECTING_PARAMETERS:
            return bool(fields) or "insurance_type" in turn.current_params

        return "insurance_type" in turn.current_params and len(fields) >= 2

    def _recent_quote(self, prior: Sequence[ConversationMessage]) -> Optional[ConversationMessage]:
        for message in reversed(list(prior)[-4:]):
            if message.role == ASSISTANT and self._has_premium_marker(message.content):
                return message
        return None

    def _has_premium_marker(self, content: str) -> bool:
        content_lower = content.lower()
        return any(marker in content_lower for marker in self.rules.premium_markers)

    # ── Premium follow-up ────────────────────────────────

    async def _handle_follow_up(self, turn: _Turn) -> _Reply:
        """
        React to a previous quote.

        A reply to the "what next?" menu picks its option directly.
        Otherwise the order is: coverage question, apply, explicit coverage
        switch, yes to a third-party offer, bare affirmative. Anything else
        is handled as a fresh premium request.
        """
        text_lower = turn.text_lower
        rules = self.rules

        choice = self._disambiguation_choice(text_lower, turn.prior)
        if choice == "third_party":
            return self._recalculate(turn, THIRD_PARTY)
        if choice == "explain_coverage":
            return self._coverage_reply()
        if choice == "apply":
            return self._handoff_reply(turn)

        if (
            contains_any(text_lower, rules.coverage_question_phrases)
            and contains_any(text_lower, COVERAGE_TERMS)
            and not contains_any(text_lower, rules.recalculation_phrases)
        ):
            return self._coverage_reply()

        if contains_any(text_lower, rules.apply_phrases):
            return self._handoff_reply(turn)

        coverage = turn.current_params.get("coverage_type")
        if coverage:
            return self._recalculate(turn, coverage)

        if contains_any(text_lower, rules.affirmative_phrases) and self._third_party_offered(turn.prior):
            return self._recalculate(turn, THIRD_PARTY)

        if self._is_short_affirmative(text_lower):
            return _Reply(
                message=PromptTemplates.DISAMBIGUATION_PROMPT,
                payload=FollowUpPayload(action="disambiguate"),
                confidence=0.6,
                next_state=ConversationState.CALCULATED,
            )

        return self._handle_premium_request(turn)

    def _disambiguation_choice(
        self,
        text_lower: str,
        prior: Sequence[ConversationMessage]
    ) -> Optional[str]:
        """Option picked in reply to the "what next?" menu, if that was the last question."""
        last_reply = next((m for m in reversed(prior) if m.role == ASSISTANT), None)
        if last_reply is None or last_reply.content.strip() != PromptTemplates.DISAMBIGUATION_PROMPT:
            return None
        for action, replies in self.rules.disambiguation_options:
            if contains_any(text_lower, replies):
                return action
        return None

    @staticmethod
    def _coverage_reply() -> _Reply:
        return _Reply(
            message=PromptTemplates.COVERAGE_EXPLANATION,
            payload=FollowUpPayload(action="explain_coverage"),
            confidence=0.85,
            next_state=ConversationState.CALCULATED,
            insurance_type=InsuranceType.AUTO.value,
        )

    def _handoff_reply(self, turn: _Turn) -> _Reply:
        lead_result = self.lead_scorer.decide(
            APPLY_SUB_SCORES,
            turn.exchange_count,
            suggested_capture=True,
            confidence=0.9,
            positive_signals=["Asked to apply after receiving a quote"],
            reasoning="Customer asked to apply for the quoted policy",
        )
        quote_type = self._resolve_insurance_type(turn)
        return _Reply(
            message=PromptTemplates.HANDOFF_MESSAGE,
            payload=FollowUpPayload(action="apply"),
            confidence=0.9,
            next_state=ConversationState.CLOSING,
            insurance_type=quote_type.value if quote_type else None,
            lead_override=lead_result,
            handoff=True,
        )

    def _recalculate(self, turn: _Turn, coverage: str) -> _Reply:
        """Recalculate the last auto quote with a different coverage type."""
        insurance_type = self._resolve_insurance_type(turn) or InsuranceType.AUTO
        params = self._collect_parameters(turn, insurance_type)
        params["coverage_type"] = coverage

        missing = self.calculator.missing_fields(insurance_type, params)
        if missing:
            return self._clarification_reply(insurance_type, missing, params)

        quote = self.calculator.calculate(insurance_type, params)
        previous_premium = self._last_quoted_premium(turn.prior)

        message = self._format_quote(quote)
        if previous_premium and previous_premium != quote.annual_premium:
            difference = abs(previous_premium - quote.annual_premium)
            direction = "less" if quote.annual_premium < previous_premium else "more"
            message += f"\n\nThat's GH₵ {difference:,} {direction} per year than your previous quote."

        return _Reply(
            message=message,
            payload=FollowUpPayload(
                action="recalculate",
                quote=quote.to_dict(),
                previous_coverage=COMPREHENSIVE if coverage == THIRD_PARTY else THIRD_PARTY,
            ),
            confidence=0.9,
            next_state=ConversationState.CALCULATED,
            insurance_type=insurance_type.value,
        )

    def _third_party_offered(self, prior: Sequence[ConversationMessage]) -> bool:
        for message in reversed(prior):
            if message.role == ASSISTANT:
                return self.rules.third_party_offer_marker in message.content.lower()
        return False

    def _is_short_affirmative(self, text_lower: str) -> bool:
        words = re.findall(r"\w+", text_lower)
        return 0 < len(words) <= SHORT_REPLY_WORDS and contains_any(text_lower, self.rules.affirmative_phrases)

    @staticmethod
    def _last_quoted_premium(prior: Sequence[ConversationMessage]) -> Optional[int]:
        for message in reversed(prior):
            if message.role != ASSISTANT:
                continue
            match = QUOTED_PREMIUM_PATTERN.search(message.content)
            if match:
                return int(match.group(1).replace(",", ""))
        return None

    # ── Premium request ──────────────────────────────────

    def _handle_premium_request(self, turn: _Turn) -> _Reply:
        insurance_type = self._resolve_insurance_type(turn)
        if insurance_type is None:
            return _Reply(
                message=PromptTemplates.INSURANCE_TYPE_QUESTION,
                payload=ClarificationPayload(insurance_type=None, missing_fields=["insurance_type"]),
                confidence=0.7,
                next_state=ConversationState.COLLECTING_PARAMETERS,
            )

        params = self._collect_parameters(turn, insurance_type)
        missing = self.calculator.missing_fields(insurance_type, params)
        if missing:
            return self._clarification_reply(insurance_type, missing, params)

        try:
            quote = self.calculator.calculate(insurance_type, params)
        except MissingParametersError as e:
            return self._clarification_reply(insurance_type, e.missing_fields, params)

        return _Reply(
            message=self._format_quote(quote),
            payload=QuotePayload(
                quote=quote.to_dict(),
                adjustments=self.calculator.describe_adjustments(quote.breakdown),
            ),
            confidence=0.9,
            next_state=ConversationState.CALCULATED,
            insurance_type=insurance_type.value,
        )

    def _resolve_insurance_type(self, turn: _Turn) -> Optional[InsuranceType]:
        """Current message, then history (newest first), then profile, then hints."""
        detected = self.type_classifier.parse(turn.current_params.get("insurance_type"))
        if detected:
            return detected

        for message in reversed(turn.prior):
            if message.role == USER:
                detected = self.type_classifier.classify(message.content)
                if detected:
                    return detected

        return (
            self.type_classifier.parse(turn.profile.insurance_interest)
            or self.type_classifier.parse(turn.hints.product_type)
        )

    def _collect_parameters(self, turn: _Turn, insurance_type: InsuranceType) -> Dict[str, Any]:
        current = self.extractor.extract(turn.text, insurance_type)
        historical = self.extractor.extract_from_history(turn.prior, insurance_type)
        params = self.extractor.merge(current, historical)
        params["insurance_type"] = insurance_type.value
        return self.extractor.apply_defaults(params, insurance_type)

    def _clarification_reply(
        self,
        insurance_type: InsuranceType,
        missing: List[str],
        params: Dict[str, Any]
    ) -> _Reply:
        low, high = self.calculator.estimated_range(insurance_type)
        message = PromptTemplates.missing_fields_prompt(insurance_type.value, missing)
        message += f"\n\nFor reference, {insurance_type.value} cover typically costs between {low:,} and {high:,} cedis a year."
        return _Reply(
            message=message,
            payload=ClarificationPayload(
                insurance_type=insurance_type.value,
                missing_fields=list(missing),
                known_parameters={k: v for k, v in params.items() if k not in missing},
            ),
            confidence=0.8,
            next_state=ConversationState.COLLECTING_PARAMETERS,
            insurance_type=insurance_type.value,
        )

    def _format_quote(self, quote: PremiumQuote) -> str:
        params = quote.parameters
        title = quote.insurance_type.capitalize()
        if quote.insurance_type == InsuranceType.AUTO.value:
            title += f" ({str(params.get('coverage_type', '')).replace('_', ' ')})"

        lines = [
            f"🛡️ *Your {title} Insurance Quote*",
            "",
            f"Annual premium: GH₵ {quote.annual_premium:,}",
            f"Monthly premium: GH₵ {quote.monthly_premium:,}",
            "",
            "How this was worked out:",
        ]
        for adjustment in self.calculator.describe_adjustments(quote.breakdown):
            label = adjustment["factor"].replace("_", " ").capitalize()
            if adjustment["direction"] == "none":
                lines.append(f"• {label}: no adjustment")
            else:
                lines.append(f"• {label}: {adjustment['percent']:g}% {adjustment['direction']}")
        if "rate_per_thousand" in quote.breakdown:
            lines.append(f"• Rate: GH₵ {quote.breakdown['rate_per_thousand']:g} per GH₵ 1,000 of cover")

        lines.append("")
        if quote.is_estimate:
            lines.append("This is an estimate. A specialist will confirm the final price after a short risk survey.")
        lines.append(f"This quote is valid for {quote.valid_days} days.")

        if quote.insurance_type == InsuranceType.AUTO.value and params.get("coverage_type") == COMPREHENSIVE:
            lines.append("")
            lines.append(PromptTemplates.THIRD_PARTY_OFFER)
        lines.append(PromptTemplates.APPLY_PROMPT)
        return "\n".join(lines)

    # ── Generic answer ───────────────────────────────────

    async def _handle_generic(self, turn: _Turn) -> _Reply:
        knowledge = await self._query_knowledge(turn)
        analysis = turn.analysis

        message = None
        if self.llm is not None:
            prompt_type = PromptTemplates.detect_prompt_type(turn.text, analysis.primary_intent.value)
            system_prompt = PromptTemplates.get_system_prompt(prompt_type, self.brand_name)
            user_prompt = PromptTemplates.build_rag_prompt(
                query=turn.text,
                context=knowledge.context_summary or "No matching company information.",
                analysis=PromptTemplates.format_analysis(analysis.model_dump(mode="json")),
                conversation_history=_format_history(turn.prior),
                exchanges=turn.exchange_count,
            )
            try:
                message = await asyncio.wait_for(
                    self.llm.complete(
                        system_prompt,
                        user_prompt,
                        temperature=self.temperature,
                        max_tokens=self.max_tokens,
                    ),
                    timeout=self.llm_timeout_seconds,
                )
            except asyncio.TimeoutError:
                logger.warning(f"Response generation timed out after {self.llm_timeout_seconds}s")
            except Exception as e:
                logger.warning(f"Response generation failed, using knowledge fallback: {e}")

        used_fallback = not message or not message.strip()
        if used_fallback:
            message = self._fallback_message(knowledge)
            confidence = min(knowledge.confidence, 0.5)
        else:
            message = message.strip()
            confidence = knowledge.confidence

        product = analysis.product_interest[0] if analysis.product_interest else None
        return _Reply(
            message=message,
            payload=GenericPayload(
                sources=[
                    {"id": doc.id, "type": doc.type, "category": doc.category}
                    for doc in knowledge.documents[:5]
                ],
                knowledge_confidence=knowledge.confidence,
                used_fallback=used_fallback,
            ),
            confidence=confidence,
            next_state=self._generic_state(turn),
            insurance_type=product,
        )

    async def _query_knowledge(self, turn: _Turn) -> KnowledgeResult:
        if self.knowledge is None:
            return KnowledgeResult()
        hints = {
            "product_type": turn.hints.product_type or turn.profile.insurance_interest,
            "lead_source": turn.hints.lead_source or turn.hints.source,
            "stage": turn.previous_state.value,
            "budget": turn.hints.budget,
        }
        try:
            return await asyncio.wait_for(
                self.knowledge.query(turn.text, hints), timeout=self.llm_timeout_seconds
            )
        except Exception as e:
            logger.warning(f"Knowledge retrieval failed: {e}")
            return KnowledgeResult()

    @staticmethod
    def _fallback_message(knowledge: KnowledgeResult) -> str:
        if not knowledge.documents:
            return PromptTemplates.NO_KNOWLEDGE_FALLBACK
        return (
            f"{knowledge.documents[0].content}\n\n"
            "Would you like a premium quote, or shall I connect you with one of our agents?"
        )

    @staticmethod
    def _generic_state(turn: _Turn) -> ConversationState:
        intent = turn.analysis.primary_intent
        if intent == Intent.HUMAN_AGENT:
            return ConversationState.ESCALATE_TO_HUMAN
        if intent in (Intent.OBJECTION, Intent.COMPLAINT) or turn.analysis.objections:
            return ConversationState.OBJECTION_HANDLING
        if intent == Intent.PURCHASE:
            return ConversationState.CLOSING
        if turn.analysis.product_interest:
            return ConversationState.PRESENTATION
        return ConversationState.DISCOVERY

    # ── Lead capture and recommendations ─────────────────

    async def _capture_lead(
        self,
        turn: _Turn,
        reply: _Reply,
        lead_result: LeadAnalysisResult
    ) -> Optional[str]:
        if self.lead_store is None:
            return None
        if turn.profile.lead_id:
            logger.debug(f"User {turn.user_id} already captured as {turn.profile.lead_id}")
            return turn.profile.lead_id

        product = reply.insurance_type or turn.profile.insurance_interest
        data = CaptureLeadData(
            user_id=turn.user_id,
            source=turn.hints.lead_source or turn.hints.source or "chat",
            product_interest=product,
            score=lead_result.score,
            contact_info={
                "name": turn.profile.name,
                "email": turn.profile.email,
                "phone": turn.profile.phone,
            },
            conversation_context={
                "exchange_count": turn.exchange_count,
                "state": reply.next_state.value,
                "reason": lead_result.reason,
                "positive_signals": lead_result.positive_signals,
            },
        )
        try:
            lead = await self.lead_store.capture(data)
        except Exception as e:
            logger.error(f"Lead capture failed for {turn.user_id}: {e}")
            return None

        await self.store.merge_profile(turn.user_id, {"lead_id": lead.lead_id})
        return lead.lead_id

    def _recommendations(
        self,
        turn: _Turn,
        reply: _Reply,
        lead_result: LeadAnalysisResult
    ) -> List[Dict[str, Any]]:
        analysis = turn.analysis
        recommendations: List[Dict[str, Any]] = []

        product = reply.insurance_type or (analysis.product_interest[0] if analysis.product_interest else None)
        if product:
            recommendations.append({
                "type": "product",
                "category": product,
                "urgency": analysis.urgency.value,
                "reasoning": f"Based on interest in {product} insurance",
            })

        if lead_result.should_capture:
            recommendations.append({
                "type": "action",
                "action": "capture_lead",
                "reason": f"Lead analysis: {lead_result.reason}",
                "confidence": lead_result.confidence,
                "lead_score": lead_result.score,
                "conversation_depth": turn.exchange_count,
            })

        if (
            reply.handoff
            or analysis.recommended_next_action == "transfer_human"
            or "decision_authority" in analysis.buying_signals
        ):
            recommendations.append({
                "type": "action",
                "action": "human_handoff",
                "reason": "High buying intent detected - ready for a specialist"
                if reply.handoff or "decision_authority" in analysis.buying_signals
                else "Customer needs a human agent",
            })

        recommendations.extend(reply.extra_recommendations)
        return recommendations

    def _profile_updates(
        self,
        analysis: CustomerAnalysis,
        params: Dict[str, Any],
        text: str,
        hints: ContextHints
    ) -> Dict[str, Any]:
        updates: Dict[str, Any] = {
            k: v for k, v in analysis.profile_updates.items() if k in INFERABLE_PROFILE_FIELDS
        }
        for key in ("age", "location", "family_size", "smoking_status"):
            if key in params:
                updates[key] = params[key]
        if params.get("insurance_type"):
            updates["insurance_interest"] = params["insurance_type"]
        elif analysis.product_interest and "insurance_interest" not in updates:
            updates["insurance_interest"] = analysis.product_interest[0]

        updates.update(self.extractor.extract_contact(text))
        for key in ("name", "email", "phone"):
            value = getattr(hints, key)
            if value:
                updates[key] = value
        return updates

    # ── Failure and delivery ─────────────────────────────

    async def _error_response(
        self,
        user_id: str,
        text: str,
        error: Exception,
        user_recorded: bool,
        assistant_recorded: bool
    ) -> ChatResponse:
        apology = PromptTemplates.FALLBACK_APOLOGY
        try:
            if not user_recorded:
                await self.store.append_pair(
                    user_id, ConversationMessage(USER, text), ConversationMessage(ASSISTANT, apology)
                )
            elif not assistant_recorded:
                await self.store.append(user_id, ConversationMessage(ASSISTANT, apology))
            await self.store.set_state(user_id, ConversationState.ERROR.value)
        except Exception as store_error:
            logger.error(f"Could not record fallback reply for {user_id}: {store_error}")

        return ChatResponse(
            user_id=user_id,
            message=apology,
            payload=ErrorPayload(error_type=type(error).__name__),
            confidence=0.1,
            next_state=ConversationState.ERROR.value,
            recommendations=[{
                "type": "action",
                "action": "immediate_human_transfer",
                "reason": "Technical error during processing",
            }],
        )

    async def _deliver(self, user_id: str, text: str, hints: ContextHints) -> Optional[Dict[str, Any]]:
        if self.sender is None:
            return None
        try:
            result = await self.sender.send(user_id, text, hints.source)
        except Exception as e:
            logger.error(f"Reply delivery to {user_id} failed: {e}")
            return {"success": False, "error": str(e)}
        return result.to_dict()


def _parse_state(value: Optional[str]) -> ConversationState:
    if not value:
        return ConversationState.DISCOVERY
    try:
        return ConversationState(value)
    except ValueError:
        logger.warning(f"Unknown conversation state {value!r}, restarting discovery")
        return ConversationState.DISCOVERY


def _format_history(prior: Sequence[ConversationMessage]) -> Optional[str]:
    if not prior:
        return None
    formatted = []
    for message in list(prior)[-6:]:
        role = "Customer" if message.role == USER else "Assistant"
        formatted.append(f"{role}: {message.content[:300]}")
    return "\n".join(formatted)
