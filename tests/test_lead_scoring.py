"""Tests for Lead Scoring components."""

import asyncio
import json

import pytest

from lead_scoring.intent_classifier import Intent, IntentClassifier, LeadReadiness, Urgency
from lead_scoring.scoring_model import LeadCaptureScorer
from lead_scoring.signal_scorer import SignalScorer, SubScores
from llm.structured_analysis import StructuredAnalyzer

from conftest import FakeLLM

BUY_MESSAGE = "I want to buy the policy today, my number is 0244123456"


@pytest.fixture
def classifier():
    return IntentClassifier()


@pytest.fixture
def scorer():
    return LeadCaptureScorer()


def _assessment(score, should_capture=True, **extra):
    data = {
        "purchase_intent_strength": score,
        "conversation_progression": score,
        "negative_intent_absence": score,
        "engagement_quality": score,
        "urgency_timeline": score,
        "should_capture": should_capture,
        "confidence": 0.8,
        "reasoning": "test",
    }
    data.update(extra)
    return json.dumps(data)


# ── Intent Classifier ─────────────────────────────────

class TestIntentClassifier:
    def test_premium_quote(self, classifier):
        result = classifier.classify("How much is car insurance?")
        assert result.primary_intent == Intent.PREMIUM_QUOTE
        assert result.product_interest == ["auto"]
        assert result.recommended_next_action == "calculate_premium"

    def test_purchase_hot_lead(self, classifier):
        result = classifier.classify("I want to apply for life insurance today")
        assert result.primary_intent == Intent.PURCHASE
        assert result.urgency == Urgency.HIGH
        assert result.lead_readiness == LeadReadiness.HOT_LEAD

    def test_price_objection(self, classifier):
        result = classifier.classify("This is too expensive, I can't afford it")
        assert result.primary_intent == Intent.OBJECTION
        assert result.objections == ["price"]
        assert result.emotional_state == "hesitant"
        assert result.lead_readiness == LeadReadiness.EXPLORING

    def test_human_agent(self, classifier):
        result = classifier.classify("Can I speak to someone? I want a human agent")
        assert result.primary_intent == Intent.HUMAN_AGENT
        assert result.recommended_next_action == "transfer_human"

    def test_greeting(self, classifier):
        assert classifier.classify("hi").primary_intent == Intent.GREETING

    def test_contact_is_a_buying_signal(self, classifier):
        assert "provided_contact" in classifier.classify(BUY_MESSAGE).buying_signals

    def test_llm_analysis(self):
        llm = FakeLLM(json.dumps({
            "primary_intent": "PURCHASE",
            "urgency": "High",
            "lead_readiness": "ready",
            "product_interest": ["health"],
            "profile_updates": {"age": 35, "location": ""},
            "confidence": 1.7,
        }))
        classifier = IntentClassifier(StructuredAnalyzer(llm))
        analysis, degraded = asyncio.run(classifier.analyze("sign me up", [], {}))

        assert degraded is False
        assert analysis.primary_intent == Intent.PURCHASE
        assert analysis.urgency == Urgency.HIGH
        assert analysis.profile_updates == {"age": 35}
        assert analysis.confidence == 1.0

    def test_llm_cannot_set_contact_or_lead_fields(self):
        llm = FakeLLM(json.dumps({
            "primary_intent": "purchase",
            "profile_updates": {
                "age": 29,
                "lead_id": "lead_invented",
                "email": "made-up@example.com",
                "name": "Someone",
            },
        }))
        classifier = IntentClassifier(StructuredAnalyzer(llm))
        analysis, _ = asyncio.run(classifier.analyze("I'm ready to buy", [], {}))

        assert analysis.profile_updates == {"age": 29}

    def test_llm_failure_falls_back_to_rules(self):
        classifier = IntentClassifier(StructuredAnalyzer(FakeLLM("not json")))
        analysis, degraded = asyncio.run(classifier.analyze("How much is car insurance?"))

        assert degraded is True
        assert analysis.primary_intent == Intent.PREMIUM_QUOTE
        assert analysis.confidence <= 0.3


# ── Signal Scorer ─────────────────────────────────────

class TestSignalScorer:
    def test_greeting_scores_low(self, classifier):
        result = SignalScorer().score("hi", classifier.classify("hi"), [], 0)
        assert result.suggested_capture is False
        assert result.sub_scores.purchase_intent == 1.0
        assert "First message in conversation" in result.risk_factors

    def test_quote_in_history_adds_progression(self, classifier):
        history = [
            {"role": "user", "content": "quote please"},
            {"role": "assistant", "content": "Annual premium: GH₵ 14,400"},
        ]
        analysis = classifier.classify("ok")
        result = SignalScorer().score("ok", analysis, history, 1)
        assert result.sub_scores.conversation_progression == 4.0
        assert "Premium quote already provided" in result.positive_signals

    def test_objection_blocks_suggestion(self, classifier):
        message = "I want to buy but it's too expensive"
        result = SignalScorer().score(message, classifier.classify(message), [], 3)
        assert result.suggested_capture is False
        assert result.sub_scores.negative_intent_absence == 7.0


# ── Lead Capture Scorer ───────────────────────────────

class TestLeadCaptureScorer:
    def test_thresholds_by_depth(self, scorer):
        assert scorer.threshold_for(0) == 8.5
        assert scorer.threshold_for(1) == 8.0
        assert scorer.threshold_for(2) == 6.5
        assert scorer.threshold_for(10) == 6.5

    def test_weighted_score(self, scorer):
        sub_scores = SubScores(
            purchase_intent=10,
            conversation_progression=8,
            negative_intent_absence=10,
            engagement_quality=6,
            urgency_timeline=5,
        )
        # 3.0 + 2.0 + 2.0 + 0.9 + 0.5
        assert scorer.weighted_score(sub_scores) == 8.4

    def test_sub_scores_are_clamped(self, scorer):
        assert scorer.weighted_score(SubScores(15, 15, 15, 15, 15)) == 10.0
        assert scorer.weighted_score(SubScores(-3, -3, -3, -3, -3)) == 0.0

    def test_capture_needs_suggestion_and_threshold(self, scorer):
        high = SubScores(9, 9, 9, 9, 9)
        assert scorer.decide(high, 0, suggested_capture=True).should_capture is True

        result = scorer.decide(high, 0, suggested_capture=False)
        assert result.should_capture is False
        assert "does not recommend" in result.reason

        low = SubScores(5, 5, 5, 5, 5)
        result = scorer.decide(low, 5, suggested_capture=True)
        assert result.should_capture is False
        assert "overridden" in result.reason

    def test_greeting_never_captured(self, scorer, classifier):
        result = asyncio.run(scorer.score("hi", classifier.classify("hi"), [], 0))
        assert result.should_capture is False
        assert result.score == pytest.approx(3.1)
        assert result.threshold == 8.5

    def test_same_message_depends_on_depth(self, scorer, classifier):
        analysis = classifier.classify(BUY_MESSAGE)
        first = asyncio.run(scorer.score(BUY_MESSAGE, analysis, [], 0))
        later = asyncio.run(scorer.score(BUY_MESSAGE, analysis, [], 3))

        assert first.score == pytest.approx(7.1)
        assert first.should_capture is False
        assert later.score == pytest.approx(8.6)
        assert later.should_capture is True

    def test_llm_assessment_revalidated(self, classifier):
        analyzer = StructuredAnalyzer(FakeLLM(_assessment(6.0, should_capture=True)))
        scorer = LeadCaptureScorer(analyzer)
        result = asyncio.run(scorer.score("hi", classifier.classify("hi"), [], 0))

        assert result.score == 6.0
        assert result.should_capture is False

    def test_llm_assessment_captured(self, classifier):
        analyzer = StructuredAnalyzer(FakeLLM(_assessment(9.5, positive_signals=["asked to apply"])))
        scorer = LeadCaptureScorer(analyzer)
        result = asyncio.run(scorer.score("apply", classifier.classify("apply"), [], 2))

        assert result.should_capture is True
        assert result.positive_signals == ["asked to apply"]
        assert result.confidence == 0.8

    def test_llm_failure_degrades(self, classifier):
        scorer = LeadCaptureScorer(StructuredAnalyzer(FakeLLM(error=TimeoutError("slow"))))
        result = asyncio.run(scorer.score(BUY_MESSAGE, classifier.classify(BUY_MESSAGE), [], 5))

        assert result.should_capture is False
        assert result.score == 0.0
        assert result.confidence == 0.1
        assert result.degraded is True
        assert result.risk_factors == ["AI analysis unavailable"]
