"""Tests for knowledge retrieval."""

import asyncio
import json

import pytest

from retrieval.knowledge_base import KnowledgeBase, KnowledgeDocument, KnowledgeRetriever


def _doc(doc_id, content, doc_type="product", priority="medium", **kwargs):
    return KnowledgeDocument(id=doc_id, content=content, type=doc_type, priority=priority, **kwargs)


# ── Loading ───────────────────────────────────────────

class TestLoading:
    def test_bundled_knowledge(self, knowledge_base):
        stats = knowledge_base.stats()
        assert stats["total_documents"] == 16
        assert stats["types"]["premium_calculation"] == 4
        assert isinstance(knowledge_base, KnowledgeRetriever)

    def test_missing_file_gives_empty_base(self, tmp_path):
        kb = KnowledgeBase.from_file(tmp_path / "nope.json")
        result = asyncio.run(kb.query("car insurance"))
        assert result.documents == []
        assert result.confidence == 0.2

    def test_plain_list_with_metadata(self, tmp_path):
        path = tmp_path / "kb.json"
        path.write_text(json.dumps([
            {"id": "x", "content": "Funeral cover pays in 48 hours", "metadata": {"type": "faq"}},
        ]))
        kb = KnowledgeBase.from_file(path)
        assert kb.documents[0].type == "faq"


# ── Querying ──────────────────────────────────────────

class TestQuery:
    def test_claims_question(self, knowledge_base):
        result = asyncio.run(knowledge_base.query("How do I make a claim after an accident?"))
        assert result.documents[0].id == "claims_process"
        assert result.metadata["has_claims_info"] is True

    def test_premium_query_boosts_confidence(self, knowledge_base):
        result = asyncio.run(knowledge_base.query("how much does car insurance cost?"))
        assert any(d.type == "premium_calculation" for d in result.documents)
        assert result.confidence >= 0.8
        assert result.context_summary.startswith("=== PREMIUM CALCULATION ===")

    def test_hints_enrich_query(self, knowledge_base):
        query = knowledge_base.build_contextual_query(
            "tell me more", {"product_type": "health", "lead_source": "qr_code"}
        )
        assert query == "tell me more health insurance qr_code customer"

    def test_risk_terms_expand_query(self, knowledge_base):
        query = knowledge_base.build_contextual_query("does my location matter", {})
        assert query.endswith("risk factors assessment underwriting")

    def test_irrelevant_query(self, knowledge_base):
        result = asyncio.run(knowledge_base.query("xylophone"))
        assert result.documents == []
        assert result.context_summary == ""

    def test_results_are_cached(self, knowledge_base):
        first = asyncio.run(knowledge_base.query("payment by mobile money"))
        second = asyncio.run(knowledge_base.query("payment by mobile money"))
        assert first is second
        knowledge_base.clear_cache()
        assert knowledge_base.stats()["cache_size"] == 0


# ── Confidence and Context ────────────────────────────

class TestConfidence:
    def test_confidence_rules(self):
        kb = KnowledgeBase()
        docs = [_doc(str(i), "text") for i in range(3)]
        assert kb.calculate_confidence([], "anything") == 0.2
        assert kb.calculate_confidence(docs[:1], "hello") == 0.6
        assert kb.calculate_confidence(docs, "hello") == 0.7

        docs += [_doc("p", "rates", doc_type="premium_calculation", priority="high"), _doc("5", "t")]
        # 0.6 + 0.2 + 0.15 + 0.05, capped
        assert kb.calculate_confidence(docs, "what is the price") == 0.95

    def test_context_groups_by_type(self):
        kb = KnowledgeBase()
        context = kb.build_context([
            _doc("a", "Product A", doc_type="product"),
            _doc("r", "Age matters", doc_type="risk_factors"),
            _doc("p", "3% of value", doc_type="premium_calculation"),
        ])
        sections = context.split("\n\n")
        assert sections[0] == "=== PREMIUM CALCULATION ===\n3% of value"
        assert sections[1] == "=== RISK FACTORS ===\nAge matters"
        assert sections[2] == "=== PRODUCT ===\nProduct A"
