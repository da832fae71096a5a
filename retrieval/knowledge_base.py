"""
Knowledge Base for the Insurance Sales Assistant.

Keyword-overlap retrieval over a JSON document set. Queries are enriched
with the conversation context before matching, results are grouped by
document type for the prompt, and repeated queries are served from cache.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Protocol, Tuple, runtime_checkable

from premium.rules import DEFAULT_RULES, contains_any

logger = logging.getLogger(__name__)

STOPWORDS = {
    "a", "an", "the", "is", "are", "was", "be", "to", "of", "and", "or", "in",
    "on", "for", "with", "my", "me", "i", "you", "your", "it", "do", "does",
    "can", "what", "how", "about", "this", "that", "please", "want", "need",
}

RISK_KEYWORDS = (
    "risk", "factors", "assessment", "age", "driving record",
    "health condition", "location", "occupation", "medical",
)


@dataclass
class KnowledgeDocument:
    """One knowledge base entry."""
    id: str
    content: str
    type: str = "general"
    category: Optional[str] = None
    priority: str = "medium"
    keywords: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "content": self.content,
            "type": self.type,
            "category": self.category,
            "priority": self.priority,
            "keywords": self.keywords,
        }


@dataclass
class KnowledgeResult:
    """Result of a knowledge query."""
    documents: List[KnowledgeDocument] = field(default_factory=list)
    confidence: float = 0.2
    context_summary: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@runtime_checkable
class KnowledgeRetriever(Protocol):
    """Query interface consumed by the generic response path."""

    async def query(self, text: str, context_hints: Optional[Dict[str, Any]] = None) -> KnowledgeResult:
        ...


class KnowledgeBase:
    """
    In-memory keyword knowledge base.

    Similarity is the share of query terms found in a document's content,
    keywords and category. Documents below min_similarity are dropped and
    at most top_k are returned.
    """

    # Types shown first in the assembled context
    TYPE_ORDER = ["premium_calculation", "risk_factors"]

    def __init__(
        self,
        documents: Optional[List[KnowledgeDocument]] = None,
        top_k: int = 8,
        min_similarity: float = 0.1,
        cache_size: int = 256
    ):
        self.documents = list(documents or [])
        self.top_k = top_k
        self.min_similarity = min_similarity
        self.cache_size = cache_size
        self._cache: Dict[str, KnowledgeResult] = {}
        self._index = [(doc, self._document_terms(doc)) for doc in self.documents]

    @classmethod
    def from_file(cls, path: Path, **kwargs) -> "KnowledgeBase":
        """
        Load documents from a JSON file.

        The file holds either a list of documents or {"documents": [...]}.
        A missing file yields an empty knowledge base.
        """
        path = Path(path)
        if not path.exists():
            logger.warning(f"Knowledge base file not found: {path}")
            return cls([], **kwargs)

        with path.open(encoding="utf-8") as f:
            raw = json.load(f)

        items = raw.get("documents", []) if isinstance(raw, dict) else raw
        documents = []
        for item in items:
            metadata = item.get("metadata", {})
            documents.append(KnowledgeDocument(
                id=item["id"],
                content=item["content"],
                type=item.get("type") or metadata.get("type", "general"),
                category=item.get("category") or metadata.get("category"),
                priority=item.get("priority") or metadata.get("priority", "medium"),
                keywords=list(item.get("keywords") or metadata.get("keywords", [])),
            ))

        logger.info(f"Loaded {len(documents)} knowledge documents from {path}")
        return cls(documents, **kwargs)

    async def query(self, text: str, context_hints: Optional[Dict[str, Any]] = None) -> KnowledgeResult:
        """
        Retrieve documents relevant to a customer message.

        Args:
            text: Customer message
            context_hints: Optional product_type, lead_source, stage, budget

        Returns:
            KnowledgeResult
        """
        hints = {k: v for k, v in (context_hints or {}).items() if v}
        enhanced = self.build_contextual_query(text, hints)
        cache_key = f"{enhanced}_{json.dumps(hints, sort_keys=True, default=str)}"

        cached = self._cache.get(cache_key)
        if cached is not None:
            logger.debug("Returning cached knowledge result")
            return cached

        terms = _terms(enhanced)
        scored: List[Tuple[float, KnowledgeDocument]] = []
        for doc, doc_terms in self._index:
            similarity = self._similarity(terms, doc_terms)
            if similarity > self.min_similarity:
                scored.append((similarity, doc))

        scored.sort(key=lambda item: item[0], reverse=True)
        documents = [doc for _, doc in scored[: self.top_k]]

        result = KnowledgeResult(
            documents=documents,
            confidence=self.calculate_confidence(documents, text),
            context_summary=self.build_context(documents),
            metadata=self._metadata(documents, scored),
        )

        if len(self._cache) >= self.cache_size:
            self._cache.pop(next(iter(self._cache)))
        self._cache[cache_key] = result

        logger.info(f"Knowledge query matched {len(documents)} documents")
        return result

    def build_contextual_query(self, text: str, hints: Dict[str, Any]) -> str:
        """Append context hints and topic expansions to the query."""
        query = text
        if hints.get("product_type"):
            query += f" {hints['product_type']} insurance"
        if hints.get("lead_source"):
            query += f" {hints['lead_source']} customer"
        if hints.get("stage"):
            query += f" {hints['stage']} conversation"
        if hints.get("budget"):
            query += f" budget {hints['budget']}"

        if self.is_premium_query(text):
            query += " premium calculation cost pricing"
        if contains_any(text.lower(), RISK_KEYWORDS):
            query += " risk factors assessment underwriting"
        return query

    @staticmethod
    def is_premium_query(text: str) -> bool:
        return contains_any((text or "").lower(), DEFAULT_RULES.premium_keywords)

    def calculate_confidence(self, documents: List[KnowledgeDocument], text: str) -> float:
        """
        Confidence in a retrieval result.

        0.2 with no documents; otherwise 0.6 base, +0.2 for a premium query
        answered by calculation documents, +0.15 for five or more documents
        (+0.1 for three or more), +0.05 for a high-priority document,
        capped at 0.95.
        """
        if not documents:
            return 0.2

        confidence = 0.6
        if self.is_premium_query(text) and any(d.type == "premium_calculation" for d in documents):
            confidence += 0.2

        if len(documents) >= 5:
            confidence += 0.15
        elif len(documents) >= 3:
            confidence += 0.1

        if any(d.priority == "high" for d in documents):
            confidence += 0.05

        return round(min(confidence, 0.95), 2)

    def build_context(self, documents: List[KnowledgeDocument]) -> str:
        """Group documents by type, calculation and risk information first."""
        grouped: Dict[str, List[KnowledgeDocument]] = {}
        for doc in documents:
            grouped.setdefault(doc.type, []).append(doc)

        ordered = [t for t in self.TYPE_ORDER if t in grouped]
        ordered += [t for t in grouped if t not in self.TYPE_ORDER]

        sections = []
        for doc_type in ordered:
            header = doc_type.upper().replace("_", " ")
            body = "\n\n".join(doc.content for doc in grouped[doc_type])
            sections.append(f"=== {header} ===\n{body}")
        return "\n\n".join(sections)

    def clear_cache(self) -> None:
        self._cache.clear()

    def stats(self) -> Dict[str, Any]:
        categories: Dict[str, int] = {}
        for doc in self.documents:
            categories[doc.type] = categories.get(doc.type, 0) + 1
        return {
            "total_documents": len(self.documents),
            "types": categories,
            "cache_size": len(self._cache),
        }

    @staticmethod
    def _document_terms(doc: KnowledgeDocument) -> set:
        text = " ".join([doc.content, " ".join(doc.keywords), doc.category or "", doc.type.replace("_", " ")])
        return _terms(text)

    @staticmethod
    def _similarity(query_terms: set, doc_terms: set) -> float:
        if not query_terms:
            return 0.0
        return len(query_terms & doc_terms) / len(query_terms)

    @staticmethod
    def _metadata(
        documents: List[KnowledgeDocument],
        scored: List[Tuple[float, KnowledgeDocument]]
    ) -> Dict[str, Any]:
        types = {d.type for d in documents}
        return {
            "has_product_info": "product" in types,
            "has_objection_handling": "objection" in types,
            "has_market_context": "market_context" in types,
            "has_premium_calculation": "premium_calculation" in types,
            "has_risk_factors": "risk_factors" in types,
            "has_claims_info": "claims" in types,
            "top_similarity": round(scored[0][0], 3) if scored else 0.0,
        }


def _terms(text: str) -> set:
    words = re.findall(r"[a-z0-9₵]+", (text or "").lower())
    return {_stem(w) for w in words if w not in STOPWORDS and len(w) > 1}


def _stem(word: str) -> str:
    # Plural folding only
    if len(word) > 4 and word.endswith("ies"):
        return word[:-3] + "y"
    if len(word) > 3 and word.endswith("s") and not word.endswith("ss"):
        return word[:-1]
    return word
