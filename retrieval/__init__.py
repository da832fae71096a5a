"""
Retrieval Module for the Insurance Sales Assistant.

This module provides knowledge retrieval for the generic response path:
- Keyword-overlap document matching
- Contextual query enrichment from conversation hints
- Type-grouped context with confidence scoring
"""

from .knowledge_base import KnowledgeBase, KnowledgeDocument, KnowledgeResult, KnowledgeRetriever

__all__ = [
    "KnowledgeBase",
    "KnowledgeDocument",
    "KnowledgeResult",
    "KnowledgeRetriever",
]
