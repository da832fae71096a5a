"""
LLM Orchestration Module for the Insurance Sales Assistant.

This module handles:
- LLM provider abstraction (Bedrock, OpenAI)
- Structured (JSON) analyses with schema validation
- Conversation memory
- Prompt template management
- The per-message conversation pipeline
"""

from .conversation_store import (
    ConversationMessage,
    ConversationStore,
    CustomerProfile,
    InMemoryConversationStore,
)
from .orchestrator import ContextHints, ConversationOrchestrator, ConversationState
from .prompt_templates import PromptTemplates, PromptType
from .responses import (
    ChatResponse,
    ClarificationPayload,
    ErrorPayload,
    FollowUpPayload,
    GenericPayload,
    QuotePayload,
    ResponseKind,
)
from .structured_analysis import StructuredAnalysisError, StructuredAnalyzer

__all__ = [
    "ConversationMessage",
    "ConversationStore",
    "CustomerProfile",
    "InMemoryConversationStore",
    "ContextHints",
    "ConversationOrchestrator",
    "ConversationState",
    "PromptTemplates",
    "PromptType",
    "ChatResponse",
    "ClarificationPayload",
    "ErrorPayload",
    "FollowUpPayload",
    "GenericPayload",
    "QuotePayload",
    "ResponseKind",
    "StructuredAnalysisError",
    "StructuredAnalyzer",
]
