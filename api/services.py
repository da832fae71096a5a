"""
Service initialization and dependency injection for the Insurance Sales Assistant API.

Creates and manages all service instances used by the API.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

from config.settings import get_settings, Settings
from lead_scoring.intent_classifier import IntentClassifier
from lead_scoring.lead_store import InMemoryLeadStore
from lead_scoring.scoring_model import LeadCaptureScorer
from llm.conversation_store import InMemoryConversationStore
from llm.orchestrator import ConversationOrchestrator
from llm.providers import BedrockProvider, OpenAIProvider
from llm.structured_analysis import StructuredAnalyzer
from premium.calculator import PremiumCalculator
from premium.parameter_extractor import ParameterExtractor
from retrieval.knowledge_base import KnowledgeBase

from .channels import ChannelProvider, InlineChannel, MessageSender, MetaCloudWhatsApp

logger = logging.getLogger(__name__)

KNOWLEDGE_FILE = "knowledge_base.json"


class Services:
    """Container for all application services."""

    def __init__(self):
        self.settings: Optional[Settings] = None
        self.llm: Optional[Any] = None
        self.analyzer: Optional[StructuredAnalyzer] = None
        self.conversation_store: Optional[InMemoryConversationStore] = None
        self.knowledge_base: Optional[KnowledgeBase] = None
        self.lead_store: Optional[InMemoryLeadStore] = None
        self.sender: Optional[MessageSender] = None
        self.orchestrator: Optional[ConversationOrchestrator] = None
        self._initialized = False

    def initialize(self, settings: Optional[Settings] = None, llm: Optional[Any] = None):
        """
        Initialize all services.

        Args:
            settings: Settings to use instead of the environment
            llm: Completion client to use instead of the configured provider
        """
        if self._initialized:
            return

        self.settings = settings or get_settings()
        logger.info(f"Initializing services with provider: {self.settings.llm_provider}")

        try:
            self._init_llm(llm)
            self._init_stores()
            self._init_knowledge()
            self._init_sender()
            self._init_orchestrator()
            self._initialized = True
            logger.info("All services initialized successfully")
        except Exception as e:
            logger.error(f"Service initialization failed: {e}")
            # Allow API to start even if some services fail
            self._initialized = True
            logger.warning("API starting in degraded mode")

    def _init_llm(self, llm: Optional[Any]):
        """Initialize the completion client and the structured analyzer."""
        s = self.settings

        if llm is not None:
            self.llm = llm
        elif not s.llm_enabled:
            logger.warning(f"LLM provider '{s.llm_provider}' not configured, using rule-based analysis")
        elif s.is_openai:
            self.llm = OpenAIProvider(
                api_key=s.openai_api_key,
                model_id=s.llm_model_id,
                max_tokens=s.max_tokens,
                temperature=s.temperature,
            )
        else:
            self.llm = BedrockProvider(
                model_id=s.llm_model_id,
                region=s.aws_region,
                max_tokens=s.max_tokens,
                temperature=s.temperature,
            )

        self.analyzer = StructuredAnalyzer(
            self.llm,
            timeout_seconds=s.llm_timeout_seconds,
            temperature=s.analysis_temperature,
        )
        if self.llm is not None:
            logger.info(f"LLM ready: {s.llm_model_id}")

    def _init_stores(self):
        """Initialize conversation memory and the lead store."""
        self.conversation_store = InMemoryConversationStore(max_messages=self.settings.history_window)
        self.lead_store = InMemoryLeadStore()

    def _init_knowledge(self):
        """Load the knowledge base from the data directory."""
        s = self.settings
        self.knowledge_base = KnowledgeBase.from_file(
            Path(s.data_directory) / KNOWLEDGE_FILE,
            top_k=s.knowledge_top_k,
            min_similarity=s.knowledge_min_similarity,
        )
        logger.info(f"Knowledge base ready: {len(self.knowledge_base.documents)} documents")

    def _init_sender(self):
        """Initialize outbound channels."""
        s = self.settings
        providers: Dict[str, ChannelProvider] = {"web": InlineChannel()}

        if s.whatsapp_enabled:
            providers["whatsapp"] = MetaCloudWhatsApp(
                api_token=s.whatsapp_api_token,
                phone_number_id=s.whatsapp_phone_number_id,
                timeout=s.send_timeout_seconds,
            )
            logger.info("WhatsApp channel ready")
        else:
            logger.warning("WhatsApp credentials not set, replies are returned inline only")

        self.sender = MessageSender(
            providers,
            default_channel="web",
            max_attempts=s.send_max_attempts,
            timeout_seconds=s.send_timeout_seconds,
        )

    def _init_orchestrator(self):
        """Initialize the conversation orchestrator."""
        s = self.settings

        lead_scorer = LeadCaptureScorer(
            self.analyzer,
            first_message_threshold=s.first_message_threshold,
            early_conversation_threshold=s.early_conversation_threshold,
            established_threshold=s.established_conversation_threshold,
        )

        self.orchestrator = ConversationOrchestrator(
            store=self.conversation_store,
            llm=self.llm,
            knowledge=self.knowledge_base,
            lead_store=self.lead_store,
            sender=self.sender,
            analyzer=self.analyzer,
            intent_classifier=IntentClassifier(self.analyzer),
            lead_scorer=lead_scorer,
            extractor=ParameterExtractor(default_city=s.default_city),
            calculator=PremiumCalculator(),
            brand_name=s.brand_name,
            max_tokens=s.max_tokens,
            temperature=s.temperature,
            llm_timeout_seconds=s.llm_timeout_seconds,
        )
        logger.info("Conversation orchestrator ready")

    @property
    def is_ready(self) -> bool:
        return self._initialized and self.orchestrator is not None

    def health(self) -> dict:
        """Return health status of all services."""
        return {
            "initialized": self._initialized,
            "llm": self.llm is not None,
            "knowledge_base": self.knowledge_base is not None,
            "lead_store": self.lead_store is not None,
            "whatsapp": bool(self.sender and "whatsapp" in self.sender.providers),
            "orchestrator": self.orchestrator is not None,
        }

    def reset(self):
        """Drop all service instances so the next initialize() starts fresh."""
        self.__init__()


# Singleton
_services = Services()


def get_services() -> Services:
    """Get the global services instance."""
    return _services


def initialize_services():
    """Initialize all services (called at startup)."""
    _services.initialize()
