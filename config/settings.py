"""
Centralized configuration for the Insurance Sales Assistant.

All settings are loaded from environment variables via .env file.
"""

from functools import lru_cache
from typing import List, Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict
from dotenv import load_dotenv

load_dotenv()


class Settings(BaseSettings):
    """Application settings."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Brand
    brand_name: str = Field(default="Ghana Insurance Assist")
    currency_symbol: str = Field(default="GH₵")

    # AWS / Bedrock
    aws_region: str = Field(default="us-east-1")
    bedrock_llm_model_id: str = Field(default="us.anthropic.claude-sonnet-4-20250514-v1:0")

    # OpenAI
    openai_api_key: Optional[str] = Field(default=None)
    openai_llm_model: str = Field(default="gpt-4o-mini")

    # LLM provider selection: bedrock | openai | none
    llm_provider: str = Field(default="openai")
    max_tokens: int = Field(default=1024)
    temperature: float = Field(default=0.7)
    analysis_temperature: float = Field(default=0.2)
    llm_timeout_seconds: float = Field(default=20.0)

    # Conversation memory
    history_window: int = Field(default=20)
    default_city: str = Field(default="accra")

    # Lead capture thresholds (0-10 scale)
    first_message_threshold: float = Field(default=8.5)
    early_conversation_threshold: float = Field(default=8.0)
    established_conversation_threshold: float = Field(default=6.5)

    # Knowledge base
    data_directory: str = Field(default="./data")
    knowledge_top_k: int = Field(default=8)
    knowledge_min_similarity: float = Field(default=0.1)

    # Outbound channels
    whatsapp_api_token: Optional[str] = Field(default=None)
    whatsapp_phone_number_id: Optional[str] = Field(default=None)
    send_timeout_seconds: float = Field(default=10.0)
    send_max_attempts: int = Field(default=3)

    # API
    api_title: str = Field(default="Insurance Sales Assistant API")
    api_version: str = Field(default="1.0.0")
    cors_origins: str = Field(default="*")

    # Logging
    log_level: str = Field(default="INFO")
    debug: bool = Field(default=False)

    @property
    def is_bedrock(self) -> bool:
        return self.llm_provider.lower() == "bedrock"

    @property
    def is_openai(self) -> bool:
        return self.llm_provider.lower() == "openai"

    @property
    def llm_enabled(self) -> bool:
        if self.is_openai:
            return bool(self.openai_api_key)
        return self.is_bedrock

    @property
    def llm_model_id(self) -> str:
        if self.is_openai:
            return self.openai_llm_model
        return self.bedrock_llm_model_id

    @property
    def cors_origins_list(self) -> List[str]:
        return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

    @property
    def whatsapp_enabled(self) -> bool:
        return bool(self.whatsapp_api_token and self.whatsapp_phone_number_id)


@lru_cache()
def get_settings() -> Settings:
    """Get cached application settings."""
    return Settings()
