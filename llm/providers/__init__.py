"""
LLM Provider implementations.

Every provider exposes the same coroutine:
    complete(system_prompt, user_prompt, temperature, max_tokens) -> str
"""

from typing import Optional, Protocol, runtime_checkable

from .bedrock import BedrockProvider
from .openai_provider import OpenAIProvider


@runtime_checkable
class LLMClient(Protocol):
    """Completion interface consumed by the orchestrator."""

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> str:
        ...


__all__ = ["BedrockProvider", "OpenAIProvider", "LLMClient"]
