"""
OpenAI LLM Provider.
"""

import logging
from typing import Optional

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)


class OpenAIProvider:
    """
    OpenAI LLM provider.

    Supports GPT-4o and GPT-3.5 models through the async client.
    """

    DEFAULT_MODEL = "gpt-4o-mini"

    def __init__(
        self,
        api_key: Optional[str] = None,
        model_id: str = DEFAULT_MODEL,
        max_tokens: int = 1024,
        temperature: float = 0.7,
        client: Optional[AsyncOpenAI] = None
    ):
        """
        Initialize OpenAI provider.

        Args:
            api_key: OpenAI API key
            model_id: Model ID
            max_tokens: Default maximum tokens
            temperature: Default generation temperature
            client: Pre-built async client
        """
        if client is not None:
            self._client = client
        else:
            self._client = AsyncOpenAI(api_key=api_key) if api_key else AsyncOpenAI()

        self.model_id = model_id
        self.max_tokens = max_tokens
        self.temperature = temperature

        logger.info(f"OpenAI provider initialized: {model_id}")

    async def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None
    ) -> str:
        """
        Generate a completion.

        Args:
            system_prompt: System prompt
            user_prompt: User prompt
            temperature: Override temperature
            max_tokens: Override max tokens

        Returns:
            Generated text
        """
        try:
            messages = []
            if system_prompt:
                messages.append({"role": "system", "content": system_prompt})
            messages.append({"role": "user", "content": user_prompt})

            response = await self._client.chat.completions.create(
                model=self.model_id,
                messages=messages,
                max_tokens=max_tokens or self.max_tokens,
                temperature=temperature if temperature is not None else self.temperature
            )

            return (response.choices[0].message.content or "").strip()

        except Exception as e:
            logger.error(f"OpenAI generation failed: {e}")
            raise

    async def health_check(self) -> bool:
        """Check if OpenAI is available."""
        try:
            await self.complete("", "Hello", max_tokens=10)
            return True
        except Exception:
            return False
