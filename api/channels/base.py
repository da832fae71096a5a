"""
Channel providers for the Insurance Sales Assistant.

A ChannelProvider delivers one assistant reply. MessageSender wraps a
provider with a per-attempt timeout and a bounded number of attempts.
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Dict, Optional

logger = logging.getLogger(__name__)


@dataclass
class ChannelMessage:
    """Message to send via a channel."""
    to: str  # Phone number or user id
    content: str


@dataclass
class ChannelResponse:
    """Response from channel send operation."""
    success: bool
    message_id: Optional[str] = None
    error: Optional[str] = None
    attempts: int = 1

    def to_dict(self) -> dict:
        return {
            "success": self.success,
            "message_id": self.message_id,
            "error": self.error,
            "attempts": self.attempts,
        }


class ChannelProvider(ABC):
    """Abstract base class for messaging channels."""

    name = "channel"

    @abstractmethod
    async def send_message(self, message: ChannelMessage) -> ChannelResponse:
        """Send a text message."""
        ...

    @abstractmethod
    async def health_check(self) -> bool:
        """Check if channel is operational."""
        ...


class InlineChannel(ChannelProvider):
    """Web chat: the reply travels back in the HTTP response."""

    name = "web"

    async def send_message(self, message: ChannelMessage) -> ChannelResponse:
        return ChannelResponse(success=True, message_id=f"web_{uuid.uuid4().hex[:12]}")

    async def health_check(self) -> bool:
        return True


class MessageSender:
    """Sends assistant replies with bounded retry, choosing the channel by name."""

    def __init__(
        self,
        providers: Dict[str, ChannelProvider],
        default_channel: str = "web",
        max_attempts: int = 3,
        timeout_seconds: float = 10.0,
        retry_delay: float = 0.5
    ):
        """
        Initialize the sender.

        Args:
            providers: Channel providers by name (web, whatsapp)
            default_channel: Channel used when none is named or it is unknown
            max_attempts: Attempts before giving up
            timeout_seconds: Limit for each attempt
            retry_delay: Base delay between attempts, grows linearly
        """
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if default_channel not in providers:
            raise ValueError(f"Unknown default channel: {default_channel}")
        self.providers = providers
        self.default_channel = default_channel
        self.max_attempts = max_attempts
        self.timeout_seconds = timeout_seconds
        self.retry_delay = retry_delay

    async def send(self, user_id: str, text: str, channel: Optional[str] = None) -> ChannelResponse:
        """
        Deliver a reply. Never raises.

        Returns:
            The successful ChannelResponse, or the last failure
        """
        provider = self.providers.get(channel or self.default_channel) or self.providers[self.default_channel]
        message = ChannelMessage(to=user_id, content=text)
        result = ChannelResponse(success=False, error="not sent", attempts=0)

        for attempt in range(1, self.max_attempts + 1):
            try:
                result = await asyncio.wait_for(
                    provider.send_message(message),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                result = ChannelResponse(success=False, error=f"timed out after {self.timeout_seconds}s")
            except Exception as e:
                result = ChannelResponse(success=False, error=str(e))

            result.attempts = attempt
            if result.success:
                return result

            if attempt < self.max_attempts:
                logger.info(f"Retrying {provider.name} send to {user_id} (attempt {attempt + 1}/{self.max_attempts})")
                await asyncio.sleep(self.retry_delay * attempt)

        logger.error(f"{provider.name} send to {user_id} failed after {result.attempts} attempts: {result.error}")
        return result
