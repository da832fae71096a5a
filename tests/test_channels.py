"""Tests for outbound channels."""

import asyncio

import httpx
import pytest

from api.channels.base import (
    ChannelMessage,
    ChannelProvider,
    ChannelResponse,
    InlineChannel,
    MessageSender,
)
from api.channels.whatsapp import MetaCloudWhatsApp


class FlakyChannel(ChannelProvider):
    """Fails a fixed number of times, then succeeds."""

    name = "flaky"

    def __init__(self, failures, error=None, delay=0.0):
        self.failures = failures
        self.error = error
        self.delay = delay
        self.calls = 0

    async def send_message(self, message):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.calls <= self.failures:
            if self.error is not None:
                raise self.error
            return ChannelResponse(success=False, error="rejected")
        return ChannelResponse(success=True, message_id=f"msg_{self.calls}")

    async def health_check(self):
        return True


def _sender(provider, **kwargs):
    kwargs.setdefault("retry_delay", 0)
    return MessageSender({"web": InlineChannel(), "flaky": provider}, **kwargs)


# ── Message Sender ────────────────────────────────────

class TestMessageSender:
    def test_inline_channel(self):
        sender = MessageSender({"web": InlineChannel()})
        result = asyncio.run(sender.send("session-1", "hello"))
        assert result.success is True
        assert result.message_id.startswith("web_")
        assert result.attempts == 1

    def test_unknown_channel_uses_default(self):
        sender = MessageSender({"web": InlineChannel()})
        assert asyncio.run(sender.send("u", "hi", channel="sms")).success is True

    def test_retries_until_success(self):
        provider = FlakyChannel(failures=2)
        result = asyncio.run(_sender(provider).send("u", "hi", channel="flaky"))
        assert result.success is True
        assert result.attempts == 3
        assert provider.calls == 3

    def test_gives_up_after_max_attempts(self):
        provider = FlakyChannel(failures=10, error=RuntimeError("boom"))
        result = asyncio.run(_sender(provider, max_attempts=2).send("u", "hi", channel="flaky"))
        assert result.success is False
        assert result.error == "boom"
        assert result.attempts == 2

    def test_attempt_timeout(self):
        provider = FlakyChannel(failures=0, delay=1.0)
        sender = _sender(provider, max_attempts=1, timeout_seconds=0.01)
        result = asyncio.run(sender.send("u", "hi", channel="flaky"))
        assert result.success is False
        assert "timed out" in result.error

    def test_invalid_configuration(self):
        with pytest.raises(ValueError):
            MessageSender({"web": InlineChannel()}, max_attempts=0)
        with pytest.raises(ValueError):
            MessageSender({"web": InlineChannel()}, default_channel="whatsapp")


# ── WhatsApp ──────────────────────────────────────────

class TestMetaCloudWhatsApp:
    def _provider(self, handler):
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        return MetaCloudWhatsApp("token", "12345", client=client)

    def test_send_text(self):
        seen = {}

        def handler(request):
            seen["url"] = str(request.url)
            seen["auth"] = request.headers["Authorization"]
            seen["body"] = request.read().decode()
            return httpx.Response(200, json={"messages": [{"id": "wamid.1"}]})

        provider = self._provider(handler)
        result = asyncio.run(provider.send_message(ChannelMessage(to="+233244123456", content="Akwaaba")))

        assert result.success is True
        assert result.message_id == "wamid.1"
        assert seen["url"] == "https://graph.facebook.com/v18.0/12345/messages"
        assert seen["auth"] == "Bearer token"
        assert '"to":"233244123456"' in seen["body"].replace(" ", "")

    def test_http_error_is_a_failed_response(self):
        provider = self._provider(lambda request: httpx.Response(500, json={"error": "down"}))
        result = asyncio.run(provider.send_message(ChannelMessage(to="233200000000", content="hi")))
        assert result.success is False
        assert result.error
