"""Shared fixtures for Insurance Sales Assistant tests."""

import os
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

DATA_DIR = Path(__file__).resolve().parent.parent / "data"

# Ensure we use test settings: no LLM, bundled knowledge base
os.environ.setdefault("LLM_PROVIDER", "none")
os.environ.setdefault("DATA_DIRECTORY", str(DATA_DIR))
os.environ.pop("WHATSAPP_API_TOKEN", None)


class FakeLLM:
    """Completion client returning canned replies in order, then the last one."""

    def __init__(self, *replies, error=None):
        self.replies = list(replies) or ["Akwaaba! How can I help you today?"]
        self.error = error
        self.calls = []

    async def complete(self, system_prompt, user_prompt, temperature=None, max_tokens=None):
        self.calls.append({"system": system_prompt, "user": user_prompt})
        if self.error is not None:
            raise self.error
        if len(self.replies) > 1:
            return self.replies.pop(0)
        return self.replies[0]


class FakeSender:
    """Records outbound replies instead of sending them."""

    def __init__(self, fail=False):
        self.fail = fail
        self.sent = []

    async def send(self, user_id, text, channel=None):
        from api.channels.base import ChannelResponse

        self.sent.append({"user_id": user_id, "text": text, "channel": channel})
        if self.fail:
            return ChannelResponse(success=False, error="provider down", attempts=3)
        return ChannelResponse(success=True, message_id=f"fake_{len(self.sent)}")


@pytest.fixture
def fake_sender():
    return FakeSender()


@pytest.fixture
def knowledge_base():
    from retrieval.knowledge_base import KnowledgeBase
    return KnowledgeBase.from_file(DATA_DIR / "knowledge_base.json")


@pytest.fixture
def client():
    """Create a FastAPI test client with freshly initialized services."""
    from api.main import app
    from api.services import get_services

    get_services().reset()
    with TestClient(app) as test_client:
        yield test_client
    get_services().reset()
