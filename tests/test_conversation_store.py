"""Tests for conversation memory."""

import asyncio

import pytest

from llm.conversation_store import (
    ConversationMessage,
    ConversationStore,
    CustomerProfile,
    InMemoryConversationStore,
)


@pytest.fixture
def store():
    return InMemoryConversationStore(max_messages=20)


def _user(text):
    return ConversationMessage("user", text)


def _assistant(text):
    return ConversationMessage("assistant", text)


# ── History ───────────────────────────────────────────

class TestHistory:
    def test_satisfies_protocol(self, store):
        assert isinstance(store, ConversationStore)

    def test_append_and_read(self, store):
        async def run():
            await store.append("u1", _user("hello"))
            await store.append("u1", _assistant("Akwaaba!"))
            return await store.history("u1")

        history = asyncio.run(run())
        assert [m.role for m in history] == ["user", "assistant"]
        assert history[1].content == "Akwaaba!"

    def test_unknown_user_has_empty_history(self, store):
        assert asyncio.run(store.history("nobody")) == []

    def test_window_evicts_oldest(self):
        store = InMemoryConversationStore(max_messages=20)

        async def run():
            for i in range(12):
                await store.append_pair("u1", _user(f"q{i}"), _assistant(f"a{i}"))
            return await store.history("u1")

        history = asyncio.run(run())
        assert len(history) == 20
        assert history[0].content == "q2"
        assert history[-1].content == "a11"

    def test_history_is_a_snapshot(self, store):
        async def run():
            await store.append("u1", _user("one"))
            snapshot = await store.history("u1")
            await store.append("u1", _assistant("two"))
            return snapshot

        assert len(asyncio.run(run())) == 1

    def test_users_are_isolated(self, store):
        async def run():
            await store.append("a", _user("from a"))
            await store.append("b", _user("from b"))
            return await store.history("a"), await store.history("b")

        a, b = asyncio.run(run())
        assert [m.content for m in a] == ["from a"]
        assert [m.content for m in b] == ["from b"]

    def test_concurrent_appends_are_not_lost(self, store):
        async def run():
            await asyncio.gather(*[
                store.append_pair("u1", _user(f"q{i}"), _assistant(f"a{i}")) for i in range(5)
            ])
            return await store.history("u1")

        history = asyncio.run(run())
        assert len(history) == 10
        # each pair stays adjacent
        for i in range(0, 10, 2):
            assert history[i].role == "user"
            assert history[i + 1].content == "a" + history[i].content[1:]

    def test_invalid_role_rejected(self):
        with pytest.raises(ValueError):
            ConversationMessage("system", "nope")

    def test_invalid_window_rejected(self):
        with pytest.raises(ValueError):
            InMemoryConversationStore(max_messages=0)


# ── Profile and State ─────────────────────────────────

class TestProfileAndState:
    def test_merge_profile(self, store):
        async def run():
            await store.merge_profile("u1", {"age": 41, "location": "accra"})
            await store.merge_profile("u1", {"age": 42, "location": None, "favourite_team": "Hearts"})
            return await store.get_profile("u1")

        profile = asyncio.run(run())
        assert profile.age == 42
        assert profile.location == "accra"
        assert profile.extra == {"favourite_team": "Hearts"}

    def test_profile_copy_is_detached(self, store):
        async def run():
            profile = await store.merge_profile("u1", {"age": 30})
            profile.age = 99
            return await store.get_profile("u1")

        assert asyncio.run(run()).age == 30

    def test_default_profile(self, store):
        assert asyncio.run(store.get_profile("new")) == CustomerProfile()

    def test_state_round_trip_and_clear(self, store):
        async def run():
            await store.set_state("u1", "calculated")
            await store.append("u1", _user("hi"))
            before = await store.get_state("u1")
            await store.clear("u1")
            return before, await store.get_state("u1"), await store.history("u1")

        before, after, history = asyncio.run(run())
        assert before == "calculated"
        assert after is None
        assert history == []

    def test_reads_and_clear_leave_no_locks_behind(self, store):
        async def run():
            await store.history("ghost")
            await store.get_profile("ghost")
            await store.get_state("ghost")
            await store.context("ghost")
            unknown_reads = set(store._locks)

            await store.append("u1", _user("hi"))
            after_write = set(store._locks)
            await store.clear("u1")
            return unknown_reads, after_write, set(store._locks)

        unknown_reads, after_write, after_clear = asyncio.run(run())
        assert unknown_reads == set()
        assert after_write == {"u1"}
        assert after_clear == set()

    def test_context_and_stats(self, store):
        async def run():
            await store.append_pair("u1", _user("hi"), _assistant("hello"))
            await store.set_state("u1", "discovery")
            return await store.context("u1")

        context = asyncio.run(run())
        assert context["exchange_count"] == 1
        assert context["state"] == "discovery"
        assert store.stats()["total_messages"] == 2
