"""Tests for UsageTracker, ResourceBudget and InMemorySessionStore."""

from __future__ import annotations

import threading

import pytest

from strand.models.run import AgentRunParams, ResourceBudget
from strand.protocols import Message, UsageReport
from strand.session import InMemorySessionStore
from strand.usage import UsageTracker


class TestUsageTracker:
    def test_record_request(self):
        tracker = UsageTracker()
        tracker.record_request("s1", "agent-1", 100, 50)
        tracker.record_request("s1", None, 10, 5)

        assert tracker.get_session_usage("s1") == UsageReport(110, 55)
        assert tracker.get_agent_usage("agent-1") == UsageReport(100, 50)
        assert tracker.agent_keys() == ["agent-1"]

    def test_unknown_keys(self):
        tracker = UsageTracker()
        assert tracker.get_session_usage("nope") is None
        assert tracker.get_agent_usage("nope") is None

    def test_returns_copies(self):
        tracker = UsageTracker()
        tracker.record("s1", None, UsageReport(1, 1))
        tracker.get_session_usage("s1").add(100, 100)
        assert tracker.get_session_usage("s1").total_tokens == 2

    def test_reset_session(self):
        tracker = UsageTracker()
        tracker.record("s1", None, UsageReport(1, 1))
        tracker.reset_session("s1")
        assert tracker.session_keys() == []

    def test_thread_safe(self):
        tracker = UsageTracker()

        def worker():
            for _ in range(1000):
                tracker.record_request("s", "a", 1, 1)

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert tracker.get_session_usage("s").total_tokens == 16_000


class TestResourceBudget:
    def test_defaults_to_max(self):
        budget = ResourceBudget(max_tokens=100)
        assert budget.remaining_tokens == 100
        assert budget.has_budget(100)
        assert not budget.has_budget(101)

    def test_deduct_clamps(self):
        budget = ResourceBudget(max_tokens=100)
        assert budget.deduct(30) == 70
        assert budget.deduct(500) == 0
        assert budget.deduct(-5) == 0
        assert budget.used_tokens == 100

    def test_params_context(self):
        params = AgentRunParams(
            "s1", depth=2, thread_id="t", resource_budget=ResourceBudget(10), agent_id="a"
        )
        assert params.context() == {
            "session_key": "s1",
            "depth": 2,
            "thread_id": "t",
            "agent_id": "a",
            "max_tokens": 10,
            "remaining_tokens": 10,
        }

    def test_allowlist_normalized_to_tuple(self):
        params = AgentRunParams("s1", model_allowlist=["a", "b"])
        assert params.model_allowlist == ("a", "b")


class TestSessionStore:
    @pytest.mark.asyncio
    async def test_append_and_history(self):
        store = InMemorySessionStore()
        await store.append("s1", [Message.user("a"), Message.assistant("b")])
        await store.append("s1", [Message.user("c")])

        assert [m.text for m in await store.history("s1")] == ["a", "b", "c"]
        assert [m.text for m in await store.history("s1", limit=2)] == ["b", "c"]
        assert await store.history("s1", limit=0) == []
        assert await store.history("other") == []
        assert store.sessions() == ["s1"]

    @pytest.mark.asyncio
    async def test_clear(self):
        store = InMemorySessionStore()
        await store.append("s1", [Message.user("a")])
        await store.append("s2", [Message.user("b")])
        store.clear("s1")
        assert store.sessions() == ["s2"]
        store.clear()
        assert store.sessions() == []
