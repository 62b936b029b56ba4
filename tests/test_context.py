# =============================================================================
# Unit Tests — Shared Context & Context Manager
# =============================================================================
#
# Uses the in-memory session cache, so no Redis is needed.
# =============================================================================

from __future__ import annotations

import asyncio

from agentmesh.agents.context import (
    HISTORY_KEY,
    RELATIONS_KEY,
    ContextManager,
    SharedContext,
    agent_data_key,
)
from agentmesh.agents.types import Agent, AgentRelation, MultiAgent
from agentmesh.services.session_cache import InMemorySessionCache, shared_history_key


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


def _multi_agent(relations=None) -> MultiAgent:
    return MultiAgent(
        id=7,
        name="Sales Desk",
        agents=[Agent(1, "Orders", "orders"), Agent(2, "Customers", "customers")],
        relations=relations or [],
    )


# ---------------------------------------------------------------------------
# Test: SharedContext
# ---------------------------------------------------------------------------


class TestSharedContext:

    def test_set_get_has(self):
        ctx = SharedContext()
        ctx.set("prompt", "hi")
        assert ctx.get("prompt") == "hi"
        assert ctx.has("prompt")
        assert not ctx.has("missing")

    def test_get_default(self):
        assert SharedContext().get("missing", 42) == 42

    def test_merge_overwrites(self):
        ctx = SharedContext()
        ctx.set("a", 1)
        ctx.merge({"a": 2, "b": 3})
        assert ctx.all() == {"a": 2, "b": 3}

    def test_clear(self):
        ctx = SharedContext()
        ctx.merge({"a": 1, "b": 2})
        ctx.clear()
        assert len(ctx) == 0

    def test_all_returns_copy(self):
        ctx = SharedContext()
        ctx.set("a", 1)
        snapshot = ctx.all()
        snapshot["b"] = 2
        assert not ctx.has("b")

    def test_agent_data_key(self):
        assert agent_data_key(5) == "agent_5_data"


# ---------------------------------------------------------------------------
# Test: ContextManager.initialize
# ---------------------------------------------------------------------------


class TestInitialize:

    def test_seeds_metadata(self):
        manager = ContextManager(InMemorySessionCache())
        _run(manager.initialize(_multi_agent(), "hello", "s1"))
        ctx = manager.context
        assert ctx.get("multi_agent_id") == 7
        assert ctx.get("multi_agent_name") == "Sales Desk"
        assert ctx.get("prompt") == "hello"
        assert ctx.get("session_id") == "s1"

    def test_clears_previous_entries(self):
        manager = ContextManager(InMemorySessionCache())
        manager.context.set("stale", True)
        _run(manager.initialize(_multi_agent(), "hello", None))
        assert not manager.context.has("stale")

    def test_relations_empty_by_default(self):
        manager = ContextManager(InMemorySessionCache())
        _run(manager.initialize(_multi_agent(), "hello", None))
        assert manager.context.get(RELATIONS_KEY) == []

    def test_relations_seeded_from_multi_agent(self):
        relation = AgentRelation(1, 2, "customer_id", "orders → customers", 0.9)
        manager = ContextManager(InMemorySessionCache())
        _run(manager.initialize(_multi_agent([relation]), "hello", None))
        assert manager.context.get(RELATIONS_KEY) == [relation.to_dict()]

    def test_no_session_means_no_history(self):
        manager = ContextManager(InMemorySessionCache())
        _run(manager.initialize(_multi_agent(), "hello", None))
        assert not manager.context.has(HISTORY_KEY)

    def test_session_without_stored_history_starts_empty(self):
        manager = ContextManager(InMemorySessionCache())
        _run(manager.initialize(_multi_agent(), "hello", "s1"))
        assert manager.context.get(HISTORY_KEY) == []

    def test_loads_stored_history(self):
        cache = InMemorySessionCache()
        stored = [{"role": "user", "content": "earlier"}]
        _run(cache.put(shared_history_key(7, "s1"), stored, 60))

        manager = ContextManager(cache)
        _run(manager.initialize(_multi_agent(), "hello", "s1"))
        assert manager.context.get(HISTORY_KEY) == stored


# ---------------------------------------------------------------------------
# Test: history writes
# ---------------------------------------------------------------------------


class TestHistoryWrites:

    def _manager(self, session_id="s1"):
        cache = InMemorySessionCache()
        manager = ContextManager(cache, ttl_seconds=60)
        _run(manager.initialize(_multi_agent(), "hello", session_id))
        return cache, manager

    def test_add_user_prompt_appends_and_persists(self):
        cache, manager = self._manager()
        _run(manager.add_user_prompt("hello"))

        expected = [{"role": "user", "content": "hello"}]
        assert manager.context.get(HISTORY_KEY) == expected
        assert _run(cache.get(shared_history_key(7, "s1"))) == expected

    def test_add_user_prompt_noop_without_session(self):
        cache, manager = self._manager(session_id=None)
        _run(manager.add_user_prompt("hello"))
        assert not manager.context.has(HISTORY_KEY)
        assert cache.keys() == []

    def test_update_from_agent_stores_data(self):
        _, manager = self._manager()
        data = {"agent_id": 1, "agent_name": "Orders", "response": "42 orders"}
        _run(manager.update_from_agent(1, data))
        assert manager.context.get("agent_1_data") == data

    def test_update_from_agent_appends_assistant_turn(self):
        cache, manager = self._manager()
        _run(manager.update_from_agent(1, {"response": "42 orders"}))

        expected = [{"role": "assistant", "content": "42 orders"}]
        assert manager.context.get(HISTORY_KEY) == expected
        assert _run(cache.get(shared_history_key(7, "s1"))) == expected

    def test_update_from_agent_error_does_not_touch_history(self):
        _, manager = self._manager()
        _run(manager.update_from_agent(1, {"error": "Failed to get response from this agent."}))
        assert manager.context.get(HISTORY_KEY) == []
        assert manager.context.has("agent_1_data")

    def test_agent_history_roundtrip(self):
        _, manager = self._manager()
        _run(manager.record_agent_turn(1, "q", "a"))
        assert _run(manager.agent_history(1)) == [
            {"role": "user", "content": "q"},
            {"role": "assistant", "content": "a"},
        ]
        assert _run(manager.agent_history(2)) == []

    def test_agent_history_empty_without_session(self):
        cache, manager = self._manager(session_id=None)
        _run(manager.record_agent_turn(1, "q", "a"))
        assert _run(manager.agent_history(1)) == []
        assert cache.keys() == []

    def test_earlier_history_snapshot_not_mutated(self):
        _, manager = self._manager()
        _run(manager.add_user_prompt("hello"))
        snapshot = manager.context.get(HISTORY_KEY)
        _run(manager.update_from_agent(1, {"response": "answer"}))
        assert len(snapshot) == 1
        assert len(manager.context.get(HISTORY_KEY)) == 2
