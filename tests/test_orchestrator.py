# =============================================================================
# Unit Tests — Orchestrator (end-to-end through the core)
# =============================================================================
#
# Runs the full pipeline (context → selector → strategy → integrator) with
# a fake RAG service and the in-memory session cache.
# =============================================================================

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from agentmesh.agents.integrator import ResponseIntegrator
from agentmesh.agents.orchestrator import NO_AGENTS_ERROR, QUERY_FAILED_ERROR, Orchestrator
from agentmesh.agents.types import AGENT_FAILURE_MESSAGE, Agent, AgentRelation, MultiAgent
from agentmesh.services.session_cache import InMemorySessionCache, history_key, shared_history_key


def _run(coro):
    """Helper to run async functions in sync tests."""
    return asyncio.run(coro)


class FakeRag:
    """Returns a long, relevant answer per agent; fails for ids in `failing`."""

    def __init__(self, failing=()):
        self.failing = set(failing)
        self.prompts: dict[int, str] = {}

    async def chat(self, agent, query, history=None):
        self.prompts[agent.id] = query
        if agent.id in self.failing:
            raise ConnectionError("vector store unreachable")
        return {
            "response": f"{agent.name} knows a great deal about this topic and has details to share.",
            "confidence": 0.7,
        }


def _multi_agent(n: int, relations=None) -> MultiAgent:
    return MultiAgent(
        id=11,
        name="Ops Desk",
        agents=[Agent(i, f"Agent{i}", f"col_{i}") for i in range(1, n + 1)],
        relations=relations or [],
    )


def _orchestrator(rag=None, cache=None) -> Orchestrator:
    return Orchestrator(
        rag=rag or FakeRag(),
        session_cache=cache or InMemorySessionCache(),
        integrator=ResponseIntegrator(),
    )


class TestExecuteQuery:

    def test_two_agents_direct(self):
        result = _run(_orchestrator().execute_query(_multi_agent(2), "Tell me everything"))

        assert result["strategy"] == "direct"
        assert len(result["individual_responses"]) == 2
        assert "**Agent1**" in result["synthesized_response"]
        assert "**Agent2**" in result["synthesized_response"]
        assert "Agent1 knows a great deal" in result["synthesized_response"]

    def test_five_agents_broadcast_with_one_failure(self):
        rag = FakeRag(failing={3})
        result = _run(_orchestrator(rag).execute_query(_multi_agent(5), "Tell me everything"))

        assert result["strategy"] == "broadcast"
        assert len(result["individual_responses"]) == 5
        errors = [r for r in result["individual_responses"] if "error" in r]
        assert len(errors) == 1
        assert errors[0]["agent_id"] == 3
        assert errors[0]["error"] == AGENT_FAILURE_MESSAGE
        assert "Agent3" not in result["synthesized_response"]
        assert "Agent5" in result["synthesized_response"]

    def test_relations_select_chained(self):
        rag = FakeRag()
        relation = AgentRelation(1, 2, "customer_id")
        result = _run(_orchestrator(rag).execute_query(
            _multi_agent(2, [relation]), "Orders per customer",
        ))
        assert result["strategy"] == "chained"
        assert "Previous context:" in rag.prompts[2]

    def test_hint_overrides_selector(self):
        result = _run(_orchestrator().execute_query(
            _multi_agent(2), "Tell me everything", strategy="broadcast",
        ))
        assert result["strategy"] == "broadcast"

    def test_unknown_hint_falls_back_to_direct(self):
        result = _run(_orchestrator().execute_query(
            _multi_agent(5), "Tell me everything", strategy="bogus",
        ))
        assert result["strategy"] == "direct"

    def test_response_count_matches_agents_even_when_all_fail(self):
        rag = FakeRag(failing={1, 2, 3, 4})
        result = _run(_orchestrator(rag).execute_query(_multi_agent(4), "anything"))
        assert len(result["individual_responses"]) == 4
        assert result["synthesized_response"] == "No relevant responses were found for your query."

    def test_no_agents_error(self):
        result = _run(_orchestrator().execute_query(_multi_agent(0), "hello"))
        assert result["error"] == NO_AGENTS_ERROR
        assert "11" in result["message"]

    def test_unexpected_failure_becomes_error_payload(self):
        integrator = MagicMock()
        integrator.integrate = AsyncMock(side_effect=KeyError("synthesized_response"))
        orchestrator = Orchestrator(FakeRag(), InMemorySessionCache(), integrator)

        result = _run(orchestrator.execute_query(_multi_agent(2), "hello"))
        assert result["error"] == QUERY_FAILED_ERROR
        assert "synthesized_response" in result["message"]

    def test_session_history_persisted(self):
        cache = InMemorySessionCache()
        _run(_orchestrator(cache=cache).execute_query(
            _multi_agent(5), "Tell me everything", session_id="abc",
        ))
        history = _run(cache.get(shared_history_key(11, "abc")))
        assert history[0] == {"role": "user", "content": "Tell me everything"}
        assert len(history) == 6

    def test_second_query_sees_previous_history(self):
        cache = InMemorySessionCache()
        orchestrator = _orchestrator(cache=cache)
        _run(orchestrator.execute_query(_multi_agent(5), "first", session_id="abc"))
        _run(orchestrator.execute_query(_multi_agent(5), "second", session_id="abc"))

        history = _run(cache.get(shared_history_key(11, "abc")))
        user_turns = [h["content"] for h in history if h["role"] == "user"]
        assert user_turns == ["first", "second"]

    def test_concurrent_queries_do_not_share_context(self):
        orchestrator = _orchestrator()

        async def scenario():
            return await asyncio.gather(
                orchestrator.execute_query(_multi_agent(2), "one"),
                orchestrator.execute_query(_multi_agent(5), "two"),
            )

        first, second = _run(scenario())
        assert len(first["individual_responses"]) == 2
        assert len(second["individual_responses"]) == 5


class TestHistoryKeysStaySeparate:
    """Agent ids and multi-agent ids can collide; their histories must not."""

    class RecordingRag(FakeRag):

        def __init__(self):
            super().__init__()
            self.histories: dict[int, list] = {}

        async def chat(self, agent, query, history=None):
            self.histories[agent.id] = list(history or [])
            return await super().chat(agent, query, history)

    def _same_id_multi_agent(self) -> MultiAgent:
        return MultiAgent(
            id=1,
            name="Ops Desk",
            agents=[Agent(1, "Agent1", "col_1"), Agent(2, "Agent2", "col_2")],
        )

    def test_direct_first_turn_sees_empty_own_history(self):
        rag = self.RecordingRag()
        _run(_orchestrator(rag).execute_query(
            self._same_id_multi_agent(), "first question", session_id="s", strategy="direct",
        ))
        assert rag.histories == {1: [], 2: []}

    def test_shared_and_agent_histories_persist_apart(self):
        cache = InMemorySessionCache()
        _run(_orchestrator(cache=cache).execute_query(
            self._same_id_multi_agent(), "first question", session_id="s", strategy="direct",
        ))

        own = _run(cache.get(history_key(1, "s")))
        assert own == [
            {"role": "user", "content": "first question"},
            {"role": "assistant", "content": own[1]["content"]},
        ]
        assert own[1]["content"].startswith("Agent1 knows")

        shared = _run(cache.get(shared_history_key(1, "s")))
        assert shared[0] == {"role": "user", "content": "first question"}
        assert len(shared) == 3

    def test_second_turn_agent_history_not_clobbered(self):
        rag = self.RecordingRag()
        cache = InMemorySessionCache()
        orchestrator = _orchestrator(rag, cache)
        multi_agent = self._same_id_multi_agent()
        _run(orchestrator.execute_query(multi_agent, "first", session_id="s", strategy="direct"))
        _run(orchestrator.execute_query(multi_agent, "second", session_id="s", strategy="direct"))

        assert [h["content"] for h in rag.histories[1] if h["role"] == "user"] == ["first"]
        assert len(_run(cache.get(history_key(1, "s")))) == 4
