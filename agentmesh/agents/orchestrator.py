# =============================================================================
# Orchestrator — One Prompt, N Agents, One Answer
# =============================================================================
#
# PIPELINE (per execute_query call):
#   resolve agents ──▶ initialize context ──▶ pick strategy
#        ──▶ strategy.execute ──▶ integrator.integrate ──▶ result
#
# The orchestrator is the failure boundary for a whole query. Callers
# always get a dict back:
#   success: {"synthesized_response", "individual_responses", "strategy"}
#   failure: {"error", "message"}
#
# DESIGN DECISION: Fresh context, manager and strategy registry per call.
# Nothing query-scoped lives on the Orchestrator itself, so a single
# instance can serve concurrent queries (the FastAPI dependency shares one).
#
# DESIGN DECISION: Collaborators injected at construction.
# RAG service, session cache and integrator are passed in, so tests run
# the full pipeline against fakes with no network.
# =============================================================================

from __future__ import annotations

import logging
from typing import Any

from agentmesh.agents.context import ContextManager
from agentmesh.agents.integrator import ResponseIntegrator
from agentmesh.agents.rag import RagService
from agentmesh.agents.selector import StrategySelector, resolve_strategy_hint
from agentmesh.agents.strategies import build_strategy_registry
from agentmesh.agents.types import MultiAgent
from agentmesh.services.session_cache import SessionCache

logger = logging.getLogger(__name__)

NO_AGENTS_ERROR = "No agents associated with this multi-agent."
QUERY_FAILED_ERROR = "Failed to process query."


class NoAgentsError(Exception):
    """The multi-agent resolved to an empty agent set."""

    def __init__(self, multi_agent_id: int) -> None:
        self.multi_agent_id = multi_agent_id
        super().__init__(f"Multi-agent {multi_agent_id} has no agents to query.")


class Orchestrator:
    """
    Runs a prompt across a multi-agent's agents.

    Args:
        rag: Per-agent RAG collaborator.
        session_cache: Conversation-history store.
        integrator: Filters and synthesizes the per-agent answers.
        selector: Strategy selector for "auto" queries.
    """

    def __init__(
        self,
        rag: RagService,
        session_cache: SessionCache,
        integrator: ResponseIntegrator,
        selector: StrategySelector | None = None,
    ) -> None:
        self._rag = rag
        self._session_cache = session_cache
        self._integrator = integrator
        self._selector = selector if selector is not None else StrategySelector()

    async def execute_query(
        self,
        multi_agent: MultiAgent,
        prompt: str,
        session_id: str | None = None,
        strategy: str | None = "auto",
    ) -> dict[str, Any]:
        try:
            agents = list(multi_agent.agents)
            if not agents:
                raise NoAgentsError(multi_agent.id)

            manager = ContextManager(self._session_cache)
            await manager.initialize(multi_agent, prompt, session_id)
            context = manager.context

            name = resolve_strategy_hint(strategy)
            if name is None:
                name = self._selector.select(agents, prompt, context)

            logger.info(
                "Query on multi_agent=%s (%s): %d agents, strategy=%s, session=%s",
                multi_agent.id, multi_agent.name, len(agents), name.value, session_id,
            )

            registry = build_strategy_registry(self._rag, manager)
            responses = await registry[name].execute(agents, prompt, context, session_id)

            result = await self._integrator.integrate(responses, context)
            result["strategy"] = name.value
            return result

        except NoAgentsError as exc:
            logger.warning("%s", exc)
            return {"error": NO_AGENTS_ERROR, "message": str(exc)}
        except Exception as exc:
            logger.exception(
                "Query failed for multi_agent=%s, session=%s: %s",
                multi_agent.id, session_id, exc,
            )
            return {"error": QUERY_FAILED_ERROR, "message": str(exc)}
