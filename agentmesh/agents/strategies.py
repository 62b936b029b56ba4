# =============================================================================
# Communication Strategies — How a Prompt Fans Out to N Agents
# =============================================================================
#
# Three interchangeable strategies share one contract:
#
#     await strategy.execute(agents, prompt, context, session_id)
#         -> list[AgentResponse]   (one per agent, in agent order)
#
#   DIRECT    — sequential; each agent gets the raw prompt and its OWN
#               session history. No data flows between agents.
#   BROADCAST — concurrent (asyncio.gather); every agent gets the raw
#               prompt and the same snapshot of the SHARED history.
#   CHAINED   — sequential; agent k's prompt is extended with a JSON dump
#               of everything agents 1..k-1 wrote to the shared context.
#
# Every strategy, per agent:
#   1. calls the RAG collaborator, bounded by agent_timeout_seconds
#   2. on success → AgentResponse with text + raw payload
#   3. on failure → AgentResponse with the generic error message; the loop
#      carries on with the next agent
#   4. records the outcome with ContextManager.update_from_agent()
# and calls ContextManager.add_user_prompt() once, before any agent.
#
# Selection is by StrategyName. build_strategy_registry() maps each name
# to its implementation; the selector only ever returns a name.
# =============================================================================

from __future__ import annotations

import asyncio
import enum
import json
import logging
from collections.abc import Sequence
from typing import Protocol

from agentmesh.agents.context import HISTORY_KEY, ContextManager, SharedContext
from agentmesh.agents.rag import RagService
from agentmesh.agents.types import Agent, AgentResponse
from agentmesh.config import settings

logger = logging.getLogger(__name__)


class StrategyName(str, enum.Enum):
    """The three dispatch strategies."""

    DIRECT = "direct"
    BROADCAST = "broadcast"
    CHAINED = "chained"


class CommunicationStrategy(Protocol):
    name: StrategyName

    async def execute(
        self,
        agents: Sequence[Agent],
        prompt: str,
        context: SharedContext,
        session_id: str | None,
    ) -> list[AgentResponse]:
        ...


# ---------------------------------------------------------------------------
# Shared per-agent step
# ---------------------------------------------------------------------------


async def query_agent(
    rag: RagService,
    manager: ContextManager,
    agent: Agent,
    prompt: str,
    history: list[dict[str, str]],
    session_id: str | None,
    timeout: float | None = None,
) -> AgentResponse:
    """
    Query one agent and record the outcome in the context.

    Never raises for agent-level failures (including timeouts);
    cancellation of the surrounding task still propagates.
    """
    try:
        raw = await asyncio.wait_for(
            rag.chat(agent, prompt, history),
            timeout=timeout if timeout is not None else settings.agent_timeout_seconds,
        )
        response = AgentResponse.success(agent, raw.get("response"), raw)
    except Exception as exc:
        logger.exception(
            "Error querying agent %s (%s), session=%s: %s",
            agent.id, agent.name, session_id, exc,
        )
        response = AgentResponse.failure(agent, exc)

    await manager.update_from_agent(agent.id, response.to_dict())
    return response


# ---------------------------------------------------------------------------
# Implementations
# ---------------------------------------------------------------------------


class DirectStrategy:
    """Independent, sequential queries using each agent's own history."""

    name = StrategyName.DIRECT

    def __init__(self, rag: RagService, manager: ContextManager) -> None:
        self._rag = rag
        self._manager = manager

    async def execute(
        self,
        agents: Sequence[Agent],
        prompt: str,
        context: SharedContext,
        session_id: str | None,
    ) -> list[AgentResponse]:
        await self._manager.add_user_prompt(prompt)

        responses: list[AgentResponse] = []
        for agent in agents:
            history = await self._manager.agent_history(agent.id)
            response = await query_agent(
                self._rag, self._manager, agent, prompt, history, session_id,
            )
            if not response.failed:
                await self._manager.record_agent_turn(
                    agent.id, prompt, response.response,
                )
            responses.append(response)
        return responses


class BroadcastStrategy:
    """Concurrent queries with one shared-history snapshot for all agents."""

    name = StrategyName.BROADCAST

    def __init__(self, rag: RagService, manager: ContextManager) -> None:
        self._rag = rag
        self._manager = manager

    async def execute(
        self,
        agents: Sequence[Agent],
        prompt: str,
        context: SharedContext,
        session_id: str | None,
    ) -> list[AgentResponse]:
        await self._manager.add_user_prompt(prompt)

        history = list(context.get(HISTORY_KEY, []))
        logger.info("Broadcasting to %d agents", len(agents))

        # gather keeps agent order; cancelling the query cancels every call
        return list(await asyncio.gather(*(
            query_agent(
                self._rag, self._manager, agent, prompt, history, session_id,
            )
            for agent in agents
        )))


class ChainedStrategy:
    """Sequential queries; each agent sees what earlier agents produced."""

    name = StrategyName.CHAINED

    def __init__(self, rag: RagService, manager: ContextManager) -> None:
        self._rag = rag
        self._manager = manager

    async def execute(
        self,
        agents: Sequence[Agent],
        prompt: str,
        context: SharedContext,
        session_id: str | None,
    ) -> list[AgentResponse]:
        await self._manager.add_user_prompt(prompt)

        responses: list[AgentResponse] = []
        for agent in agents:
            history = list(context.get(HISTORY_KEY, []))
            augmented = augment_prompt(prompt, context)
            response = await query_agent(
                self._rag, self._manager, agent, augmented, history, session_id,
            )
            responses.append(response)
        return responses


def augment_prompt(prompt: str, context: SharedContext) -> str:
    """Append a readable dump of the accumulated context to the prompt."""
    previous = context.all()
    if not previous:
        return prompt
    dump = json.dumps(previous, indent=2, ensure_ascii=False, default=str)
    return f"{prompt}\n\nPrevious context:\n{dump}"


# ---------------------------------------------------------------------------
# Registry
# ---------------------------------------------------------------------------


def build_strategy_registry(
    rag: RagService,
    manager: ContextManager,
) -> dict[StrategyName, CommunicationStrategy]:
    """Map every StrategyName to an implementation bound to this query."""
    return {
        StrategyName.DIRECT: DirectStrategy(rag, manager),
        StrategyName.BROADCAST: BroadcastStrategy(rag, manager),
        StrategyName.CHAINED: ChainedStrategy(rag, manager),
    }
