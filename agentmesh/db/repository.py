# =============================================================================
# Repository — ORM Rows ⇄ Core Dataclasses
# =============================================================================
#
# The orchestration core works on plain dataclasses (agents/types.py).
# This module is the only place that turns rows into those dataclasses and
# writes detector output back:
#
#   load_agent(session, id)        → types.Agent | None
#   load_multi_agent(session, id)  → types.MultiAgent | None
#                                    (agents in agent_ids order, relations
#                                     from multi_agent_relations)
#   SqlRelationStore               → upsert of AgentRelation /
#                                    MultiAgentRelation rows
#
# Upserts are select-then-update-or-insert inside the caller's session;
# the unique constraints on the relation tables catch any race.
# =============================================================================

from __future__ import annotations

import logging

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from agentmesh.agents import types
from agentmesh.db.models import Agent, AgentRelation, MultiAgent, MultiAgentRelation

logger = logging.getLogger(__name__)


def to_agent(row: Agent) -> types.Agent:
    return types.Agent(id=row.id, name=row.name, vector_collection=row.vector_collection)


async def load_agent(session: AsyncSession, agent_id: int) -> types.Agent | None:
    row = await session.get(Agent, agent_id)
    return to_agent(row) if row is not None else None


async def load_multi_agent(
    session: AsyncSession, multi_agent_id: int,
) -> types.MultiAgent | None:
    """
    Load a multi-agent with its agents (in configured order) and relations.

    Ids in agent_ids that no longer exist are skipped.
    """
    row = await session.get(MultiAgent, multi_agent_id)
    if row is None:
        return None

    agent_ids = list(row.agent_ids or [])
    agents: list[types.Agent] = []
    if agent_ids:
        result = await session.execute(select(Agent).where(Agent.id.in_(agent_ids)))
        by_id = {agent.id: agent for agent in result.scalars().all()}
        missing = [agent_id for agent_id in agent_ids if agent_id not in by_id]
        if missing:
            logger.warning(
                "Multi-agent %s references missing agents %s", multi_agent_id, missing,
            )
        agents = [to_agent(by_id[agent_id]) for agent_id in agent_ids if agent_id in by_id]

    relations = [
        types.AgentRelation(
            source_agent_id=relation.source_agent_id,
            target_agent_id=relation.target_agent_id,
            join_key=relation.join_key,
            description=relation.description,
            confidence=relation.suggested_confidence,
        )
        for relation in row.relations
    ]

    return types.MultiAgent(id=row.id, name=row.name, agents=agents, relations=relations)


class SqlRelationStore:
    """Relation persistence for JoinKeyDetector.detect_and_store()."""

    def __init__(self, session: AsyncSession) -> None:
        self._session = session

    async def upsert_agent_relation(
        self,
        source_agent_id: int,
        target_agent_id: int,
        join_key: str,
        description: str,
        confidence: float,
    ) -> None:
        result = await self._session.execute(
            select(AgentRelation).where(
                AgentRelation.source_agent_id == source_agent_id,
                AgentRelation.target_agent_id == target_agent_id,
                AgentRelation.join_key == join_key,
            )
        )
        relation = result.scalar_one_or_none()

        if relation is None:
            self._session.add(AgentRelation(
                source_agent_id=source_agent_id,
                target_agent_id=target_agent_id,
                join_key=join_key,
                description=description,
                confidence=confidence,
            ))
        else:
            relation.description = description
            relation.confidence = confidence

        await self._session.flush()
        logger.info(
            "Stored relation %s → %s on '%s' (confidence %.3f)",
            source_agent_id, target_agent_id, join_key, confidence,
        )

    async def upsert_multi_agent_relation(
        self,
        multi_agent_id: int,
        source_agent_id: int,
        target_agent_id: int,
        join_key: str,
        description: str,
        confidence: float,
    ) -> None:
        result = await self._session.execute(
            select(MultiAgentRelation).where(
                MultiAgentRelation.multi_agent_id == multi_agent_id,
                MultiAgentRelation.source_agent_id == source_agent_id,
                MultiAgentRelation.target_agent_id == target_agent_id,
                MultiAgentRelation.join_key == join_key,
            )
        )
        relation = result.scalar_one_or_none()

        if relation is None:
            self._session.add(MultiAgentRelation(
                multi_agent_id=multi_agent_id,
                source_agent_id=source_agent_id,
                target_agent_id=target_agent_id,
                join_key=join_key,
                description=description,
                suggested_confidence=confidence,
            ))
        else:
            relation.description = description
            relation.suggested_confidence = confidence

        await self._session.flush()
