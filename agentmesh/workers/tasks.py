# =============================================================================
# Celery Task Definitions — Background Join-Key Detection
# =============================================================================
#
# `detect_join_keys` runs JoinKeyDetector.detect_and_store() for one agent
# pair outside the request cycle.
#
# IMPORTANT: Celery workers are SYNCHRONOUS.
# The detector and the repository are async, so the task drives them with
# asyncio.run(). Each run gets its own NullPool engine (get_task_session)
# and its own point store, so nothing bound to a previous event loop is
# reused.
#
# RETRY STRATEGY:
# max_retries=3 with exponential backoff (30s, 60s, 120s) for transient
# failures (vector store unreachable, DB connection drops). Unknown agent
# ids are not retried.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Any

from agentmesh.agents.join_keys import JoinKeyDetector
from agentmesh.db.engine import get_task_session
from agentmesh.db.repository import SqlRelationStore, load_agent
from agentmesh.services.vectorstore import get_point_store
from agentmesh.workers.celery_app import celery_app

logger = logging.getLogger(__name__)

RETRY_BASE_DELAY_SECONDS = 30


class UnknownAgentError(LookupError):
    """An agent id passed to the task does not exist."""


async def _detect(
    source_agent_id: int,
    target_agent_id: int,
    multi_agent_id: int | None,
) -> dict[str, Any] | None:
    point_store = get_point_store()
    try:
        async with get_task_session() as session:
            source = await load_agent(session, source_agent_id)
            target = await load_agent(session, target_agent_id)
            if source is None or target is None:
                missing = source_agent_id if source is None else target_agent_id
                raise UnknownAgentError(f"Agent {missing} not found")

            detector = JoinKeyDetector(point_store, SqlRelationStore(session))
            suggestion = await detector.detect_and_store(source, target, multi_agent_id)
            return suggestion.to_dict() if suggestion is not None else None
    finally:
        close = getattr(point_store, "aclose", None)
        if close is not None:
            await close()


@celery_app.task(
    bind=True,
    name="detect_join_keys",
    max_retries=3,
    default_retry_delay=RETRY_BASE_DELAY_SECONDS,
)
def detect_join_keys(
    self,
    source_agent_id: int,
    target_agent_id: int,
    multi_agent_id: int | None = None,
) -> dict[str, Any]:
    """
    Detect and store a join key between two agents.

    Returns:
        {"source_agent_id", "target_agent_id", "suggestion": dict | None}
    """
    task_id = self.request.id
    logger.info(
        "[%s] Join-key detection: %s → %s (multi_agent=%s)",
        task_id, source_agent_id, target_agent_id, multi_agent_id,
    )

    try:
        suggestion = asyncio.run(_detect(source_agent_id, target_agent_id, multi_agent_id))
    except UnknownAgentError:
        logger.error("[%s] Unknown agent, not retrying", task_id)
        raise
    except Exception as exc:
        logger.exception(
            "[%s] Join-key detection failed for %s → %s: %s",
            task_id, source_agent_id, target_agent_id, exc,
        )
        countdown = RETRY_BASE_DELAY_SECONDS * (2 ** self.request.retries)
        raise self.retry(exc=exc, countdown=countdown)

    logger.info("[%s] Join-key detection done: %s", task_id, suggestion)
    return {
        "source_agent_id": source_agent_id,
        "target_agent_id": target_agent_id,
        "suggestion": suggestion,
    }
