# =============================================================================
# Relations API — Join-Key Detection Between Two Agents
# =============================================================================
#
# POST /agents/{source_id}/relations/{target_id}/detect
#
#   sync  (default)    → run the detector in the request, upsert the
#                        relation, return the suggestion (or null)
#   ?async=true        → enqueue the Celery task, return its id
#
# "No suggestion" is a 200 with `suggestion: null`: an inconclusive
# detection is a normal outcome. Unknown agent ids → 404.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.ext.asyncio import AsyncSession

from agentmesh.agents.join_keys import JoinKeyDetector
from agentmesh.api.deps import get_join_key_detector
from agentmesh.db.engine import get_async_session
from agentmesh.db.repository import load_agent
from agentmesh.models.requests import DetectJoinKeysRequest
from agentmesh.models.responses import DetectJoinKeysResponse, JoinKeySuggestionResponse
from agentmesh.workers.tasks import detect_join_keys

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Agent Relations"])


@router.post(
    "/agents/{source_id}/relations/{target_id}/detect",
    response_model=DetectJoinKeysResponse,
    summary="Suggest a join key between two agents' datasets",
)
async def detect_relation(
    source_id: int,
    target_id: int,
    request: DetectJoinKeysRequest | None = None,
    run_async: bool = Query(default=False, alias="async"),
    session: AsyncSession = Depends(get_async_session),
    detector: JoinKeyDetector = Depends(get_join_key_detector),
) -> DetectJoinKeysResponse:
    multi_agent_id = request.multi_agent_id if request is not None else None

    source = await load_agent(session, source_id)
    if source is None:
        raise HTTPException(status_code=404, detail=f"Agent {source_id} not found")
    target = await load_agent(session, target_id)
    if target is None:
        raise HTTPException(status_code=404, detail=f"Agent {target_id} not found")

    if run_async:
        task = detect_join_keys.delay(source_id, target_id, multi_agent_id)
        logger.info(
            "Queued join-key detection %s → %s as task %s", source_id, target_id, task.id,
        )
        return DetectJoinKeysResponse(task_id=task.id)

    suggestion = await detector.detect_and_store(source, target, multi_agent_id)
    if suggestion is None:
        return DetectJoinKeysResponse(suggestion=None)

    return DetectJoinKeysResponse(
        suggestion=JoinKeySuggestionResponse(**suggestion.to_dict()),
    )
