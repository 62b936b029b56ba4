# =============================================================================
# Query API — Ask a Multi-Agent
# =============================================================================
#
# POST /multi-agents/{multi_agent_id}/query
#
# FLOW:
#   1. Load the multi-agent (agents in order + relations) → 404 if unknown
#   2. Orchestrator.execute_query (never raises; returns a dict)
#   3. Map the dict to HTTP:
#        {"synthesized_response", ...}      → 200 QueryResponse
#        {"error": "No agents ..."}         → 422
#        {"error": "Failed to process ..."} → 500
#
# This endpoint only does loading, error mapping and response
# shaping. Everything else happens in agents/orchestrator.py.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession

from agentmesh.agents.orchestrator import NO_AGENTS_ERROR, Orchestrator
from agentmesh.api.deps import get_orchestrator
from agentmesh.db.engine import get_async_session
from agentmesh.db.repository import load_multi_agent
from agentmesh.models.requests import QueryRequest
from agentmesh.models.responses import QueryResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Multi-Agent Query"])


@router.post(
    "/multi-agents/{multi_agent_id}/query",
    response_model=QueryResponse,
    summary="Query every agent of a multi-agent and synthesize one answer",
)
async def query_multi_agent(
    multi_agent_id: int,
    request: QueryRequest,
    session: AsyncSession = Depends(get_async_session),
    orchestrator: Orchestrator = Depends(get_orchestrator),
) -> QueryResponse:
    """
    Error handling:
    - Unknown multi-agent → 404
    - Multi-agent without agents → 422
    - Any other pipeline failure → 500
    - Individual agent failures → 200, listed in individual_responses
    """
    multi_agent = await load_multi_agent(session, multi_agent_id)
    if multi_agent is None:
        raise HTTPException(
            status_code=404,
            detail=f"Multi-agent {multi_agent_id} not found",
        )

    logger.info(
        "Query request: multi_agent=%s, prompt='%s', session=%s, strategy=%s",
        multi_agent_id, request.prompt[:80], request.session_id, request.strategy,
    )

    result = await orchestrator.execute_query(
        multi_agent,
        request.prompt,
        session_id=request.session_id,
        strategy=request.strategy,
    )

    if "error" in result:
        status_code = 422 if result["error"] == NO_AGENTS_ERROR else 500
        raise HTTPException(status_code=status_code, detail=result)

    return QueryResponse(**result)
