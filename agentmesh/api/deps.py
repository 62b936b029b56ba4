# =============================================================================
# API Dependencies — Wiring the Core for FastAPI
# =============================================================================
#
# Route handlers never build collaborators themselves. They depend on:
#
#   get_orchestrator()       — process-wide Orchestrator (lazy singleton)
#   get_point_store_dep()    — configured vector-point store (lazy singleton)
#   get_join_key_detector()  — per-request detector bound to the request's
#                              DB session (so detected relations commit with
#                              the request)
#
# DESIGN DECISION: FastAPI dependencies (not module globals in handlers).
# Tests swap any of them through app.dependency_overrides and run the
# routes against fakes.
# =============================================================================

from __future__ import annotations

import logging

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from agentmesh.agents.integrator import ResponseIntegrator, SynthesisMode
from agentmesh.agents.join_keys import JoinKeyDetector
from agentmesh.agents.orchestrator import Orchestrator
from agentmesh.agents.rag import RagService
from agentmesh.config import settings
from agentmesh.db.engine import get_async_session
from agentmesh.db.repository import SqlRelationStore
from agentmesh.services.llm import get_llm_provider
from agentmesh.services.session_cache import get_session_cache
from agentmesh.services.vectorstore import PointStore, get_point_store

logger = logging.getLogger(__name__)

_point_store: PointStore | None = None
_orchestrator: Orchestrator | None = None


def get_point_store_dep() -> PointStore:
    global _point_store
    if _point_store is None:
        _point_store = get_point_store()
    return _point_store


def get_orchestrator() -> Orchestrator:
    """Build the orchestrator and its collaborators once per process."""
    global _orchestrator
    if _orchestrator is None:
        llm = get_llm_provider()
        mode = SynthesisMode(settings.synthesis_mode)
        _orchestrator = Orchestrator(
            rag=RagService(llm, get_point_store_dep()),
            session_cache=get_session_cache(),
            integrator=ResponseIntegrator(
                llm=llm if mode is SynthesisMode.REFINE else None,
                mode=mode,
            ),
        )
        logger.info("Orchestrator ready (synthesis=%s)", mode.value)
    return _orchestrator


def get_join_key_detector(
    session: AsyncSession = Depends(get_async_session),
    point_store: PointStore = Depends(get_point_store_dep),
) -> JoinKeyDetector:
    return JoinKeyDetector(point_store, SqlRelationStore(session))
