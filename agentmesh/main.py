# =============================================================================
# FastAPI Application Factory
# =============================================================================
#
# Run with:  uvicorn agentmesh.main:app --reload
#
# Routers:
#   - api/query.py     — POST /multi-agents/{id}/query
#   - api/relations.py — POST /agents/{s}/relations/{t}/detect
#   - GET /health (here)
# =============================================================================

from fastapi import FastAPI

from agentmesh.api.query import router as query_router
from agentmesh.api.relations import router as relations_router
from agentmesh.config import settings
from agentmesh.logging_config import configure_logging
from agentmesh.models.responses import HealthResponse


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Coordinates queries across multiple RAG agents and synthesizes one answer.",
    )
    app.include_router(query_router)
    app.include_router(relations_router)

    @app.get("/health", response_model=HealthResponse, tags=["Health"])
    async def health() -> HealthResponse:
        return HealthResponse(status="healthy", version=settings.app_version)

    return app


app = create_app()
