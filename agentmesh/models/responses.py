# =============================================================================
# API Response Models — Pydantic V2 Schemas
# =============================================================================
#
# Shape of data going OUT of the API. Route handlers build these from the
# plain dicts the orchestrator and detector return.
# =============================================================================

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class HealthResponse(BaseModel):
    """Response for GET /health."""

    status: str = Field(description="Service status", examples=["healthy"])
    version: str = Field(description="Application version", examples=["0.1.0"])


class AgentResponseModel(BaseModel):
    """One agent's outcome, as returned in `individual_responses`."""

    agent_id: int
    agent_name: str

    # Exactly one of these is present
    response: str | None = None
    error: str | None = None

    raw_details: dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(extra="allow")


class QueryResponse(BaseModel):
    """
    Response for POST /multi-agents/{id}/query.

    `individual_responses` holds every agent's outcome, including failed
    and filtered ones; only `synthesized_response` is filtered.
    """

    synthesized_response: str
    individual_responses: list[AgentResponseModel]
    strategy: str = Field(
        description="Strategy actually used", examples=["direct"],
    )


class JoinKeySuggestionResponse(BaseModel):
    """A detected join key between two agents."""

    join_key: str = Field(description="Field in the source agent's data")
    target_key: str = Field(description="Matching field in the target agent's data")
    confidence: float = Field(ge=0.0, le=1.0)
    description: str


class DetectJoinKeysResponse(BaseModel):
    """
    Response for POST /agents/{source_id}/relations/{target_id}/detect.

    `suggestion` is null when no field pair scored above the threshold;
    that is a normal outcome, not an error. With ?async=true only
    `task_id` is set.
    """

    suggestion: JoinKeySuggestionResponse | None = None
    task_id: str | None = None
