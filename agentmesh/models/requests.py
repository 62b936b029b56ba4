# =============================================================================
# API Request Models — Pydantic V2 Schemas
# =============================================================================
#
# Shape of data coming INTO the API. FastAPI validates bodies against these
# (automatic 422 on bad input) and documents them at /docs.
# =============================================================================

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class QueryRequest(BaseModel):
    """
    Request body for POST /multi-agents/{id}/query.

    Example:
        {
            "prompt": "What is the total amount invoiced to ACME?",
            "session_id": "c1f6e2",
            "strategy": "auto"
        }
    """

    prompt: str = Field(
        ...,
        min_length=1,
        max_length=4000,
        description="The question sent to every agent in the multi-agent",
        examples=["Tell me everything"],
    )

    # Enables conversation history when set; history is keyed by
    # (multi-agent, session) and expires after session_ttl_hours.
    session_id: str | None = Field(
        default=None,
        max_length=255,
        description="Conversation id. Omit for a one-off query with no history.",
    )

    # "auto" lets the selector decide from relations and agent count.
    strategy: Literal["auto", "direct", "broadcast", "chained"] = Field(
        default="auto",
        description=(
            "Dispatch strategy. 'direct' (independent, sequential), "
            "'broadcast' (concurrent, shared history), 'chained' (each agent "
            "sees earlier agents' output), or 'auto'."
        ),
    )

    model_config = ConfigDict(
        json_schema_extra={
            "examples": [
                {"prompt": "Tell me everything", "strategy": "auto"},
                {
                    "prompt": "List the orders for customer 42",
                    "session_id": "c1f6e2",
                    "strategy": "chained",
                },
            ]
        }
    )


class DetectJoinKeysRequest(BaseModel):
    """Optional body for POST /agents/{source_id}/relations/{target_id}/detect."""

    # When set, the suggestion is also stored as a relation of this
    # multi-agent, which makes the selector choose the Chained strategy.
    multi_agent_id: int | None = Field(
        default=None,
        description="Also attach the detected relation to this multi-agent.",
    )
