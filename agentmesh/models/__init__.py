# =============================================================================
# Models Package — Pydantic V2 Schemas
# =============================================================================
# Request/response schemas for the caller-facing API:
#   - requests.py: QueryRequest, DetectJoinKeysRequest
#   - responses.py: QueryResponse, DetectJoinKeysResponse, HealthResponse
#
# These are SEPARATE from the ORM rows (agentmesh/db/models.py) and from
# the core dataclasses (agentmesh/agents/types.py); route handlers convert
# between them.
# =============================================================================
