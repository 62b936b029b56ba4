# =============================================================================
# AgentMesh — Multi-Agent RAG Orchestration
# =============================================================================
# Fans one prompt out to a group of knowledge agents (each backed by its own
# vector collection), reconciles their answers and returns one synthesized
# response. Also suggests join keys between agents' datasets.
#
# Package structure:
#   agentmesh/
#   ├── agents/       → orchestration core (context, strategies, selector,
#   │                    conflict resolver, integrator, join-key detector)
#   ├── api/          → FastAPI route handlers (query, relations)
#   ├── db/           → Database engine, ORM models, repository
#   ├── models/       → Pydantic V2 request/response schemas
#   ├── services/     → External collaborators (LLM, embeddings, point
#   │                    store, session cache, retry policy)
#   └── workers/      → Celery task definitions and configuration
# =============================================================================
