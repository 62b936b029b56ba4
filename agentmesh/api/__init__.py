# =============================================================================
# API Package — FastAPI Route Handlers
# =============================================================================
# Each module defines a FastAPI APIRouter for a specific feature:
#   - query.py: multi-agent query endpoint
#   - relations.py: join-key detection endpoint (sync or via Celery)
#   - deps.py: dependency providers for the core components
# =============================================================================
