# =============================================================================
# Workers Package — Celery Background Tasks
# =============================================================================
#   - celery_app.py: Celery application configuration
#   - tasks.py: detect_join_keys (sample two agents, score, store relation)
#
# Join-key detection scrolls up to two hundred points and scores every
# field pair; on wide payloads that is too slow to keep an HTTP request
# waiting, so the API can hand it to a worker and return a task_id.
# =============================================================================
