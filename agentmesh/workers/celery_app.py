# =============================================================================
# Celery Application Configuration
# =============================================================================
#
# Celery runs the background join-key detection job, which samples two
# agents' collections and can take several seconds on large payloads:
#
#   POST /agents/{s}/relations/{t}/detect?async=true
#       → detect_join_keys.delay(s, t, multi_agent_id)
#       → worker: sample → score → upsert relation
#
# ARCHITECTURE:
# ┌──────────┐     ┌────────┐     ┌───────────────┐     ┌────────┐
# │ FastAPI  │────▶│ Redis  │────▶│ Celery Worker │────▶│ Redis  │
# │(producer)│     │(broker)│     │  (consumer)   │     │(result)│
# └──────────┘     └────────┘     └───────────────┘     └────────┘
#                     db 0                                  db 1
# =============================================================================

from celery import Celery
from celery.signals import after_setup_logger

from agentmesh.config import settings
from agentmesh.logging_config import configure_logging

celery_app = Celery(
    "agentmesh.workers",
    broker=settings.celery_broker_url,
    backend=settings.celery_result_backend,
)

celery_app.conf.update(
    # --- Serialization ---
    # JSON only: pickle can execute arbitrary code during deserialization.
    task_serializer="json",
    accept_content=["json"],
    result_serializer="json",

    # --- Reliability ---
    # Acknowledge after completion so a crashed worker's task is re-queued.
    task_acks_late=True,
    task_reject_on_worker_lost=True,
    worker_prefetch_multiplier=1,

    # --- Timeouts ---
    # Soft limit (SIGTERM) after 2 minutes, hard kill after 5.
    task_soft_time_limit=120,
    task_time_limit=300,

    # --- Results ---
    result_expires=3600,

    # --- Task Discovery ---
    include=["agentmesh.workers.tasks"],
)


@after_setup_logger.connect
def _setup_worker_logging(logger=None, **kwargs) -> None:
    configure_logging()
