# =============================================================================
# Logging Setup
# =============================================================================
# Modules only ever call `logging.getLogger(__name__)`. Process entry points
# (the FastAPI app factory and the Celery worker) call configure_logging()
# once to attach a handler to the root logger.
# =============================================================================

from __future__ import annotations

import logging

from agentmesh.config import settings

_LOG_FORMAT = "%(asctime)s %(levelname)-8s %(name)s: %(message)s"

_configured = False


def configure_logging(level: str | None = None) -> None:
    """
    Attach a stream handler to the root logger.

    Level resolution: explicit argument, then LOG_LEVEL, then DEBUG when
    debug mode is on, otherwise INFO. Safe to call more than once.
    """
    global _configured

    resolved = (
        level
        or settings.log_level
        or ("DEBUG" if settings.debug else "INFO")
    ).upper()

    root = logging.getLogger()
    root.setLevel(resolved)

    if _configured:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root.addHandler(handler)

    # httpx logs every request at INFO; keep it quiet unless debugging
    logging.getLogger("httpx").setLevel(
        logging.DEBUG if resolved == "DEBUG" else logging.WARNING
    )
    _configured = True
