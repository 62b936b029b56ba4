# =============================================================================
# Retry Policy — Exponential Backoff for External Calls
# =============================================================================
#
# One policy object wraps any call to an external collaborator (embedding
# API, vector store) instead of each call site growing its own loop.
#
# Delay before attempt n+1 (n = attempts made so far):
#     min(base_delay * multiplier ** (n - 1), max_delay)
# With the defaults (1s base, x2): 1s, 2s, 4s, ...
#
# Only exceptions listed in `retry_on` are retried. Anything else
# propagates on the first failure. When attempts run out, the last
# exception is re-raised unchanged.
#
# Per-agent RAG calls in the orchestrator are NOT wrapped: a failed agent
# becomes an error response rather than a retried one.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, TypeVar

from agentmesh.config import settings

logger = logging.getLogger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class RetryPolicy:
    """Exponential backoff settings plus the exceptions worth retrying."""

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    multiplier: float = 2.0
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait after the given (1-based) failed attempt."""
        return min(self.base_delay * self.multiplier ** (attempt - 1), self.max_delay)

    def call(self, fn: Callable[..., T], *args: Any, **kwargs: Any) -> T:
        """Run a sync callable, sleeping between retryable failures."""
        attempt = 1
        while True:
            try:
                return fn(*args, **kwargs)
            except self.retry_on as exc:
                if attempt >= self.max_attempts:
                    logger.warning(
                        "%s failed after %d attempts: %s",
                        _name(fn), attempt, exc,
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "%s failed (attempt %d/%d): %s. Retrying in %.1fs",
                    _name(fn), attempt, self.max_attempts, exc, delay,
                )
                time.sleep(delay)
                attempt += 1

    async def acall(
        self,
        fn: Callable[..., Awaitable[T]],
        *args: Any,
        **kwargs: Any,
    ) -> T:
        """Async counterpart of call() — awaits fn and uses asyncio.sleep."""
        attempt = 1
        while True:
            try:
                return await fn(*args, **kwargs)
            except self.retry_on as exc:
                if attempt >= self.max_attempts:
                    logger.warning(
                        "%s failed after %d attempts: %s",
                        _name(fn), attempt, exc,
                    )
                    raise
                delay = self.delay_for(attempt)
                logger.info(
                    "%s failed (attempt %d/%d): %s. Retrying in %.1fs",
                    _name(fn), attempt, self.max_attempts, exc, delay,
                )
                await asyncio.sleep(delay)
                attempt += 1


def default_policy(
    retry_on: tuple[type[BaseException], ...] = (Exception,),
) -> RetryPolicy:
    """Build a policy from the retry_* settings."""
    return RetryPolicy(
        max_attempts=settings.retry_max_attempts,
        base_delay=settings.retry_base_delay_seconds,
        max_delay=settings.retry_max_delay_seconds,
        retry_on=retry_on,
    )


def _name(fn: Callable[..., Any]) -> str:
    return getattr(fn, "__qualname__", None) or repr(fn)
