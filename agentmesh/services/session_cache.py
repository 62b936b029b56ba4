# =============================================================================
# Session Cache — Conversation History Storage
# =============================================================================
#
# Conversation history is the only piece of per-query state that outlives
# the query. It is stored as a JSON list of {"role", "content"} entries
# under keys of the form:
#
#     multi_agent_history_{multi_agent_id}_{session_id}   (shared, all strategies)
#     history_{agent_id}_{session_id}                     (per-agent, Direct strategy)
#
# Agent and multi-agent ids come from separate sequences, so the two key
# families use different prefixes.
#
# Every put() rewrites the TTL, so an active session never expires.
#
# Consistency: last writer wins. Two concurrent queries on the same
# session key can drop each other's turns; history is eventually, not
# strictly, consistent.
#
# ARCHITECTURE:
#   SessionCache (Protocol)
#   ├── RedisSessionCache    — redis.asyncio, SET with EX
#   └── InMemorySessionCache — dict + monotonic expiry (dev, tests)
# =============================================================================

from __future__ import annotations

import json
import logging
import time
from typing import Any, Protocol

from agentmesh.config import settings

logger = logging.getLogger(__name__)


def history_key(agent_id: int | str, session_id: str) -> str:
    """Cache key for one agent's own conversation history."""
    return f"history_{agent_id}_{session_id}"


def shared_history_key(multi_agent_id: int | str, session_id: str) -> str:
    """Cache key for the history shared by all agents of a multi-agent."""
    return f"multi_agent_history_{multi_agent_id}_{session_id}"


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class SessionCache(Protocol):
    """Key-value store with per-key TTL."""

    async def get(self, key: str, default: Any = None) -> Any:
        """Return the stored value, or `default` when missing/expired."""
        ...

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        """Store a JSON-serialisable value for `ttl_seconds`."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Redis
# ---------------------------------------------------------------------------


class RedisSessionCache:
    """
    Redis-backed session cache.

    Values are JSON-encoded strings. Uses its own Redis db (2 by default)
    so history never collides with Celery's broker/result keys.
    """

    def __init__(self, url: str | None = None, client: Any | None = None) -> None:
        if client is None:
            import redis.asyncio as aioredis

            client = aioredis.from_url(
                url or settings.session_cache_url,
                decode_responses=True,
            )
        self._redis = client

    async def get(self, key: str, default: Any = None) -> Any:
        raw = await self._redis.get(key)
        if raw is None:
            return default
        try:
            return json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Discarding unreadable session cache entry %s", key)
            return default

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        await self._redis.set(key, json.dumps(value), ex=ttl_seconds)


# ---------------------------------------------------------------------------
# Implementation 2: In-Memory
# ---------------------------------------------------------------------------


class InMemorySessionCache:
    """
    Process-local session cache for development and tests.

    Values are stored as JSON strings so callers get fresh copies and the
    same serialisation rules apply as with Redis. Expired entries are
    dropped when read and purged on every write.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[str, float]] = {}

    async def get(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None:
            return default
        raw, expires_at = entry
        if time.monotonic() >= expires_at:
            del self._entries[key]
            return default
        return json.loads(raw)

    async def put(self, key: str, value: Any, ttl_seconds: int) -> None:
        now = time.monotonic()
        self._purge_expired(now)
        self._entries[key] = (json.dumps(value), now + ttl_seconds)

    def _purge_expired(self, now: float) -> None:
        expired = [k for k, (_, expires_at) in self._entries.items() if now >= expires_at]
        for k in expired:
            del self._entries[k]

    def keys(self) -> list[str]:
        return list(self._entries)


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

_cache: RedisSessionCache | InMemorySessionCache | None = None


def get_session_cache() -> RedisSessionCache | InMemorySessionCache:
    """Return the configured session cache (lazy singleton)."""
    global _cache
    if _cache is None:
        if settings.session_cache_backend == "memory":
            logger.info("Using in-memory session cache")
            _cache = InMemorySessionCache()
        else:
            logger.info("Using Redis session cache at %s", settings.session_cache_url)
            _cache = RedisSessionCache()
    return _cache
