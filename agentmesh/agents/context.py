# =============================================================================
# Shared Context & Context Manager — Per-Query State
# =============================================================================
#
# SharedContext is a plain key → value scratch space created fresh for
# every orchestrated query and dropped when the query ends. It is passed
# explicitly to every component that needs it; nothing reads it from a
# global.
#
# KEY CONVENTIONS (contract between writers and readers):
#   multi_agent_id, multi_agent_name, prompt, session_id — seeded at start
#   relations             — list of relation dicts (chaining signal)
#   conversation_history  — list of {"role", "content"}; present only when
#                           the query has a session id
#   agent_{id}_data       — one AgentResponse dict per agent
#
# Each agent writes only under its own `agent_{id}_data` key, so two agents
# never own the same key.
#
# ContextManager owns the context for one query and is the only component
# that writes conversation history. Its writes are serialised with an
# asyncio.Lock, so strategies may run agents concurrently. Only
# `conversation_history` is persisted (to the session cache) beyond the
# query.
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from typing import Any

from agentmesh.agents.types import MultiAgent
from agentmesh.config import settings
from agentmesh.services.session_cache import SessionCache, history_key, shared_history_key

logger = logging.getLogger(__name__)

HISTORY_KEY = "conversation_history"
RELATIONS_KEY = "relations"


def agent_data_key(agent_id: int | str) -> str:
    return f"agent_{agent_id}_data"


class SharedContext:
    """Key → value store scoped to a single query. No locking of its own."""

    def __init__(self) -> None:
        self._data: dict[str, Any] = {}

    def set(self, key: str, value: Any) -> None:
        self._data[key] = value

    def get(self, key: str, default: Any = None) -> Any:
        return self._data.get(key, default)

    def has(self, key: str) -> bool:
        return key in self._data

    def merge(self, values: dict[str, Any]) -> None:
        self._data.update(values)

    def clear(self) -> None:
        self._data.clear()

    def all(self) -> dict[str, Any]:
        """Shallow copy of every entry."""
        return dict(self._data)

    def __len__(self) -> int:
        return len(self._data)


class ContextManager:
    """
    Lifecycle of one query's SharedContext.

    Args:
        session_cache: Where conversation histories are persisted.
        context: Optional pre-built context (a fresh one by default).
        ttl_seconds: History TTL (default: session_ttl_hours).
    """

    def __init__(
        self,
        session_cache: SessionCache,
        context: SharedContext | None = None,
        ttl_seconds: int | None = None,
    ) -> None:
        self._cache = session_cache
        self._context = context if context is not None else SharedContext()
        self._ttl = ttl_seconds or settings.session_ttl_hours * 3600
        self._lock = asyncio.Lock()

    @property
    def context(self) -> SharedContext:
        return self._context

    async def initialize(
        self,
        multi_agent: MultiAgent,
        prompt: str,
        session_id: str | None,
    ) -> None:
        """Reset the context and seed query metadata, history and relations."""
        async with self._lock:
            self._context.clear()
            self._context.merge({
                "multi_agent_id": multi_agent.id,
                "multi_agent_name": multi_agent.name,
                "prompt": prompt,
                "session_id": session_id,
            })

            if session_id:
                history = await self._cache.get(
                    shared_history_key(multi_agent.id, session_id), [],
                )
                self._context.set(HISTORY_KEY, list(history or []))

            self._context.set(
                RELATIONS_KEY,
                [relation.to_dict() for relation in multi_agent.relations],
            )

        logger.debug(
            "Context initialized: multi_agent=%s, session=%s, history=%d, "
            "relations=%d",
            multi_agent.id, session_id,
            len(self._context.get(HISTORY_KEY, [])),
            len(multi_agent.relations),
        )

    async def add_user_prompt(self, prompt: str) -> None:
        """Append a user turn to the shared history and persist it."""
        async with self._lock:
            if not self._context.has(HISTORY_KEY):
                return
            await self._append_history("user", prompt)

    async def update_from_agent(self, agent_id: int | str, data: dict[str, Any]) -> None:
        """
        Store one agent's result under `agent_{id}_data`.

        A successful answer (data["response"] set) is also appended to the
        shared history as an assistant turn and persisted.
        """
        async with self._lock:
            self._context.set(agent_data_key(agent_id), data)
            if data.get("response") is not None and self._context.has(HISTORY_KEY):
                await self._append_history("assistant", data["response"])

    async def agent_history(self, agent_id: int | str) -> list[dict[str, str]]:
        """An individual agent's own history for this session ([] without one)."""
        session_id = self._context.get("session_id")
        if not session_id:
            return []
        history = await self._cache.get(history_key(agent_id, session_id), [])
        return list(history or [])

    async def record_agent_turn(
        self, agent_id: int | str, prompt: str, answer: str,
    ) -> None:
        """Append a user/assistant exchange to an agent's own history."""
        session_id = self._context.get("session_id")
        if not session_id:
            return
        async with self._lock:
            key = history_key(agent_id, session_id)
            history = list(await self._cache.get(key, []) or [])
            history.append({"role": "user", "content": prompt})
            history.append({"role": "assistant", "content": answer})
            await self._cache.put(key, history, self._ttl)

    async def _append_history(self, role: str, content: str) -> None:
        # Caller holds the lock. A new list keeps earlier snapshots intact.
        history = [*self._context.get(HISTORY_KEY, []), {"role": role, "content": content}]
        self._context.set(HISTORY_KEY, history)

        session_id = self._context.get("session_id")
        if session_id:
            await self._cache.put(
                shared_history_key(self._context.get("multi_agent_id"), session_id),
                history,
                self._ttl,
            )
