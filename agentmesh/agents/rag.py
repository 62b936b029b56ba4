# =============================================================================
# RAG Collaborator — Answer One Question Against One Agent
# =============================================================================
#
# The communication strategies call RagService.chat() once per agent:
#
#   1. EMBED    — the (possibly augmented) question
#   2. RETRIEVE — top-k points from the agent's own collection
#   3. ANSWER   — LLM completion with the retrieved payloads in the system
#                 prompt, preceded by the conversation history
#
# The returned dict becomes AgentResponse.raw_details. Besides the answer
# text it carries the retrieved payloads and a `confidence` value (the
# best similarity score), which the conflict resolver reads back from the
# shared context.
#
# Errors are NOT caught here. The calling strategy turns any exception
# into an error AgentResponse for that agent.
# =============================================================================

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable
from typing import Any

from agentmesh.agents.types import Agent
from agentmesh.config import settings
from agentmesh.services.embedder import embed_query
from agentmesh.services.llm import LLMProvider
from agentmesh.services.vectorstore import PointStore

logger = logging.getLogger(__name__)


_SYSTEM_PROMPT = (
    "You are an AI assistant specialized in answering questions based on "
    "user-uploaded data. Use the following context to provide accurate "
    "responses.\n\n"
    "Context: {context}\n\n"
    "Answer the question based on the context provided. If the context "
    "doesn't contain relevant information, say so clearly."
)


class RagService:
    """
    Retrieval-augmented answering for a single agent.

    Args:
        llm: Chat-completion provider.
        point_store: Vector-point store holding every agent's collection.
        embed: Sync text → vector function (run in a worker thread).
    """

    def __init__(
        self,
        llm: LLMProvider,
        point_store: PointStore,
        embed: Callable[[str], list[float]] = embed_query,
    ) -> None:
        self._llm = llm
        self._points = point_store
        self._embed = embed

    async def chat(
        self,
        agent: Agent,
        query: str,
        history: list[dict[str, str]] | None = None,
    ) -> dict[str, Any]:
        """
        Answer `query` from `agent`'s collection.

        Returns:
            {"response": str | None, "context": [payload, ...],
             "model": str, "confidence": float (when scores are available)}
        """
        vector = await asyncio.to_thread(self._embed, query)
        points = await self._points.search(
            collection=agent.vector_collection,
            vector=vector,
            limit=settings.rag_top_k,
        )
        context = [point.payload for point in points]

        messages = [
            {"role": entry["role"], "content": entry["content"]}
            for entry in history or []
        ]
        messages.append({"role": "user", "content": query})

        logger.info(
            "RAG call: agent=%s (%s), points=%d, history=%d",
            agent.id, agent.vector_collection, len(points), len(messages) - 1,
        )

        completion = await self._llm.complete(
            messages=messages,
            system=_SYSTEM_PROMPT.format(
                context=json.dumps(context, ensure_ascii=False, default=str)
            ),
            temperature=settings.rag_temperature,
            max_tokens=settings.rag_max_tokens,
        )

        result: dict[str, Any] = {
            "response": completion.content.strip() or None,
            "context": context,
            "model": completion.model,
        }

        scores = [p.score for p in points if p.score is not None]
        if scores:
            result["confidence"] = round(max(0.0, min(max(scores), 1.0)), 4)

        return result
