# =============================================================================
# Vector-Point Store — Pluggable Backend Protocol
# =============================================================================
#
# Every agent owns one collection of points. A point is an id, a payload
# (flat mapping of field name → scalar, i.e. one ingested record) and, for
# similarity searches, a score.
#
# Two operations are needed by the core:
#   - search() — nearest points to a query vector (agents/rag.py)
#   - scroll() — a plain page of points, optionally filtered; used to
#                sample payloads for join-key detection (agents/join_keys.py)
#
# This module does not embed text or rank anything itself; it only talks
# to the backend.
#
# ARCHITECTURE:
#   PointStore (Protocol)
#   ├── QdrantPointStore — Qdrant REST API via httpx.AsyncClient
#   └── ChromaPointStore — ChromaDB (in-process or client/server),
#                          sync client wrapped in asyncio.to_thread()
# =============================================================================

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Protocol

import chromadb
import httpx

from agentmesh.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class ScoredPoint:
    """
    A point returned by the store.

    `score` is the similarity to the query vector for search() results
    (higher = more similar) and None for scroll() results.
    """

    id: str | int
    payload: dict[str, Any] = field(default_factory=dict)
    score: float | None = None


class VectorStoreError(Exception):
    """The backend rejected a request or could not be reached."""


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class PointStore(Protocol):
    """Interface shared by the Qdrant and Chroma implementations."""

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 5,
    ) -> list[ScoredPoint]:
        """Return up to `limit` points nearest to `vector`, best first."""
        ...

    async def scroll(
        self,
        collection: str,
        limit: int = 100,
        filter: dict[str, Any] | None = None,
    ) -> list[ScoredPoint]:
        """Return up to `limit` points (payload only), optionally filtered."""
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Qdrant (REST)
# ---------------------------------------------------------------------------


class QdrantPointStore:
    """
    Qdrant-backed point store using the HTTP API.

    Endpoints used:
        POST /collections/{name}/points/search
        POST /collections/{name}/points/scroll

    Pass an `httpx.AsyncClient` to share a connection pool (or a mock
    transport in tests); otherwise one is created from settings.
    """

    def __init__(
        self,
        base_url: str | None = None,
        api_key: str | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if client is None:
            headers = {}
            resolved_key = api_key or settings.qdrant_api_key
            if resolved_key:
                headers["api-key"] = resolved_key
            client = httpx.AsyncClient(
                base_url=base_url or settings.qdrant_url,
                headers=headers,
                timeout=settings.qdrant_timeout_seconds,
            )
        self._client = client

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 5,
    ) -> list[ScoredPoint]:
        body = await self._post(
            f"/collections/{collection}/points/search",
            {"vector": vector, "limit": limit, "with_payload": True},
        )
        results = body.get("result") or []

        logger.debug(
            "Qdrant search on %s returned %d points (limit=%d)",
            collection, len(results), limit,
        )
        return [
            ScoredPoint(
                id=item.get("id"),
                payload=item.get("payload") or {},
                score=item.get("score"),
            )
            for item in results
        ]

    async def scroll(
        self,
        collection: str,
        limit: int = 100,
        filter: dict[str, Any] | None = None,
    ) -> list[ScoredPoint]:
        request: dict[str, Any] = {
            "limit": limit,
            "with_payload": True,
            "with_vector": False,
        }
        if filter:
            request["filter"] = filter

        body = await self._post(f"/collections/{collection}/points/scroll", request)
        points = (body.get("result") or {}).get("points") or []

        logger.debug(
            "Qdrant scroll on %s returned %d points (limit=%d)",
            collection, len(points), limit,
        )
        return [
            ScoredPoint(id=item.get("id"), payload=item.get("payload") or {})
            for item in points
        ]

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _post(self, path: str, payload: dict[str, Any]) -> dict[str, Any]:
        try:
            response = await self._client.post(path, json=payload)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise VectorStoreError(
                f"Qdrant request {path} failed with "
                f"{e.response.status_code}: {e.response.text[:500]}"
            ) from e
        except httpx.HTTPError as e:
            raise VectorStoreError(f"Qdrant request {path} failed: {e}") from e
        return response.json()


# ---------------------------------------------------------------------------
# Implementation 2: ChromaDB
# ---------------------------------------------------------------------------


class ChromaPointStore:
    """
    ChromaDB-backed point store, one Chroma collection per agent.

    Point payloads are the Chroma metadatas. search() also adds the stored
    document text under the "document" key so the RAG prompt sees it;
    scroll() returns metadata only, which keeps join-key sampling limited
    to structured fields.

    - In-process (default): no extra infra
    - Client/server: set CHROMA_URL
    """

    def __init__(self, client: Any | None = None) -> None:
        if client is None:
            if settings.chroma_url:
                client = chromadb.HttpClient(host=settings.chroma_url)
            else:
                client = chromadb.Client()
        self._client = client

    def _collection(self, name: str):
        return self._client.get_or_create_collection(
            name=name,
            metadata={"hnsw:space": "cosine"},
        )

    async def search(
        self,
        collection: str,
        vector: list[float],
        limit: int = 5,
    ) -> list[ScoredPoint]:

        def _sync_search() -> list[ScoredPoint]:
            results = self._collection(collection).query(
                query_embeddings=[vector],
                n_results=limit,
                include=["documents", "metadatas", "distances"],
            )

            points: list[ScoredPoint] = []
            if results and results["ids"] and results["ids"][0]:
                for i, chroma_id in enumerate(results["ids"][0]):
                    distance = (
                        results["distances"][0][i] if results["distances"] else 0.0
                    )
                    metadata = dict(
                        (results["metadatas"][0][i] if results["metadatas"] else None)
                        or {}
                    )
                    document = (
                        results["documents"][0][i] if results["documents"] else None
                    )
                    if document:
                        metadata["document"] = document
                    points.append(ScoredPoint(
                        id=chroma_id,
                        payload=metadata,
                        # Chroma cosine distance is in [0, 2]; convert to similarity
                        score=round(1.0 - distance, 4),
                    ))
            return points

        return await asyncio.to_thread(_sync_search)

    async def scroll(
        self,
        collection: str,
        limit: int = 100,
        filter: dict[str, Any] | None = None,
    ) -> list[ScoredPoint]:

        def _sync_scroll() -> list[ScoredPoint]:
            results = self._collection(collection).get(
                limit=limit,
                where=filter or None,
                include=["metadatas"],
            )
            ids = results.get("ids") or []
            metadatas = results.get("metadatas") or [None] * len(ids)
            return [
                ScoredPoint(id=point_id, payload=dict(meta or {}))
                for point_id, meta in zip(ids, metadatas, strict=False)
            ]

        return await asyncio.to_thread(_sync_scroll)

    def add_points(
        self,
        collection: str,
        ids: list[str],
        embeddings: list[list[float]],
        payloads: list[dict[str, Any]],
        documents: list[str] | None = None,
    ) -> None:
        """Insert or update points. Used by local seeding and tests."""
        self._collection(collection).upsert(
            ids=ids,
            embeddings=embeddings,
            metadatas=payloads,
            documents=documents,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------


def get_point_store(
    override_type: str | None = None,
) -> QdrantPointStore | ChromaPointStore:
    """
    Return the configured point store backend.

    Reads `vectorstore_type` from settings:
    - "qdrant" → QdrantPointStore (default)
    - "chroma" → ChromaPointStore
    """
    store_type = override_type or settings.vectorstore_type

    if store_type == "chroma":
        logger.info("Using ChromaDB point store")
        return ChromaPointStore()

    logger.info("Using Qdrant point store at %s", settings.qdrant_url)
    return QdrantPointStore()
