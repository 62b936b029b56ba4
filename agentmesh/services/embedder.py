# =============================================================================
# Embedding Service — Query & Batch Vector Generation
# =============================================================================
#
# Turns text into vectors using any OpenAI-compatible embedding API.
# The RAG collaborator (agents/rag.py) embeds each agent question with
# embed_query() before searching that agent's collection.
#
# The model MUST match the one used when the agents' collections were
# ingested, otherwise similarity scores are meaningless.
#
# RETRIES: each API call goes through a RetryPolicy that backs off on
# rate limits, timeouts and dropped connections. Other errors (bad key,
# bad request) fail immediately.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence

import openai
from openai import OpenAI

from agentmesh.config import settings
from agentmesh.services.retry import RetryPolicy, default_policy

logger = logging.getLogger(__name__)

# Transient errors worth backing off on
TRANSIENT_ERRORS: tuple[type[BaseException], ...] = (
    openai.RateLimitError,
    openai.APITimeoutError,
    openai.APIConnectionError,
)


# ---------------------------------------------------------------------------
# Embedding Client — Lazy Singleton
# ---------------------------------------------------------------------------
# API key resolution order:
#   1. OPENAI_API_KEY (explicit embedding key)
#   2. LLM_API_KEY (shared key)
# ---------------------------------------------------------------------------

_client: OpenAI | None = None
_policy: RetryPolicy | None = None


def _get_client() -> OpenAI:
    """Lazily initialize and cache the embedding client."""
    global _client
    if _client is None:
        resolved_key = settings.openai_api_key or settings.llm_api_key
        if not resolved_key:
            raise ValueError(
                "No API key configured for embeddings. "
                "Set OPENAI_API_KEY or LLM_API_KEY in .env"
            )

        # RetryPolicy is the only retry layer; the SDK must not retry too
        client_kwargs: dict = {"api_key": resolved_key, "max_retries": 0}
        if settings.embedding_base_url:
            client_kwargs["base_url"] = settings.embedding_base_url

        _client = OpenAI(**client_kwargs)

        logger.info(
            "Initialized embedding client (model=%s, base_url=%s)",
            settings.embedding_model,
            settings.embedding_base_url or "https://api.openai.com/v1",
        )
    return _client


def _get_policy() -> RetryPolicy:
    global _policy
    if _policy is None:
        _policy = default_policy(retry_on=TRANSIENT_ERRORS)
    return _policy


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def embed_batch(
    texts: Sequence[str],
    batch_size: int | None = None,
    client: OpenAI | None = None,
    policy: RetryPolicy | None = None,
) -> list[list[float]]:
    """
    Generate embeddings for a batch of texts.

    Processes texts in sub-batches to respect API token limits and
    returns embeddings in the SAME ORDER as the input texts.

    Args:
        texts: Text strings to embed.
        batch_size: Texts per API call (default: settings.embedding_batch_size).
        client: Optional OpenAI client (defaults to the module client).
        policy: Optional retry policy (defaults to the retry_* settings).

    Raises:
        ValueError: If no API key is configured.
        openai.APIError: If a call fails after retries.
    """
    if not texts:
        return []

    client = client or _get_client()
    policy = policy or _get_policy()
    _batch_size = batch_size or settings.embedding_batch_size

    all_embeddings: list[list[float]] = [[] for _ in texts]

    for i in range(0, len(texts), _batch_size):
        batch = list(texts[i : i + _batch_size])
        logger.debug(
            "Embedding batch %d–%d of %d texts (model=%s)",
            i + 1,
            min(i + _batch_size, len(texts)),
            len(texts),
            settings.embedding_model,
        )

        create_kwargs: dict = {
            "model": settings.embedding_model,
            "input": batch,
        }
        if settings.embedding_dimensions:
            create_kwargs["dimensions"] = settings.embedding_dimensions

        response = policy.call(client.embeddings.create, **create_kwargs)

        # Sort by index so output order always matches input order
        for item in sorted(response.data, key=lambda x: x.index):
            all_embeddings[i + item.index] = item.embedding

    return all_embeddings


def embed_query(text: str) -> list[float]:
    """
    Generate an embedding for a single query string.

    Used by the RAG collaborator when searching an agent's collection.
    """
    return embed_batch([text], batch_size=1)[0]
