# =============================================================================
# Services Package — External Collaborators
# =============================================================================
# Thin, injectable wrappers around the systems the core talks to:
#   - llm.py: Multi-provider chat completion (Anthropic, OpenAI-compatible)
#   - embedder.py: OpenAI embedding generation (batched, with retry)
#   - retry.py: Exponential-backoff retry policy (sync + async)
#   - vectorstore.py: Pluggable vector-point store (Qdrant REST, Chroma)
#   - session_cache.py: Conversation-history cache (Redis, in-memory)
# =============================================================================
