# =============================================================================
# Multi-Provider LLM Abstraction — Chat-Completion Collaborator
# =============================================================================
#
# Provides a common interface for chat completions, with concrete
# implementations for Anthropic (Claude) and OpenAI-compatible APIs
# (OpenAI, DeepSeek, Qwen, ...).
#
# Used by:
#   - agents/rag.py        — per-agent RAG answers
#   - agents/integrator.py — optional refinement of the synthesized answer
#
# Components never build provider instances themselves: a provider is
# passed into their constructor, so tests can hand in an AsyncMock.
#
# FAILURES: SDK errors are re-raised as LLMError. An empty completion is
# NOT an error — it comes back as LLMResponse(content="").
#
# ARCHITECTURE:
#   LLMProvider (Protocol)
#   ├── AnthropicProvider        — system prompt as top-level kwarg
#   ├── OpenAICompatibleProvider — system prompt as first message
#   └── get_llm_provider()       — lazy singleton, reads from config
# =============================================================================

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Protocol

from agentmesh.config import settings

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Data Structures
# ---------------------------------------------------------------------------


@dataclass
class LLMResponse:
    """
    Standardised response from any LLM provider.

    Normalises the different response formats (Anthropic vs OpenAI)
    into a single structure that downstream code can consume.
    """

    content: str           # The generated text ("" when the model said nothing)
    model: str             # Model identifier (e.g., "gpt-4o-mini")
    input_tokens: int      # Tokens consumed by the prompt
    output_tokens: int     # Tokens generated in the response


class LLMError(Exception):
    """A completion request failed (network, auth, rate limit, bad request)."""

    def __init__(self, message: str, provider: str, model: str) -> None:
        super().__init__(message)
        self.provider = provider
        self.model = model


# ---------------------------------------------------------------------------
# Protocol Definition
# ---------------------------------------------------------------------------


class LLMProvider(Protocol):
    """
    Protocol defining the chat-completion interface.

    Any object with a matching async `complete()` works, including
    unittest.mock.AsyncMock in tests.
    """

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """
        Generate a completion from the LLM.

        Args:
            messages: Conversation history followed by the new user message,
                as dicts with "role" ("user" | "assistant") and "content".
            system: System prompt. Anthropic takes it as a top-level kwarg,
                OpenAI as a leading {"role": "system"} message.
            temperature: Override sampling temperature (default from config).
            max_tokens: Override max output tokens (default from config).

        Returns:
            LLMResponse with generated text and usage metrics.

        Raises:
            LLMError: The provider call failed.
        """
        ...


# ---------------------------------------------------------------------------
# Implementation 1: Anthropic (Claude)
# ---------------------------------------------------------------------------


class AnthropicProvider:
    """
    Anthropic Claude provider using the native SDK (AsyncAnthropic).

    KEY API DIFFERENCE: Anthropic takes system prompts as a top-level
    `system=` kwarg, NOT as a message with role "system".
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        client: Any | None = None,
    ) -> None:
        if client is None:
            from anthropic import AsyncAnthropic

            resolved_key = api_key or settings.llm_api_key or settings.anthropic_api_key
            if not resolved_key:
                raise ValueError(
                    "No Anthropic API key configured. Set LLM_API_KEY or "
                    "ANTHROPIC_API_KEY in .env"
                )
            client = AsyncAnthropic(api_key=resolved_key)

        self._client = client
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info("Initialized AnthropicProvider (model=%s)", self._model)

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using Claude."""
        kwargs: dict = {
            "model": self._model,
            "messages": messages,
            "max_tokens": max_tokens if max_tokens is not None else self._max_tokens,
            "temperature": temperature if temperature is not None else self._temperature,
        }
        if system:
            kwargs["system"] = system

        try:
            response = await self._client.messages.create(**kwargs)
        except Exception as e:
            raise LLMError(
                f"Anthropic completion failed: {e}", "anthropic", self._model,
            ) from e

        content = ""
        for block in response.content:
            if block.type == "text":
                content = block.text
                break

        return LLMResponse(
            content=content,
            model=response.model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
        )


# ---------------------------------------------------------------------------
# Implementation 2: OpenAI-Compatible
# ---------------------------------------------------------------------------


class OpenAICompatibleProvider:
    """
    Provider for any API that follows the OpenAI chat-completions API.

    Switching providers is a config change:
        LLM_PROVIDER=openai_compatible
        LLM_BASE_URL=https://api.deepseek.com/v1
        LLM_API_KEY=your-key
        LLM_MODEL=deepseek-chat
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str | None = None,
        base_url: str | None = None,
        client: Any | None = None,
    ) -> None:
        resolved_base_url = base_url or settings.llm_base_url
        if client is None:
            from openai import AsyncOpenAI

            resolved_key = api_key or settings.llm_api_key or settings.openai_api_key
            if not resolved_key:
                raise ValueError(
                    "No API key configured for OpenAI-compatible provider. "
                    "Set LLM_API_KEY or OPENAI_API_KEY in .env"
                )

            client_kwargs: dict = {"api_key": resolved_key}
            if resolved_base_url:
                client_kwargs["base_url"] = resolved_base_url
            client = AsyncOpenAI(**client_kwargs)

        self._client = client
        self._model = model or settings.llm_model
        self._temperature = settings.llm_temperature
        self._max_tokens = settings.llm_max_tokens

        logger.info(
            "Initialized OpenAICompatibleProvider (model=%s, base_url=%s)",
            self._model,
            resolved_base_url or "https://api.openai.com/v1",
        )

    async def complete(
        self,
        messages: list[dict[str, str]],
        system: str | None = None,
        temperature: float | None = None,
        max_tokens: int | None = None,
    ) -> LLMResponse:
        """Generate a completion using an OpenAI-compatible API."""
        all_messages: list[dict[str, str]] = []
        if system:
            all_messages.append({"role": "system", "content": system})
        all_messages.extend(messages)

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=all_messages,
                max_tokens=max_tokens if max_tokens is not None else self._max_tokens,
                temperature=(
                    temperature if temperature is not None else self._temperature
                ),
            )
        except Exception as e:
            raise LLMError(
                f"OpenAI-compatible completion failed: {e}",
                "openai_compatible",
                self._model,
            ) from e

        content = response.choices[0].message.content or ""

        usage = response.usage
        input_tokens = usage.prompt_tokens if usage else 0
        output_tokens = usage.completion_tokens if usage else 0

        return LLMResponse(
            content=content,
            model=response.model or self._model,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )


# ---------------------------------------------------------------------------
# Factory Function
# ---------------------------------------------------------------------------

# Lazy singleton — the SDK clients pool their own connections
_provider: AnthropicProvider | OpenAICompatibleProvider | None = None


def get_llm_provider() -> AnthropicProvider | OpenAICompatibleProvider:
    """
    Return the configured LLM provider, creating it on first use.

    Reads `llm_provider` from settings:
    - "anthropic" → AnthropicProvider
    - "openai_compatible" → OpenAICompatibleProvider

    Only process wiring (api/deps.py, workers) calls this; components
    receive the provider through their constructors.
    """
    global _provider
    if _provider is None:
        if settings.llm_provider == "anthropic":
            _provider = AnthropicProvider()
        else:
            _provider = OpenAICompatibleProvider()
    return _provider
