# =============================================================================
# Response Integrator — Filter, Reconcile, Synthesize
# =============================================================================
#
# PIPELINE:
#   raw responses
#     → relevance filter   (drops errors, sentinels, short/deflecting text)
#     → conflict resolver  (highest-confidence numeric claim wins)
#     → synthesis          (CONCATENATE or REFINE, see SynthesisMode)
#
# Result:
#   {"synthesized_response": str,
#    "individual_responses": [every original response, errors included]}
#
# CONCATENATE is deterministic: the same resolved list always yields the
# same text. REFINE asks the chat-completion provider to rewrite the
# concatenation in the multi-agent's voice and is best-effort: any failure
# falls back to the concatenated text.
# =============================================================================

from __future__ import annotations

import enum
import logging
from collections.abc import Sequence
from typing import Any

from agentmesh.agents.conflict import ConflictResolver
from agentmesh.agents.context import SharedContext
from agentmesh.agents.types import NO_RESPONSE_TEXT, AgentResponse
from agentmesh.config import settings
from agentmesh.services.llm import LLMProvider

logger = logging.getLogger(__name__)

NO_RELEVANT_RESPONSES = "No relevant responses were found for your query."

DEFAULT_PERSONA = "MultiAgent"

# Boilerplate that signals the agent had nothing useful to say
DEFLECTION_PHRASES = (
    "cannot provide",
    "no data",
    "not enough information",
    "unable to answer",
    "no relevant",
    "contact support",
)

# Responses at least this long survive a deflection phrase
DEFLECTION_LENGTH_FLOOR = 100

_REFINE_PROMPT = (
    "You are {name}, a unified assistant. Refine the following response to "
    "be clear, concise, and intuitive, directly addressing the query: "
    "\"{prompt}\". Prioritize detailed and structured content (e.g., lists, "
    "specific recommendations) relevant to the query. Remove redundancies "
    "and vague statements (e.g., 'contact support', 'more data needed') "
    "unless no specific details exist. Structure the output appropriately "
    "and maintain a professional tone. If insufficient details are "
    "provided, explain briefly.\n\n"
    "Combined response:\n{combined}"
)


class SynthesisMode(str, enum.Enum):
    CONCATENATE = "concatenate"
    REFINE = "refine"


class ResponseIntegrator:
    """
    Turns per-agent responses into one answer.

    Args:
        resolver: Conflict resolver (a default one if omitted).
        llm: Chat-completion provider; required for REFINE mode.
        mode: Synthesis mode (default: settings.synthesis_mode).
        min_length: Minimum answer length (default: settings.min_response_length).
    """

    def __init__(
        self,
        resolver: ConflictResolver | None = None,
        llm: LLMProvider | None = None,
        mode: SynthesisMode | str | None = None,
        min_length: int | None = None,
    ) -> None:
        self._resolver = resolver if resolver is not None else ConflictResolver()
        self._llm = llm
        self._mode = SynthesisMode(mode or settings.synthesis_mode)
        self._min_length = (
            min_length if min_length is not None else settings.min_response_length
        )
        if self._mode is SynthesisMode.REFINE and llm is None:
            raise ValueError("REFINE synthesis mode needs an LLM provider")

    @property
    def mode(self) -> SynthesisMode:
        return self._mode

    # -----------------------------------------------------------------------
    # Relevance filter
    # -----------------------------------------------------------------------

    def is_relevant(self, response: AgentResponse) -> bool:
        if response.failed or not response.response:
            return False

        text = response.response.strip()
        if not text or text == NO_RESPONSE_TEXT:
            return False

        length = len(text)
        if length < self._min_length:
            return False

        lowered = text.lower()
        for phrase in DEFLECTION_PHRASES:
            if phrase in lowered and (
                len(phrase) / length > 0.5 or length < DEFLECTION_LENGTH_FLOOR
            ):
                return False

        return True

    def filter_relevant(self, responses: Sequence[AgentResponse]) -> list[AgentResponse]:
        kept = []
        for response in responses:
            if self.is_relevant(response):
                kept.append(response)
            else:
                logger.info(
                    "Filtered response from agent %s (ID: %s): %r",
                    response.agent_name, response.agent_id,
                    response.response if response.response is not None else response.error,
                )
        return kept

    # -----------------------------------------------------------------------
    # Synthesis
    # -----------------------------------------------------------------------

    @staticmethod
    def concatenate(responses: Sequence[AgentResponse]) -> str:
        return "\n".join(
            f"- **{response.agent_name}**: {response.response}"
            for response in responses
        )

    async def integrate(
        self,
        responses: Sequence[AgentResponse],
        context: SharedContext,
    ) -> dict[str, Any]:
        relevant = self.filter_relevant(responses)
        resolved = self._resolver.resolve(relevant, context)

        if not resolved:
            logger.warning(
                "No relevant responses for prompt %r (multi_agent=%s, session=%s)",
                context.get("prompt"),
                context.get("multi_agent_id"),
                context.get("session_id"),
            )
            synthesized = NO_RELEVANT_RESPONSES
        else:
            synthesized = self.concatenate(resolved)
            if self._mode is SynthesisMode.REFINE:
                synthesized = await self._refine(synthesized, context)

        return {
            "synthesized_response": synthesized,
            "individual_responses": [response.to_dict() for response in responses],
        }

    async def _refine(self, combined: str, context: SharedContext) -> str:
        name = context.get("multi_agent_name") or DEFAULT_PERSONA
        prompt = context.get("prompt") or ""
        try:
            completion = await self._llm.complete(
                messages=[{"role": "user", "content": prompt}],
                system=_REFINE_PROMPT.format(name=name, prompt=prompt, combined=combined),
                temperature=settings.refine_temperature,
                max_tokens=settings.refine_max_tokens,
            )
            refined = completion.content.strip()
            if not refined:
                raise ValueError("empty refinement")
        except Exception as exc:
            logger.warning(
                "Refinement failed for multi_agent=%s, using concatenation: %s",
                context.get("multi_agent_id"), exc,
            )
            return combined
        return f"**{name}**: {refined}"
