# =============================================================================
# Conflict Resolver — Reconcile Contradictory Numeric Claims
# =============================================================================
#
# Agents backed by different datasets can disagree on figures. A response
# "makes a numeric claim" when its text matches:
#
#     Total amount <anything but ':'>: $<number>
#
# Among all claiming responses only those with the HIGHEST confidence are
# kept; ties keep every tied response. Confidence is read back from the
# shared context at `agent_{id}_data.raw_details.confidence` (default 0.5).
# Responses without a claim always pass through.
#
# This is highest-confidence-wins on purpose, NOT a majority vote: three
# low-confidence agents agreeing do not outvote one confident agent.
# Output keeps the input order.
# =============================================================================

from __future__ import annotations

import logging
import re
from collections.abc import Sequence
from typing import Any

from agentmesh.agents.context import SharedContext, agent_data_key
from agentmesh.agents.types import AgentResponse

logger = logging.getLogger(__name__)

NUMERIC_CLAIM_PATTERN = re.compile(r"Total amount[^:]*: \$([\d,.]+)", re.IGNORECASE)

DEFAULT_CONFIDENCE = 0.5


def lookup_path(context: SharedContext, path: str, default: Any = None) -> Any:
    """Resolve a dotted path (`key.nested.leaf`) against the context."""
    head, *rest = path.split(".")
    value = context.get(head, default)
    for part in rest:
        if not isinstance(value, dict) or part not in value:
            return default
        value = value[part]
    return value


def extract_numeric_claim(text: str | None) -> str | None:
    """Return the claimed amount (as written), or None."""
    if not text:
        return None
    match = NUMERIC_CLAIM_PATTERN.search(text)
    return match.group(1) if match else None


class ConflictResolver:
    """Highest-confidence-wins resolution of numeric claims."""

    def __init__(self, default_confidence: float = DEFAULT_CONFIDENCE) -> None:
        self._default = default_confidence

    def confidence_for(self, response: AgentResponse, context: SharedContext) -> float:
        value = lookup_path(
            context,
            f"{agent_data_key(response.agent_id)}.raw_details.confidence",
            self._default,
        )
        try:
            return float(value)
        except (TypeError, ValueError):
            return self._default

    def resolve(
        self,
        responses: Sequence[AgentResponse],
        context: SharedContext,
    ) -> list[AgentResponse]:
        claims: dict[int, float] = {}
        for index, response in enumerate(responses):
            if extract_numeric_claim(response.response) is not None:
                claims[index] = self.confidence_for(response, context)

        if not claims:
            return list(responses)

        best = max(claims.values())
        if len(claims) > 1:
            logger.info(
                "Numeric conflict across %d responses; keeping confidence %.2f",
                len(claims), best,
            )

        return [
            response
            for index, response in enumerate(responses)
            if index not in claims or claims[index] == best
        ]
