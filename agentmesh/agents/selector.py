# =============================================================================
# Strategy Selector — Pick a Dispatch Strategy for "auto" Queries
# =============================================================================
#
# Rules, evaluated in order:
#   1. the context holds at least one agent relation → CHAINED
#      (related datasets benefit from seeing each other's answers)
#   2. more than 3 agents                           → BROADCAST
#   3. otherwise                                    → DIRECT
#
# The prompt is accepted for future content-based rules but not inspected.
# =============================================================================

from __future__ import annotations

import logging
from collections.abc import Sequence

from agentmesh.agents.context import RELATIONS_KEY, SharedContext
from agentmesh.agents.strategies import StrategyName
from agentmesh.agents.types import Agent

logger = logging.getLogger(__name__)

BROADCAST_AGENT_THRESHOLD = 3

AUTO = "auto"


class StrategySelector:
    """Rule-based choice between the three strategies."""

    def select(
        self,
        agents: Sequence[Agent],
        prompt: str,
        context: SharedContext,
    ) -> StrategyName:
        if context.get(RELATIONS_KEY):
            choice = StrategyName.CHAINED
        elif len(agents) > BROADCAST_AGENT_THRESHOLD:
            choice = StrategyName.BROADCAST
        else:
            choice = StrategyName.DIRECT

        logger.debug("Auto-selected %s strategy for %d agents", choice.value, len(agents))
        return choice


def resolve_strategy_hint(hint: str | None) -> StrategyName | None:
    """
    Map a caller's strategy hint to a StrategyName.

    Returns None for "auto" (or no hint), meaning "ask the selector".
    Unrecognised hints fall back to DIRECT.
    """
    if hint is None:
        return None
    normalized = hint.strip().lower()
    if normalized == AUTO:
        return None
    try:
        return StrategyName(normalized)
    except ValueError:
        logger.warning("Unknown strategy hint %r, falling back to direct", hint)
        return StrategyName.DIRECT
