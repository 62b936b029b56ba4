# =============================================================================
# Join-Key Detector — Suggest a Field That Links Two Agents' Datasets
# =============================================================================
#
# ALGORITHM:
#   1. SAMPLE   — scroll up to `sample_size` points from each agent's
#                 collection (payload only)
#   2. FIELDS   — collect field names, normalised to lowercase with "_"
#                 read as " " ("Customer_ID" ≡ "customer id")
#   3. SCORE    — for every (source field, target field) pair:
#                   name similarity  exact → 1.0, else 1 − lev/maxlen
#                                    (+0.2 if one is a prefix of the other)
#                   jaccard          overlap of the distinct values
#                   chi-squared      agreement of value counts, mapped to
#                                    max(0, 1 − min(chi²/10, 1))
#                 weighted (jaccard, name, chi):
#                   (0.7, 0.2, 0.1) when both samples have > 50 points
#                   (0.6, 0.3, 0.1) otherwise
#   4. SELECT   — best pair with confidence strictly above the threshold
#                 (0.75 by default). The first pair wins ties.
#   5. PERSIST  — optional upsert as an AgentRelation (+ MultiAgentRelation)
#
# This is a heuristic, not a schema matcher. "No suggestion" (None) is a
# normal outcome and is never raised as an error.
# =============================================================================

from __future__ import annotations

import json
import logging
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Any, Protocol

from agentmesh.agents.types import Agent, JoinKeyCandidate, JoinKeySuggestion
from agentmesh.config import settings
from agentmesh.services.vectorstore import PointStore, ScoredPoint

logger = logging.getLogger(__name__)

PAYLOAD_ENVELOPES = ("payload", "data", "attributes")

PREFIX_BOOST = 0.2

# min(sample sizes) above which value overlap is trusted more than names
DEEP_SAMPLE_THRESHOLD = 50
DEEP_SAMPLE_WEIGHTS = (0.7, 0.2, 0.1)
SHALLOW_SAMPLE_WEIGHTS = (0.6, 0.3, 0.1)


class RelationStore(Protocol):
    """Persistence for detected relations (see db/repository.py)."""

    async def upsert_agent_relation(
        self,
        source_agent_id: int,
        target_agent_id: int,
        join_key: str,
        description: str,
        confidence: float,
    ) -> None:
        ...

    async def upsert_multi_agent_relation(
        self,
        multi_agent_id: int,
        source_agent_id: int,
        target_agent_id: int,
        join_key: str,
        description: str,
        confidence: float,
    ) -> None:
        ...


# ---------------------------------------------------------------------------
# Scoring helpers
# ---------------------------------------------------------------------------


def normalize_field(name: str) -> str:
    return name.replace("_", " ").lower()


def levenshtein(a: str, b: str) -> int:
    """Edit distance (insert, delete, substitute all cost 1)."""
    if len(a) < len(b):
        a, b = b, a
    previous = list(range(len(b) + 1))
    for i, ca in enumerate(a, start=1):
        current = [i]
        for j, cb in enumerate(b, start=1):
            current.append(min(
                previous[j] + 1,
                current[j - 1] + 1,
                previous[j - 1] + (ca != cb),
            ))
        previous = current
    return previous[-1]


def name_similarity(source: str, target: str) -> float:
    source, target = normalize_field(source), normalize_field(target)
    if source == target:
        return 1.0

    longest = max(len(source), len(target))
    if longest == 0:
        return 0.0
    similarity = 1.0 - levenshtein(source, target) / longest

    if source.startswith(target) or target.startswith(source):
        similarity += PREFIX_BOOST

    return min(similarity, 1.0)


def jaccard(source_values: Iterable[str], target_values: Iterable[str]) -> float:
    source_set, target_set = set(source_values), set(target_values)
    union = source_set | target_set
    if not union:
        return 0.0
    return len(source_set & target_set) / len(union)


def chi_squared_score(source_values: Sequence[str], target_values: Sequence[str]) -> float:
    """
    Map a 2×k chi-squared statistic onto [0, 1] (1 = identical counts).

    Expected count per value is the mean of its source and target counts.
    An empty side contributes nothing, which scores 1.0.
    """
    if not source_values or not target_values:
        return 1.0

    source_counts = Counter(source_values)
    target_counts = Counter(target_values)

    chi_squared = 0.0
    for value in source_counts.keys() | target_counts.keys():
        observed = (source_counts[value], target_counts[value])
        expected = sum(observed) / 2
        if expected > 0:
            chi_squared += sum((o - expected) ** 2 / expected for o in observed)

    return max(0.0, 1.0 - min(chi_squared / 10, 1.0))


def combine_scores(
    jaccard_score: float,
    name_score: float,
    chi_score: float,
    sample_depth: int,
) -> float:
    w_jaccard, w_name, w_chi = (
        DEEP_SAMPLE_WEIGHTS if sample_depth > DEEP_SAMPLE_THRESHOLD
        else SHALLOW_SAMPLE_WEIGHTS
    )
    return min(jaccard_score * w_jaccard + name_score * w_name + chi_score * w_chi, 1.0)


# ---------------------------------------------------------------------------
# Payload extraction
# ---------------------------------------------------------------------------


def find_payload(data: Any) -> dict[str, Any] | None:
    """Depth-first search for the first payload/data/attributes envelope."""
    if not isinstance(data, dict):
        return None
    for value in data.values():
        if not isinstance(value, dict):
            continue
        for envelope in PAYLOAD_ENVELOPES:
            if isinstance(value.get(envelope), dict):
                return value[envelope]
        nested = find_payload(value)
        if nested is not None:
            return nested
    return None


def extract_payload(point: ScoredPoint | dict[str, Any] | str) -> dict[str, Any] | None:
    """
    Field map of one sampled point.

    A ScoredPoint's payload already is the record and is used as-is, nested
    objects included. A raw point dict or its JSON text is unwrapped: a dict
    under a payload/data/attributes envelope wins, otherwise the nested
    structure is searched for one.
    """
    if isinstance(point, ScoredPoint):
        return point.payload or None

    if isinstance(point, str):
        try:
            data: Any = json.loads(point)
        except json.JSONDecodeError:
            return None
    else:
        data = point

    if not isinstance(data, dict):
        return None

    for envelope in PAYLOAD_ENVELOPES:
        if isinstance(data.get(envelope), dict):
            return data[envelope]

    return find_payload(data)


def field_map(payloads: Sequence[dict[str, Any]]) -> dict[str, list[str]]:
    """Normalised field name → original keys, in first-seen order."""
    fields: dict[str, list[str]] = {}
    for payload in payloads:
        for key in payload:
            originals = fields.setdefault(normalize_field(str(key)), [])
            if key not in originals:
                originals.append(key)
    return fields


def field_values(payloads: Sequence[dict[str, Any]], keys: Sequence[str]) -> list[str]:
    """Distinct non-empty scalar values of `keys`, stringified, first-seen order."""
    seen: dict[str, None] = {}
    for payload in payloads:
        for key in keys:
            value = payload.get(key)
            if isinstance(value, bool):
                text = "1" if value else ""
            elif isinstance(value, (str, int, float)):
                text = str(value)
            else:
                continue
            if text != "":
                seen.setdefault(text, None)
    return list(seen)


# ---------------------------------------------------------------------------
# Detector
# ---------------------------------------------------------------------------


class JoinKeyDetector:
    """
    Suggests the best-correlated field pair between two agents.

    Args:
        point_store: Where agent collections are sampled from.
        relation_store: Persistence for detect_and_store() (optional).
        sample_size: Points sampled per agent (default: settings).
        threshold: Minimum (exclusive) confidence to accept (default: settings).
    """

    def __init__(
        self,
        point_store: PointStore,
        relation_store: RelationStore | None = None,
        sample_size: int | None = None,
        threshold: float | None = None,
    ) -> None:
        self._points = point_store
        self._relations = relation_store
        self._sample_size = sample_size or settings.join_key_sample_size
        self._threshold = (
            threshold if threshold is not None
            else settings.join_key_confidence_threshold
        )

    async def _sample(self, agent: Agent) -> list[dict[str, Any]]:
        points = await self._points.scroll(agent.vector_collection, limit=self._sample_size)
        payloads = []
        for point in points:
            payload = extract_payload(point)
            if payload is None:
                logger.warning("No payload found in point %s of %s", point, agent.vector_collection)
                continue
            payloads.append(payload)
        return payloads

    def score_candidates(
        self,
        source_payloads: Sequence[dict[str, Any]],
        target_payloads: Sequence[dict[str, Any]],
    ) -> list[JoinKeyCandidate]:
        """Every field pair with its name similarity and overall confidence."""
        source_fields = field_map(source_payloads)
        target_fields = field_map(target_payloads)
        depth = min(len(source_payloads), len(target_payloads))

        source_values = {
            name: field_values(source_payloads, keys) for name, keys in source_fields.items()
        }
        target_values = {
            name: field_values(target_payloads, keys) for name, keys in target_fields.items()
        }

        candidates = []
        for source_name, source_keys in source_fields.items():
            for target_name, target_keys in target_fields.items():
                similarity = name_similarity(source_name, target_name)
                confidence = combine_scores(
                    jaccard(source_values[source_name], target_values[target_name]),
                    similarity,
                    chi_squared_score(source_values[source_name], target_values[target_name]),
                    depth,
                )
                logger.debug(
                    "Pair %s → %s: name=%.3f confidence=%.3f",
                    source_name, target_name, similarity, confidence,
                )
                candidates.append(JoinKeyCandidate(
                    source_field=source_keys[0],
                    target_field=target_keys[0],
                    name_similarity=similarity,
                    confidence=confidence,
                ))
        return candidates

    async def detect(self, source: Agent, target: Agent) -> JoinKeySuggestion | None:
        source_payloads = await self._sample(source)
        target_payloads = await self._sample(target)

        if not source_payloads or not target_payloads:
            logger.warning(
                "Empty sample for agents %s (%s) or %s (%s)",
                source.id, source.vector_collection, target.id, target.vector_collection,
            )
            return None

        candidates = self.score_candidates(source_payloads, target_payloads)
        if not candidates:
            logger.warning("No fields found for agents %s or %s", source.id, target.id)
            return None

        best: JoinKeyCandidate | None = None
        for candidate in candidates:
            if candidate.confidence > self._threshold and (
                best is None or candidate.confidence > best.confidence
            ):
                best = candidate

        if best is None:
            logger.warning(
                "No high-confidence pair for agents %s to %s", source.id, target.id,
            )
            return None

        suggestion = JoinKeySuggestion(
            join_key=best.source_field,
            target_key=best.target_field,
            confidence=round(best.confidence, 4),
            description=(
                f"Suggested join key for {source.name} ({best.source_field}) "
                f"to {target.name} ({best.target_field})"
            ),
        )
        logger.info(
            "Join key %s → %s for agents %s → %s (confidence %.3f)",
            suggestion.join_key, suggestion.target_key,
            source.id, target.id, suggestion.confidence,
        )
        return suggestion

    async def detect_and_store(
        self,
        source: Agent,
        target: Agent,
        multi_agent_id: int | None = None,
    ) -> JoinKeySuggestion | None:
        """detect(), then upsert the suggestion as a relation."""
        if self._relations is None:
            raise RuntimeError("JoinKeyDetector was built without a relation store")

        suggestion = await self.detect(source, target)
        if suggestion is None:
            return None

        await self._relations.upsert_agent_relation(
            source.id, target.id, suggestion.join_key,
            suggestion.description, suggestion.confidence,
        )
        if multi_agent_id is not None:
            await self._relations.upsert_multi_agent_relation(
                multi_agent_id, source.id, target.id, suggestion.join_key,
                suggestion.description, suggestion.confidence,
            )
        return suggestion
