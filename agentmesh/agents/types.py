# =============================================================================
# Core Data Structures — Agents, Responses, Join-Key Candidates
# =============================================================================
#
# Plain dataclasses exchanged between the orchestration components. They
# are decoupled from the ORM rows in db/models.py: the API layer loads rows
# and converts them with db/repository.py, so the core never touches a
# database session.
# =============================================================================

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

# Shown to the caller in place of a failed agent's answer
AGENT_FAILURE_MESSAGE = "Failed to get response from this agent."

# Stands in for an agent answer when the RAG call returned no text
NO_RESPONSE_TEXT = "No response text found."


@dataclass(frozen=True)
class Agent:
    """A queryable knowledge source backed by one vector collection."""

    id: int
    name: str
    vector_collection: str


@dataclass(frozen=True)
class AgentRelation:
    """
    Advisory link between two agents' datasets.

    `confidence` is in [0, 1]; None for hand-entered relations.
    """

    source_agent_id: int
    target_agent_id: int
    join_key: str
    description: str | None = None
    confidence: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "source_agent_id": self.source_agent_id,
            "target_agent_id": self.target_agent_id,
            "join_key": self.join_key,
            "description": self.description,
            "confidence": self.confidence,
        }


@dataclass
class MultiAgent:
    """A named, ordered group of agents queried as one unit."""

    id: int
    name: str
    agents: list[Agent] = field(default_factory=list)
    relations: list[AgentRelation] = field(default_factory=list)


@dataclass
class AgentResponse:
    """
    One agent's outcome for one query.

    Exactly one of `response` / `error` is set. `raw_details` carries the
    RAG payload on success and {"message": <exception text>} on failure.
    """

    agent_id: int
    agent_name: str
    response: str | None = None
    error: str | None = None
    raw_details: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def success(
        cls, agent: Agent, text: str | None, raw_details: dict[str, Any],
    ) -> AgentResponse:
        return cls(
            agent_id=agent.id,
            agent_name=agent.name,
            response=text if text else NO_RESPONSE_TEXT,
            raw_details=raw_details,
        )

    @classmethod
    def failure(cls, agent: Agent, exc: BaseException) -> AgentResponse:
        return cls(
            agent_id=agent.id,
            agent_name=agent.name,
            error=AGENT_FAILURE_MESSAGE,
            raw_details={"message": str(exc) or type(exc).__name__},
        )

    @property
    def failed(self) -> bool:
        return self.error is not None

    def to_dict(self) -> dict[str, Any]:
        """Serialisable form; the unset of response/error is omitted."""
        data: dict[str, Any] = {
            "agent_id": self.agent_id,
            "agent_name": self.agent_name,
        }
        if self.error is not None:
            data["error"] = self.error
        else:
            data["response"] = self.response
        data["raw_details"] = self.raw_details
        return data


@dataclass(frozen=True)
class JoinKeyCandidate:
    """A scored (source field, target field) pair from one detection run."""

    source_field: str
    target_field: str
    name_similarity: float
    confidence: float = 0.0


@dataclass(frozen=True)
class JoinKeySuggestion:
    """The winning candidate, in the shape persisted as an AgentRelation."""

    join_key: str
    target_key: str
    confidence: float
    description: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "join_key": self.join_key,
            "target_key": self.target_key,
            "confidence": self.confidence,
            "description": self.description,
        }
