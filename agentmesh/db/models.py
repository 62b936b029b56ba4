# =============================================================================
# Database Models — SQLAlchemy ORM
# =============================================================================
#
# Persistent records for agents, multi-agents and the relations between
# agents' datasets. The orchestration core never sees these rows; it works
# on the dataclasses in agents/types.py (see db/repository.py).
#
# SCHEMA OVERVIEW:
#
# ┌─────────────────────┐      ┌──────────────────────────────────────┐
# │ agents              │      │ agent_relations                      │
# ├─────────────────────┤      ├──────────────────────────────────────┤
# │ id (PK)             │◀─────│ source_agent_id (FK → agents.id)     │
# │ name                │◀─────│ target_agent_id (FK → agents.id)     │
# │ vector_collection   │      │ join_key                             │
# │ created_at          │      │ description, confidence              │
# └─────────────────────┘      │ UNIQUE(source, target, join_key)     │
#                              └──────────────────────────────────────┘
# ┌─────────────────────┐      ┌──────────────────────────────────────┐
# │ multi_agents        │      │ multi_agent_relations                │
# ├─────────────────────┤      ├──────────────────────────────────────┤
# │ id (PK)             │──1:N─▶ multi_agent_id (FK → multi_agents.id)│
# │ name                │      │ source_agent_id, target_agent_id     │
# │ agent_ids (jsonb)   │      │ join_key, description                │
# │ created_at          │      │ suggested_confidence                 │
# └─────────────────────┘      └──────────────────────────────────────┘
#
# DESIGN DECISIONS:
#
# 1. JSONB `agent_ids` on multi_agents: the agent order matters (Chained
#    strategy runs in this order), and a JSON list keeps it without a
#    position column on a join table.
#
# 2. Relations are keyed by (source, target, join_key): one agent pair may
#    be linked on several fields, but the same link is stored once and
#    re-detection updates it in place.
# =============================================================================

from datetime import datetime

from sqlalchemy import (
    DateTime,
    Float,
    ForeignKey,
    Integer,
    String,
    Text,
    UniqueConstraint,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """SQLAlchemy declarative base class."""

    pass


class Agent(Base):
    """A knowledge source: one vector collection with a display name."""

    __tablename__ = "agents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Name of the vector-store collection holding this agent's points
    vector_collection: Mapped[str] = mapped_column(String(255), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Agent(id={self.id}, name='{self.name}', collection='{self.vector_collection}')>"


class MultiAgent(Base):
    """A named, ordered group of agents queried together."""

    __tablename__ = "multi_agents"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Ordered list of agent ids
    agent_ids: Mapped[list[int]] = mapped_column(JSONB, nullable=False, default=list)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    relations: Mapped[list["MultiAgentRelation"]] = relationship(
        "MultiAgentRelation",
        back_populates="multi_agent",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<MultiAgent(id={self.id}, name='{self.name}', agents={self.agent_ids})>"


class AgentRelation(Base):
    """A (possibly detected) join key between two agents' datasets."""

    __tablename__ = "agent_relations"
    __table_args__ = (
        UniqueConstraint(
            "source_agent_id", "target_agent_id", "join_key",
            name="uq_agent_relations_pair_key",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_agent_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False,
    )
    target_agent_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False,
    )
    join_key: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Detector confidence in [0, 1]; null for hand-entered relations
    confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<AgentRelation({self.source_agent_id} → {self.target_agent_id} "
            f"on '{self.join_key}', confidence={self.confidence})>"
        )


class MultiAgentRelation(Base):
    """A relation scoped to one multi-agent; seeds the chaining signal."""

    __tablename__ = "multi_agent_relations"
    __table_args__ = (
        UniqueConstraint(
            "multi_agent_id", "source_agent_id", "target_agent_id", "join_key",
            name="uq_multi_agent_relations_pair_key",
        ),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    multi_agent_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("multi_agents.id", ondelete="CASCADE"), nullable=False,
    )
    source_agent_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False,
    )
    target_agent_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("agents.id", ondelete="CASCADE"), nullable=False,
    )
    join_key: Mapped[str] = mapped_column(String(255), nullable=False)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    suggested_confidence: Mapped[float | None] = mapped_column(Float, nullable=True)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        server_default=func.now(),
        nullable=False,
    )

    multi_agent: Mapped["MultiAgent"] = relationship(
        "MultiAgent", back_populates="relations",
    )
