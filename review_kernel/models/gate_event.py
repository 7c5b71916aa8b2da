"""
Module: review_kernel.models.gate_event
Responsibility: ORM persistence for the per-assignment gate history.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - (assignment_id, sequence) is unique; sequences are contiguous from 1,
      allocated by the audit log.
    - Rows are append-only.  The only permitted UPDATE flips ``answered``
      from false to true on a request_info event (db/immutability.py).
    - hash = H(assignment_id | sequence | action | payload_hash | prev_hash).
      ``answered`` is deliberately outside the hash so flipping it never
      breaks the chain.

Failure modes:
    - IntegrityError on a duplicate (assignment_id, sequence).
    - ImmutabilityViolationError on any other UPDATE or any DELETE.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Boolean, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from review_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from review_kernel.domain.dtos import GateEvent


class GateEventModel(Base):
    """One action taken at a gate.  Append-only."""

    __tablename__ = "gate_events"

    __table_args__ = (
        UniqueConstraint(
            "assignment_id", "sequence",
            name="uq_gate_events_assignment_sequence",
        ),
        Index("ix_gate_events_action", "action"),
        Index("ix_gate_events_actor", "actor_id"),
    )

    assignment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("assignments.id"),
        nullable=False,
    )
    sequence: Mapped[int] = mapped_column(nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    actor_role: Mapped[str] = mapped_column(String(30), nullable=False)

    # Where the action happened
    gate: Mapped[str] = mapped_column(String(30), nullable=False)
    stage: Mapped[str] = mapped_column(String(30), nullable=False)

    action: Mapped[str] = mapped_column(String(20), nullable=False)
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    # Only meaningful for request_info
    answered: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)
    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<GateEvent {self.assignment_id}#{self.sequence} {self.action}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def to_dto(self) -> GateEvent:
        """Convert ORM model to frozen domain DTO."""
        from review_kernel.domain.dtos import EventPayload, GateEvent as GateEventDTO
        from review_kernel.domain.gates import ActorRole, EventAction, Gate, Stage

        return GateEventDTO(
            assignment_id=self.assignment_id,
            sequence=self.sequence,
            actor_id=self.actor_id,
            actor_role=ActorRole(self.actor_role),
            gate=Gate(self.gate),
            stage=Stage(self.stage),
            action=EventAction(self.action),
            payload=EventPayload.from_dict(self.payload),
            created_at=self.created_at,
            answered=self.answered,
            payload_hash=self.payload_hash,
            prev_hash=self.prev_hash,
            hash=self.hash,
        )

    @classmethod
    def from_dto(cls, dto: GateEvent) -> GateEventModel:
        """Create ORM model from domain DTO.  Hash fields must be set."""
        return cls(
            assignment_id=dto.assignment_id,
            sequence=dto.sequence,
            actor_id=dto.actor_id,
            actor_role=dto.actor_role.value,
            gate=dto.gate.value,
            stage=dto.stage.value,
            action=dto.action.value,
            payload=dto.payload.to_dict(),
            answered=dto.answered,
            created_at=dto.created_at,
            payload_hash=dto.payload_hash,
            prev_hash=dto.prev_hash,
            hash=dto.hash,
        )
