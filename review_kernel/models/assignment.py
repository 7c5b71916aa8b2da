"""
Module: review_kernel.models.assignment
Responsibility: ORM persistence for assignments under gate review.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ value types only.

Invariants enforced:
    - version is the optimistic concurrency token.  It is mapped as the
      SQLAlchemy version_id_col with an application-supplied value, so every
      UPDATE is emitted as ``UPDATE ... WHERE id = :id AND version = :old``
      and a zero row count surfaces as StaleDataError.
    - A terminal assignment is never updated again (ORM listener in
      db/immutability.py).

Failure modes:
    - StaleDataError on flush when another transaction bumped the version.
    - ImmutabilityViolationError on UPDATE/DELETE of a terminal assignment.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from review_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from review_kernel.domain.dtos import Assignment, GateEvent


class AssignmentModel(Base):
    """Persistent candidate/job pairing and its review position.

    Gate history is stored in ``gate_events`` and joined in by the
    assignment store; this row holds only the current position.
    """

    __tablename__ = "assignments"

    __table_args__ = (
        CheckConstraint(
            "state IN ('awaiting_review', 'info_requested', "
            "'terminal_hired', 'terminal_rejected')",
            name="ck_assignments_valid_state",
        ),
        CheckConstraint(
            "current_gate IN ('candidate_recruiter', 'company_recruiter', 'company')",
            name="ck_assignments_valid_gate",
        ),
        CheckConstraint("version >= 1", name="ck_assignments_version_positive"),
        Index("ix_assignments_candidate", "candidate_id"),
        Index("ix_assignments_job", "job_id"),
        Index("ix_assignments_gate_state", "current_gate", "state"),
    )

    candidate_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    job_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    current_gate: Mapped[str] = mapped_column(String(30), nullable=False)
    stage: Mapped[str] = mapped_column(String(30), nullable=False)
    state: Mapped[str] = mapped_column(String(30), nullable=False)

    # Ordered gate values, e.g. ["company_recruiter", "company"]
    gate_sequence: Mapped[list] = mapped_column(JSON, nullable=False)

    version: Mapped[int] = mapped_column(nullable=False)

    created_at: Mapped[datetime] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(nullable=False)

    __mapper_args__ = {
        "version_id_col": version,
        "version_id_generator": False,
    }

    def __repr__(self) -> str:
        return (
            f"<Assignment {self.id} gate={self.current_gate} "
            f"stage={self.stage} state={self.state} v{self.version}>"
        )

    def to_dto(self, history: tuple[GateEvent, ...] = ()) -> Assignment:
        """Convert ORM model to frozen domain DTO."""
        from review_kernel.domain.dtos import Assignment as AssignmentDTO
        from review_kernel.domain.gates import AssignmentState, Gate, Stage

        return AssignmentDTO(
            id=self.id,
            candidate_id=self.candidate_id,
            job_id=self.job_id,
            current_gate=Gate(self.current_gate),
            stage=Stage(self.stage),
            state=AssignmentState(self.state),
            version=self.version,
            gate_sequence=tuple(Gate(g) for g in self.gate_sequence),
            created_at=self.created_at,
            updated_at=self.updated_at,
            history=history,
        )

    @classmethod
    def from_dto(cls, dto: Assignment) -> AssignmentModel:
        """Create ORM model from domain DTO."""
        return cls(
            id=dto.id,
            candidate_id=dto.candidate_id,
            job_id=dto.job_id,
            current_gate=dto.current_gate.value,
            stage=dto.stage.value,
            state=dto.state.value,
            gate_sequence=[g.value for g in dto.gate_sequence],
            version=dto.version,
            created_at=dto.created_at,
            updated_at=dto.updated_at,
        )

    def apply(self, dto: Assignment) -> None:
        """Copy the mutable review position from ``dto`` onto this row."""
        self.current_gate = dto.current_gate.value
        self.stage = dto.stage.value
        self.state = dto.state.value
        self.updated_at = dto.updated_at
