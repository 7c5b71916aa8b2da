"""
Module: review_kernel.models.placement
Responsibility: ORM persistence for confirmed hires.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one placement per assignment (unique assignment_id).
    - salary > 0 (check constraint; the engine validates first).
    - Placements are immutable once written (db/immutability.py).
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from review_kernel.db.base import Base, UUIDString

if TYPE_CHECKING:
    from review_kernel.domain.dtos import Placement


class PlacementModel(Base):
    __tablename__ = "placements"

    __table_args__ = (
        CheckConstraint("salary > 0", name="ck_placements_salary_positive"),
        UniqueConstraint("assignment_id", name="uq_placements_assignment_id"),
    )

    assignment_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("assignments.id"),
        nullable=False,
    )
    candidate_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    job_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    salary: Mapped[Decimal] = mapped_column(nullable=False)
    hired_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return f"<Placement {self.id} assignment={self.assignment_id}>"

    def to_dto(self) -> Placement:
        from review_kernel.domain.dtos import Placement as PlacementDTO

        return PlacementDTO(
            id=self.id,
            assignment_id=self.assignment_id,
            candidate_id=self.candidate_id,
            job_id=self.job_id,
            salary=self.salary,
            hired_at=self.hired_at,
        )
