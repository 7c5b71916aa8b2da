"""
SqlPlacementPort -- placement records for confirmed hires.

Exactly one placement may exist per assignment.  The unique constraint on
``placements.assignment_id`` backs the in-session check, so a racing
second hire fails at flush even if both passed the check.  Any other
integrity failure (foreign key, salary check) propagates unchanged.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from review_kernel.domain.dtos import Assignment, Placement
from review_kernel.exceptions import DuplicatePlacementError
from review_kernel.logging_config import get_logger
from review_kernel.models.placement import PlacementModel
from review_kernel.services.base import BaseService

logger = get_logger("services.placement")

_UNIQUE_ASSIGNMENT = "uq_placements_assignment_id"


def _is_duplicate_assignment(exc: IntegrityError) -> bool:
    """True when ``exc`` is the unique violation on ``placements.assignment_id``."""
    diag = getattr(exc.orig, "diag", None)
    constraint = getattr(diag, "constraint_name", None)
    if constraint is not None:
        return constraint == _UNIQUE_ASSIGNMENT
    message = str(exc.orig)
    return "UNIQUE" in message.upper() and "placements.assignment_id" in message


class SqlPlacementPort(BaseService):
    """SQLAlchemy-backed ``PlacementPort``."""

    def _get_model(self, assignment_id: UUID) -> PlacementModel | None:
        return self.session.execute(
            select(PlacementModel).where(PlacementModel.assignment_id == assignment_id)
        ).scalar_one_or_none()

    def create(
        self,
        assignment: Assignment,
        salary: Decimal,
        hired_at: datetime,
    ) -> Placement:
        if self._get_model(assignment.id) is not None:
            raise DuplicatePlacementError(str(assignment.id))

        model = PlacementModel(
            assignment_id=assignment.id,
            candidate_id=assignment.candidate_id,
            job_id=assignment.job_id,
            salary=salary,
            hired_at=hired_at,
        )
        self.session.add(model)
        try:
            self.session.flush()
        except IntegrityError as exc:
            if not _is_duplicate_assignment(exc):
                raise
            raise DuplicatePlacementError(str(assignment.id)) from exc

        logger.info(
            "placement_created",
            extra={
                "assignment_id": str(assignment.id),
                "placement_id": str(model.id),
                "salary": salary,
            },
        )
        return model.to_dto()

    def get_for_assignment(self, assignment_id: UUID) -> Placement | None:
        model = self._get_model(assignment_id)
        return None if model is None else model.to_dto()
