"""
SqlAssignmentStore -- durable assignment records with optimistic concurrency.

Responsibility:
    Implements the ``AssignmentStore`` port on top of ``AssignmentModel``.
    ``compare_and_save`` is the conditional write every transition goes
    through: the row is only updated when its stored version equals the
    version the caller acted on.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - New assignments are stored at version 1.
    - Each successful save increments the version by exactly one.
    - The UPDATE carries ``WHERE version = :expected`` (SQLAlchemy
      version_id_col), so a concurrent writer that committed first makes
      this flush match zero rows and fail.

Failure modes:
    - AssignmentNotFoundError for unknown ids.
    - StaleStateError on a version mismatch, whether detected on load or
      by the conditional UPDATE.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID

from sqlalchemy.orm.exc import StaleDataError

from review_kernel.domain.dtos import Assignment
from review_kernel.exceptions import AssignmentNotFoundError, StaleStateError
from review_kernel.logging_config import get_logger
from review_kernel.models.assignment import AssignmentModel
from review_kernel.services.audit_log import SqlAuditLog
from review_kernel.services.base import BaseService

logger = get_logger("services.assignment_store")

INITIAL_VERSION = 1


class SqlAssignmentStore(BaseService):
    """SQLAlchemy-backed ``AssignmentStore``.

    History is read through ``SqlAuditLog`` on the same session so a
    loaded assignment always reflects events flushed in this transaction.
    """

    def __init__(self, session, audit_log: SqlAuditLog | None = None):
        super().__init__(session)
        self._audit_log = audit_log or SqlAuditLog(session)

    def _get_model(self, assignment_id: UUID) -> AssignmentModel:
        model = self.session.get(
            AssignmentModel, assignment_id, populate_existing=True,
        )
        if model is None:
            raise AssignmentNotFoundError(str(assignment_id))
        return model

    def load(self, assignment_id: UUID) -> Assignment:
        model = self._get_model(assignment_id)
        return model.to_dto(history=self._audit_log.history_for(assignment_id))

    def add(self, assignment: Assignment) -> Assignment:
        model = AssignmentModel.from_dto(
            replace(assignment, version=INITIAL_VERSION, history=()),
        )
        self.session.add(model)
        self.session.flush()
        logger.info(
            "assignment_created",
            extra={
                "assignment_id": str(model.id),
                "gate": model.current_gate,
                "gate_sequence": model.gate_sequence,
            },
        )
        return model.to_dto()

    def compare_and_save(
        self,
        assignment: Assignment,
        expected_version: int,
    ) -> Assignment:
        model = self._get_model(assignment.id)
        if model.version != expected_version:
            raise StaleStateError(
                str(assignment.id), expected_version, model.version,
            )

        model.apply(assignment)
        model.version = expected_version + 1
        try:
            self.session.flush()
        except StaleDataError as exc:
            logger.warning(
                "assignment_save_stale",
                extra={
                    "assignment_id": str(assignment.id),
                    "expected_version": expected_version,
                },
            )
            raise StaleStateError(str(assignment.id), expected_version) from exc

        return model.to_dto(history=self._audit_log.history_for(assignment.id))
