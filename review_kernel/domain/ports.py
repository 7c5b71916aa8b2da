"""
Ports consumed by the gate workflow engine.

The engine owns no storage.  Everything it reads or writes goes through
these protocols; default SQLAlchemy implementations live in
``review_kernel.services``.  Implementations that write must enlist in the
caller's unit of work (flush, never commit) so that a failed transition
leaves nothing behind.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from review_kernel.domain.dtos import (
    Assignment,
    GateEvent,
    Placement,
    StagedDocument,
)


@runtime_checkable
class AssignmentStore(Protocol):
    """Durable storage for assignment records."""

    def load(self, assignment_id: UUID) -> Assignment:
        """Return the current record, history included.

        Raises AssignmentNotFoundError for unknown ids.
        """
        ...

    def add(self, assignment: Assignment) -> Assignment:
        """Persist a new assignment and return it with its initial version."""
        ...

    def compare_and_save(
        self,
        assignment: Assignment,
        expected_version: int,
    ) -> Assignment:
        """Write ``assignment`` only if the stored version is ``expected_version``.

        Returns the saved record with its new version.  Raises
        StaleStateError without writing anything on mismatch.
        """
        ...


@runtime_checkable
class AuditLog(Protocol):
    """Append-only, ordered gate history per assignment."""

    def append(self, event: GateEvent) -> GateEvent:
        ...

    def history_for(self, assignment_id: UUID) -> tuple[GateEvent, ...]:
        ...

    def mark_answered(self, assignment_id: UUID, sequence: int) -> GateEvent:
        ...


@runtime_checkable
class DocumentStagingPort(Protocol):
    """Document blob staging: stage on upload, commit on approval."""

    def stage(
        self,
        assignment_id: UUID,
        document_ref: str,
        staged_at: datetime,
    ) -> StagedDocument:
        ...

    def commit(
        self,
        assignment_id: UUID,
        document_refs: tuple[str, ...],
        committed_at: datetime,
    ) -> tuple[StagedDocument, ...]:
        """Commit every ref or none; raises DocumentNotStagedError."""
        ...


@runtime_checkable
class PlacementPort(Protocol):
    """Placement persistence."""

    def create(
        self,
        assignment: Assignment,
        salary: Decimal,
        hired_at: datetime,
    ) -> Placement:
        ...

    def get_for_assignment(self, assignment_id: UUID) -> Placement | None:
        ...


@runtime_checkable
class NotificationPort(Protocol):
    """Fire-and-forget notification delivery."""

    def publish(self, event_name: str, payload: dict[str, Any]) -> None:
        ...
