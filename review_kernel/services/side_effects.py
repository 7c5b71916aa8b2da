"""
SideEffectDispatcher -- effects a transition has beyond its own record.

Responsibility:
    Runs the transactional side effects of an approval inside the engine's
    unit of work (document commit before the assignment write, placement
    creation on hire) and publishes notifications after the engine has
    committed.

Invariants enforced:
    - Transactional effects propagate every failure so the engine rolls the
      whole transition back.
    - At most one placement per hire; a second one raises
      DuplicatePlacementError from the placement port.
    - Notification failures are logged and never reach the caller; the
      transition they describe is already committed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any

from review_kernel.domain.dtos import Assignment, Placement, StagedDocument
from review_kernel.domain.ports import (
    DocumentStagingPort,
    NotificationPort,
    PlacementPort,
)
from review_kernel.logging_config import get_logger

logger = get_logger("services.side_effects")


@dataclass(frozen=True)
class Notification:
    """One domain notification queued for publication after commit."""

    event_name: str
    payload: dict[str, Any] = field(default_factory=dict)


class SideEffectDispatcher:
    def __init__(
        self,
        documents: DocumentStagingPort,
        placements: PlacementPort,
        notifier: NotificationPort,
    ):
        self._documents = documents
        self._placements = placements
        self._notifier = notifier

    def commit_documents(
        self,
        assignment: Assignment,
        document_refs: tuple[str, ...],
        committed_at: datetime,
    ) -> tuple[StagedDocument, ...]:
        if not document_refs:
            return ()
        return self._documents.commit(assignment.id, document_refs, committed_at)

    def create_placement(
        self,
        assignment: Assignment,
        salary: Decimal,
        hired_at: datetime,
    ) -> Placement:
        return self._placements.create(assignment, salary, hired_at)

    def publish(self, notifications: list[Notification]) -> int:
        """Publish ``notifications`` in order; returns how many succeeded."""
        delivered = 0
        for notification in notifications:
            try:
                self._notifier.publish(notification.event_name, notification.payload)
            except Exception:
                logger.warning(
                    "notification_publish_failed",
                    extra={"event_name": notification.event_name},
                    exc_info=True,
                )
                continue
            delivered += 1
        return delivered
