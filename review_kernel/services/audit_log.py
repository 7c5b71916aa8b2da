"""
SqlAuditLog -- append-only gate history with a per-assignment hash chain.

Responsibility:
    Implements the ``AuditLog`` port.  Every gate event appended for an
    assignment is linked to its predecessor by hash, so any retroactive
    edit, reordering or removal of history is detectable with
    ``verify_chain``.

Architecture position:
    Kernel > Services -- imperative shell, flush-only.

Invariants enforced:
    - Sequences are contiguous from 1 per assignment; a gap or repeat
      raises ``AuditSequenceError`` before anything is written.
    - hash = H(assignment_id | sequence | action | payload_hash | prev_hash),
      where payload_hash covers actor, gate, stage, timestamp and payload.
      ``answered`` is excluded so the one permitted flip never breaks the
      chain.
    - Only ``mark_answered`` changes a written event, and only once.

Failure modes:
    - AuditSequenceError on a non-contiguous append.
    - ConflictError from ``mark_answered`` on an answered or non-request event.
    - AuditChainBrokenError from ``verify_chain``.
"""

from __future__ import annotations

from dataclasses import replace
from uuid import UUID

from sqlalchemy import select

from review_kernel.domain.dtos import GateEvent
from review_kernel.domain.gates import EventAction
from review_kernel.exceptions import (
    AuditChainBrokenError,
    AuditSequenceError,
    ConflictError,
)
from review_kernel.logging_config import get_logger
from review_kernel.models.gate_event import GateEventModel
from review_kernel.services.base import BaseService
from review_kernel.utils.hashing import hash_gate_event, hash_payload

logger = get_logger("services.audit_log")


def event_content(event: GateEvent) -> dict:
    """The hashed content of an event: everything except ``answered``."""
    return {
        "actor_id": event.actor_id,
        "actor_role": event.actor_role.value,
        "gate": event.gate.value,
        "stage": event.stage.value,
        "created_at": event.created_at,
        "payload": event.payload.to_dict(),
    }


class SqlAuditLog(BaseService):
    """SQLAlchemy-backed ``AuditLog``."""

    def _events(self, assignment_id: UUID) -> list[GateEventModel]:
        return list(
            self.session.execute(
                select(GateEventModel)
                .where(GateEventModel.assignment_id == assignment_id)
                .order_by(GateEventModel.sequence)
            ).scalars()
        )

    def _last(self, assignment_id: UUID) -> GateEventModel | None:
        return self.session.execute(
            select(GateEventModel)
            .where(GateEventModel.assignment_id == assignment_id)
            .order_by(GateEventModel.sequence.desc())
            .limit(1)
        ).scalar_one_or_none()

    def append(self, event: GateEvent) -> GateEvent:
        """
        Append ``event`` to its assignment's history.

        The hash fields of ``event`` are ignored and recomputed here.

        Returns:
            The stored event with ``payload_hash``, ``prev_hash`` and
            ``hash`` populated.
        """
        last = self._last(event.assignment_id)
        expected_sequence = 1 if last is None else last.sequence + 1
        if event.sequence != expected_sequence:
            raise AuditSequenceError(
                str(event.assignment_id), expected_sequence, event.sequence,
            )

        prev_hash = None if last is None else last.hash
        payload_hash = hash_payload(event_content(event))
        event_hash = hash_gate_event(
            assignment_id=event.assignment_id,
            sequence=event.sequence,
            action=event.action.value,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
        )
        stored = replace(
            event,
            payload_hash=payload_hash,
            prev_hash=prev_hash,
            hash=event_hash,
        )

        self.session.add(GateEventModel.from_dto(stored))
        self.session.flush()

        logger.info(
            "gate_event_appended",
            extra={
                "assignment_id": str(event.assignment_id),
                "sequence": event.sequence,
                "action": event.action.value,
                "gate": event.gate.value,
                "hash": event_hash,
            },
        )
        return stored

    def history_for(self, assignment_id: UUID) -> tuple[GateEvent, ...]:
        """All events for ``assignment_id`` in sequence order."""
        return tuple(model.to_dto() for model in self._events(assignment_id))

    def mark_answered(self, assignment_id: UUID, sequence: int) -> GateEvent:
        """Flip ``answered`` on the request_info event at ``sequence``."""
        model = self.session.execute(
            select(GateEventModel).where(
                GateEventModel.assignment_id == assignment_id,
                GateEventModel.sequence == sequence,
            )
        ).scalar_one_or_none()

        if model is None or model.action != EventAction.REQUEST_INFO.value:
            raise ConflictError(
                str(assignment_id),
                f"event {sequence} is not an info request",
            )
        if model.answered:
            raise ConflictError(
                str(assignment_id),
                f"info request {sequence} is already answered",
            )

        model.answered = True
        self.session.flush()
        logger.debug(
            "info_request_marked_answered",
            extra={"assignment_id": str(assignment_id), "sequence": sequence},
        )
        return model.to_dto()

    def verify_chain(self, assignment_id: UUID) -> bool:
        """
        Recompute and check every link of the assignment's chain.

        Returns:
            True when the chain is intact (an empty history is intact).

        Raises:
            AuditChainBrokenError: at the first event whose stored hashes do
                not match the recomputed values.
        """
        prev_hash: str | None = None
        for position, model in enumerate(self._events(assignment_id), start=1):
            event = model.to_dto()
            payload_hash = hash_payload(event_content(event))
            expected = hash_gate_event(
                assignment_id=assignment_id,
                sequence=position,
                action=event.action.value,
                payload_hash=payload_hash,
                prev_hash=prev_hash,
            )
            if (
                model.sequence != position
                or model.prev_hash != prev_hash
                or model.payload_hash != payload_hash
                or model.hash != expected
            ):
                logger.critical(
                    "audit_chain_broken",
                    extra={
                        "assignment_id": str(assignment_id),
                        "sequence": model.sequence,
                    },
                )
                raise AuditChainBrokenError(
                    str(assignment_id), model.sequence, expected, model.hash,
                )
            prev_hash = model.hash
        return True
