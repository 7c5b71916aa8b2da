"""
GateWorkflowEngine -- the single writer of assignment review state.

Responsibility:
    Validates and applies every gate action (approve, deny, request info,
    provide info, add note) against an assignment, records it in the gate
    history, runs the side effects it triggers and reports the outcome.

Architecture position:
    Kernel > Services -- imperative shell.  Pure decisions live in
    ``domain.authorization`` (who may act) and ``domain.transitions`` (what
    an approval does); storage is reached only through the ports.

Invariants enforced:
    - Checks run in a fixed order before the first write: unknown id,
      terminal state, stale version, authorization and conflicts, payload
      validation.
    - One successful operation appends exactly one gate event and bumps
      the version by exactly one.
    - Document commit, assignment write, event append, request answering
      and placement creation share one transaction (when ``auto_commit``
      the engine commits on success and rolls back on any failure).
    - Notifications are published only after the commit.

Failure modes:
    - Every rejection is a ``GateWorkflowError`` subclass carrying a code
      and a retriable flag; ``execute`` turns them into a failed
      ``TransitionOutcome`` instead of raising.
    - Unexpected exceptions roll back and propagate.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, replace
from typing import Any, Callable
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from review_kernel.domain.authorization import (
    EVENT_ACTIONS,
    GateAction,
    acting_role,
    available_actions,
    outstanding_responders,
)
from review_kernel.domain.clock import Clock, SystemClock
from review_kernel.domain.commands import (
    AddNote,
    ApproveGate,
    DenyGate,
    GateCommand,
    ProvideInfo,
    RequestInfo,
    TransitionOutcome,
)
from review_kernel.domain.dtos import (
    ActorContext,
    Assignment,
    EventPayload,
    GateEvent,
    Placement,
    TransitionPlan,
)
from review_kernel.domain.gates import (
    ActorRole,
    AssignmentState,
    Stage,
    is_valid_state_transition,
    route_gates,
)
from review_kernel.domain.ports import (
    AssignmentStore,
    AuditLog,
    DocumentStagingPort,
    NotificationPort,
    PlacementPort,
)
from review_kernel.domain.transitions import plan_approval, require_text
from review_kernel.exceptions import (
    AuthorizationError,
    ConflictError,
    GateWorkflowError,
    StaleStateError,
    TerminalStateError,
    ValidationError,
)
from review_kernel.logging_config import LogContext, get_logger
from review_kernel.services.assignment_store import SqlAssignmentStore
from review_kernel.services.audit_log import SqlAuditLog
from review_kernel.services.document_staging import SqlDocumentStaging
from review_kernel.services.notifications import LoggingNotificationPort
from review_kernel.services.placement_service import SqlPlacementPort
from review_kernel.services.side_effects import Notification, SideEffectDispatcher

logger = get_logger("services.gate_workflow")


@dataclass(frozen=True)
class _Change:
    """Everything one operation will write, decided before writing."""

    assignment: Assignment
    event: GateEvent
    plan: TransitionPlan | None = None
    answers_sequence: int | None = None


class GateWorkflowEngine:
    """
    Validates and applies gate actions.

    The engine works inside the given session.  The default SQL ports are
    built on that same session so all writes of one operation share a
    transaction; custom ports may be injected for other backends.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        notifier: NotificationPort | None = None,
        *,
        store: AssignmentStore | None = None,
        audit_log: AuditLog | None = None,
        documents: DocumentStagingPort | None = None,
        placements: PlacementPort | None = None,
        auto_commit: bool = True,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._audit_log = audit_log or SqlAuditLog(session)
        self._store = store or SqlAssignmentStore(session, self._audit_log)
        self._dispatcher = SideEffectDispatcher(
            documents=documents or SqlDocumentStaging(session),
            placements=placements or SqlPlacementPort(session),
            notifier=notifier or LoggingNotificationPort(),
        )
        self._auto_commit = auto_commit
        self._pending: list[Notification] = []

    # =====================================================================
    # Queries
    # =====================================================================

    def get_assignment(self, assignment_id: UUID) -> Assignment:
        return self._store.load(assignment_id)

    def get_history(self, assignment_id: UUID) -> tuple[GateEvent, ...]:
        return self._store.load(assignment_id).history

    def permitted_actions(
        self,
        assignment_id: UUID,
        actor: ActorContext,
    ) -> frozenset[GateAction]:
        """Actions ``actor`` may take on the assignment right now."""
        return available_actions(self._store.load(assignment_id), actor.effective_roles)

    # =====================================================================
    # Creation
    # =====================================================================

    def open_assignment(
        self,
        candidate_id: UUID,
        job_id: UUID,
        actor: ActorContext,
        has_candidate_recruiter: bool = True,
        has_company_recruiter: bool = True,
    ) -> Assignment:
        """Create an assignment routed through the gates its recruiters imply."""
        sequence = route_gates(has_candidate_recruiter, has_company_recruiter)
        now = self._clock.now()
        assignment = Assignment(
            id=uuid4(),
            candidate_id=candidate_id,
            job_id=job_id,
            current_gate=sequence[0],
            stage=Stage.SCREEN,
            state=AssignmentState.AWAITING_REVIEW,
            version=1,
            gate_sequence=sequence,
            created_at=now,
            updated_at=now,
        )
        with LogContext.bind(
            correlation_id=str(uuid4()),
            assignment_id=str(assignment.id),
            actor_id=str(actor.actor_id),
            operation="open_assignment",
        ):
            try:
                created = self._store.add(assignment)
                if self._auto_commit:
                    self._session.commit()
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.error("assignment_open_failed", exc_info=True)
                raise
            logger.info(
                "assignment_opened",
                extra={
                    "candidate_id": str(candidate_id),
                    "job_id": str(job_id),
                    "gate_sequence": [g.value for g in sequence],
                },
            )
        return created

    # =====================================================================
    # Gate actions
    # =====================================================================

    def approve_gate(
        self,
        assignment_id: UUID,
        actor: ActorContext,
        expected_version: int,
        notes: str | None = None,
        target_stage: Stage | str | None = None,
        salary: Any = None,
        staged_document_refs: Any = (),
    ) -> Assignment:
        def plan(current: Assignment, role: ActorRole) -> _Change:
            if current.state is AssignmentState.INFO_REQUESTED:
                raise ConflictError(
                    str(current.id),
                    "an info request is outstanding; forward motion is paused",
                )
            if notes is not None and not isinstance(notes, str):
                raise ValidationError("notes", "must be a string")
            transition = plan_approval(
                current,
                target_stage=target_stage,
                salary=salary,
                staged_document_refs=staged_document_refs,
            )
            payload = EventPayload(
                text=notes.strip() if notes is not None else "",
                salary=transition.salary,
                document_refs=transition.document_refs,
                target_gate=transition.target_gate,
                target_stage=transition.target_stage,
            )
            updated = replace(
                current,
                current_gate=transition.target_gate,
                stage=transition.target_stage,
                state=transition.target_state,
            )
            return self._change(current, updated, GateAction.APPROVE, role, actor,
                                payload, plan=transition)

        return self._run(GateAction.APPROVE, assignment_id, actor, expected_version, plan)

    def deny_gate(
        self,
        assignment_id: UUID,
        actor: ActorContext,
        expected_version: int,
        reason: str,
    ) -> Assignment:
        def plan(current: Assignment, role: ActorRole) -> _Change:
            text = require_text("reason", reason)
            updated = replace(
                current,
                stage=Stage.REJECTED,
                state=AssignmentState.TERMINAL_REJECTED,
            )
            return self._change(current, updated, GateAction.DENY, role, actor,
                                EventPayload(text=text))

        return self._run(GateAction.DENY, assignment_id, actor, expected_version, plan)

    def request_info(
        self,
        assignment_id: UUID,
        actor: ActorContext,
        expected_version: int,
        questions: str,
    ) -> Assignment:
        def plan(current: Assignment, role: ActorRole) -> _Change:
            if current.outstanding_request is not None:
                raise ConflictError(
                    str(current.id),
                    "an info request is already outstanding",
                )
            text = require_text("questions", questions)
            updated = replace(current, state=AssignmentState.INFO_REQUESTED)
            return self._change(current, updated, GateAction.REQUEST_INFO, role, actor,
                                EventPayload(text=text))

        return self._run(
            GateAction.REQUEST_INFO, assignment_id, actor, expected_version, plan,
        )

    def provide_info(
        self,
        assignment_id: UUID,
        actor: ActorContext,
        expected_version: int,
        answers: str,
    ) -> Assignment:
        def plan(current: Assignment, role: ActorRole) -> _Change:
            text = require_text("answers", answers)
            request = current.outstanding_request
            updated = replace(current, state=AssignmentState.AWAITING_REVIEW)
            return self._change(current, updated, GateAction.PROVIDE_INFO, role, actor,
                                EventPayload(text=text),
                                answers_sequence=request.sequence)

        return self._run(
            GateAction.PROVIDE_INFO, assignment_id, actor, expected_version, plan,
        )

    def add_note(
        self,
        assignment_id: UUID,
        actor: ActorContext,
        expected_version: int,
        note: str,
    ) -> Assignment:
        def plan(current: Assignment, role: ActorRole) -> _Change:
            text = require_text("note", note)
            return self._change(current, current, GateAction.ADD_NOTE, role, actor,
                                EventPayload(text=text))

        return self._run(GateAction.ADD_NOTE, assignment_id, actor, expected_version, plan)

    def execute(self, command: GateCommand) -> TransitionOutcome:
        """
        Run ``command`` and report the result instead of raising.

        Only ``GateWorkflowError`` becomes a failed outcome; unexpected
        exceptions still propagate.
        """
        handlers: dict[type, Callable[[], Assignment]] = {
            ApproveGate: lambda: self.approve_gate(
                command.assignment_id, command.actor, command.expected_version,
                notes=command.notes,
                target_stage=command.target_stage,
                salary=command.salary,
                staged_document_refs=command.staged_document_refs,
            ),
            DenyGate: lambda: self.deny_gate(
                command.assignment_id, command.actor, command.expected_version,
                reason=command.reason,
            ),
            RequestInfo: lambda: self.request_info(
                command.assignment_id, command.actor, command.expected_version,
                questions=command.questions,
            ),
            ProvideInfo: lambda: self.provide_info(
                command.assignment_id, command.actor, command.expected_version,
                answers=command.answers,
            ),
            AddNote: lambda: self.add_note(
                command.assignment_id, command.actor, command.expected_version,
                note=command.note,
            ),
        }
        handler = handlers.get(type(command))
        if handler is None:
            raise TypeError(f"Unsupported command: {type(command).__name__}")

        try:
            assignment = handler()
        except GateWorkflowError as exc:
            return TransitionOutcome.failed(command.action, exc)
        return TransitionOutcome.succeeded(command.action, assignment)

    def publish_pending(self) -> int:
        """Publish notifications queued while ``auto_commit`` is off.

        Call after committing the session.
        """
        pending, self._pending = self._pending, []
        return self._dispatcher.publish(pending)

    # =====================================================================
    # Internals
    # =====================================================================

    def _change(
        self,
        current: Assignment,
        updated: Assignment,
        action: GateAction,
        role: ActorRole,
        actor: ActorContext,
        payload: EventPayload,
        plan: TransitionPlan | None = None,
        answers_sequence: int | None = None,
    ) -> _Change:
        now = self._clock.now()
        assert is_valid_state_transition(current.state, updated.state), (
            f"Illegal state transition {current.state.value} -> {updated.state.value}"
        )
        event = GateEvent(
            assignment_id=current.id,
            sequence=current.next_sequence,
            actor_id=actor.actor_id,
            actor_role=role,
            gate=current.current_gate,
            stage=current.stage,
            action=EVENT_ACTIONS[action],
            payload=payload,
            created_at=now,
        )
        return _Change(
            assignment=replace(updated, updated_at=now),
            event=event,
            plan=plan,
            answers_sequence=answers_sequence,
        )

    def _authorize(
        self,
        action: GateAction,
        current: Assignment,
        actor: ActorContext,
    ) -> ActorRole:
        if action is GateAction.PROVIDE_INFO and current.outstanding_request is None:
            raise ConflictError(str(current.id), "no info request is outstanding")

        role = acting_role(
            action,
            current.current_gate,
            actor.effective_roles,
            outstanding_responders(current),
        )
        if role is None:
            raise AuthorizationError(
                assignment_id=str(current.id),
                action=action.value,
                gate=current.current_gate.value,
                roles=tuple(sorted(r.value for r in actor.effective_roles)),
            )
        return role

    def _load_for_update(self, assignment_id: UUID, expected_version: int) -> Assignment:
        current = self._store.load(assignment_id)
        if current.is_terminal:
            raise TerminalStateError(str(assignment_id), current.state.value)
        if current.version != expected_version:
            raise StaleStateError(str(assignment_id), expected_version, current.version)
        return current

    def _write(self, change: _Change, expected_version: int) -> tuple[Assignment, Placement | None]:
        plan = change.plan
        if plan is not None and plan.document_refs:
            self._dispatcher.commit_documents(
                change.assignment, plan.document_refs, change.event.created_at,
            )

        self._store.compare_and_save(change.assignment, expected_version)
        self._audit_log.append(change.event)
        if change.answers_sequence is not None:
            self._audit_log.mark_answered(change.assignment.id, change.answers_sequence)

        placement = None
        if plan is not None and plan.is_hire:
            placement = self._dispatcher.create_placement(
                change.assignment, plan.salary, change.event.created_at,
            )

        return self._store.load(change.assignment.id), placement

    def _run(
        self,
        action: GateAction,
        assignment_id: UUID,
        actor: ActorContext,
        expected_version: int,
        planner: Callable[[Assignment, ActorRole], _Change],
    ) -> Assignment:
        with LogContext.bind(
            correlation_id=str(uuid4()),
            assignment_id=str(assignment_id),
            actor_id=str(actor.actor_id),
            operation=action.value,
        ):
            logger.info(
                "gate_transition_started",
                extra={
                    "action": action.value,
                    "expected_version": expected_version,
                    "roles": list(actor.role_names),
                },
            )
            t0 = time.monotonic()

            try:
                current = self._load_for_update(assignment_id, expected_version)
                role = self._authorize(action, current, actor)
                change = planner(current, role)
                result, placement = self._write(change, expected_version)

                if self._auto_commit:
                    self._session.commit()
            except GateWorkflowError as exc:
                if self._auto_commit:
                    self._session.rollback()
                logger.warning(
                    "gate_transition_rejected",
                    extra={
                        "action": action.value,
                        "error_code": exc.code,
                        "retriable": exc.retriable,
                        "reason": str(exc),
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                )
                raise
            except Exception:
                if self._auto_commit:
                    self._session.rollback()
                logger.error(
                    "gate_transition_failed",
                    extra={
                        "action": action.value,
                        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    },
                    exc_info=True,
                )
                raise

            logger.info(
                "gate_transition_committed",
                extra={
                    "action": action.value,
                    "actor_role": role.value,
                    "from_gate": current.current_gate.value,
                    "to_gate": result.current_gate.value,
                    "from_stage": current.stage.value,
                    "to_stage": result.stage.value,
                    "state": result.state.value,
                    "version": result.version,
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                },
            )

            notifications = _notifications_for(action, current, result, role, placement)
            if self._auto_commit:
                self._dispatcher.publish(notifications)
            else:
                self._pending.extend(notifications)

        return result


def _notifications_for(
    action: GateAction,
    before: Assignment,
    after: Assignment,
    role: ActorRole,
    placement: Placement | None,
) -> list[Notification]:
    event = after.history[-1]
    base = {
        "assignment_id": str(after.id),
        "candidate_id": str(after.candidate_id),
        "job_id": str(after.job_id),
        "actor_id": str(event.actor_id),
        "actor_role": role.value,
        "gate": event.gate.value,
        "stage": after.stage.value,
        "version": after.version,
    }

    if action is GateAction.DENY:
        return [Notification("assignment.gate_denied", {**base, "reason": event.payload.text})]
    if action is GateAction.REQUEST_INFO:
        responders = sorted(r.value for r in outstanding_responders(after))
        return [Notification(
            "assignment.info_requested",
            {**base, "questions": event.payload.text, "responders": responders},
        )]
    if action is GateAction.PROVIDE_INFO:
        return [Notification("assignment.info_provided", {**base, "answers": event.payload.text})]
    if action is GateAction.ADD_NOTE:
        return [Notification("assignment.note_added", {**base, "note": event.payload.text})]

    notifications = [Notification("assignment.gate_approved", base)]
    if after.current_gate is not before.current_gate:
        notifications.append(Notification(
            "assignment.gate_entered",
            {**base, "gate": after.current_gate.value, "previous_gate": before.current_gate.value},
        ))
    if after.stage is not before.stage:
        notifications.append(Notification(
            "assignment.stage_changed",
            {**base, "previous_stage": before.stage.value},
        ))
    if placement is not None:
        notifications.append(Notification(
            "assignment.hired",
            {**base, "placement_id": str(placement.id), "salary": str(placement.salary)},
        ))
    return notifications
