"""
Domain records for the gate review workflow.

Frozen dataclasses passed between the engine, the ports and callers.
ORM models convert to and from these via ``to_dto`` / ``from_dto``; no
caller outside ``models/`` and the SQL port implementations ever touches
an ORM object.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import Any
from uuid import UUID

from review_kernel.domain.gates import (
    TERMINAL_STATES,
    ActorRole,
    AssignmentState,
    EventAction,
    Gate,
    Stage,
)


@dataclass(frozen=True)
class ActorContext:
    """Pre-verified identity of the caller.

    Identity and role membership are established by the session layer
    outside the kernel; the engine trusts them as given.
    """

    actor_id: UUID
    roles: frozenset[ActorRole]
    acting_role: ActorRole | None = None

    def __post_init__(self) -> None:
        if self.acting_role is not None and self.acting_role not in self.roles:
            raise ValueError(
                f"Acting role {self.acting_role.value} is not held by actor {self.actor_id}"
            )

    @classmethod
    def of(cls, actor_id: UUID, *roles: ActorRole | str) -> ActorContext:
        return cls(actor_id=actor_id, roles=frozenset(ActorRole(r) for r in roles))

    @property
    def effective_roles(self) -> frozenset[ActorRole]:
        """Roles considered for authorization.

        An explicit acting role narrows the actor to that role alone.
        """
        if self.acting_role is None:
            return self.roles
        return frozenset({self.acting_role})

    @property
    def role_names(self) -> tuple[str, ...]:
        return tuple(sorted(r.value for r in self.roles))


@dataclass(frozen=True)
class EventPayload:
    """Free-form text plus the structured fields an action may carry."""

    text: str = ""
    salary: Decimal | None = None
    document_refs: tuple[str, ...] = ()
    target_gate: Gate | None = None
    target_stage: Stage | None = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"text": self.text}
        if self.salary is not None:
            data["salary"] = str(self.salary)
        if self.document_refs:
            data["document_refs"] = list(self.document_refs)
        if self.target_gate is not None:
            data["target_gate"] = self.target_gate.value
        if self.target_stage is not None:
            data["target_stage"] = self.target_stage.value
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EventPayload:
        salary = data.get("salary")
        target_gate = data.get("target_gate")
        target_stage = data.get("target_stage")
        return cls(
            text=data.get("text", ""),
            salary=Decimal(salary) if salary is not None else None,
            document_refs=tuple(data.get("document_refs", ())),
            target_gate=Gate(target_gate) if target_gate else None,
            target_stage=Stage(target_stage) if target_stage else None,
        )


@dataclass(frozen=True)
class GateEvent:
    """One immutable audit entry describing an action taken at a gate.

    ``answered`` is meaningful only for ``request_info`` events; it is the
    single field allowed to change after the event is written.
    """

    assignment_id: UUID
    sequence: int
    actor_id: UUID
    actor_role: ActorRole
    gate: Gate
    stage: Stage
    action: EventAction
    payload: EventPayload
    created_at: datetime
    answered: bool = False
    payload_hash: str | None = None
    prev_hash: str | None = None
    hash: str | None = None

    @property
    def is_open_request(self) -> bool:
        return self.action is EventAction.REQUEST_INFO and not self.answered


@dataclass(frozen=True)
class Assignment:
    """Snapshot of a candidate/job pairing under review."""

    id: UUID
    candidate_id: UUID
    job_id: UUID
    current_gate: Gate
    stage: Stage
    state: AssignmentState
    version: int
    gate_sequence: tuple[Gate, ...]
    created_at: datetime
    updated_at: datetime
    history: tuple[GateEvent, ...] = ()

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES

    @property
    def outstanding_request(self) -> GateEvent | None:
        """The most recent unanswered ``request_info`` event, if any."""
        for event in reversed(self.history):
            if event.is_open_request:
                return event
        return None

    @property
    def next_sequence(self) -> int:
        return len(self.history) + 1


@dataclass(frozen=True)
class Placement:
    """Durable record of a confirmed hire."""

    id: UUID
    assignment_id: UUID
    candidate_id: UUID
    job_id: UUID
    salary: Decimal
    hired_at: datetime


@dataclass(frozen=True)
class StagedDocument:
    """A document uploaded for an assignment, awaiting commit."""

    document_ref: str
    assignment_id: UUID
    staged_at: datetime
    committed_at: datetime | None = None

    @property
    def is_committed(self) -> bool:
        return self.committed_at is not None


@dataclass(frozen=True)
class TransitionPlan:
    """What an approval will do, computed before anything is written."""

    target_gate: Gate
    target_stage: Stage
    target_state: AssignmentState
    salary: Decimal | None = None
    document_refs: tuple[str, ...] = field(default_factory=tuple)

    @property
    def is_hire(self) -> bool:
        return self.target_state is AssignmentState.TERMINAL_HIRED
