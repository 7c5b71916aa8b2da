"""
Workflow commands and the explicit transition result.

A command is one requested action against one assignment.  The engine's
``execute`` turns any command into a ``TransitionOutcome`` that is either a
success carrying the new assignment or a tagged failure carrying the error
code, so callers never have to mirror state by hand.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import ClassVar
from uuid import UUID

from review_kernel.domain.authorization import GateAction
from review_kernel.domain.dtos import ActorContext, Assignment
from review_kernel.domain.gates import Stage
from review_kernel.exceptions import GateWorkflowError


@dataclass(frozen=True)
class GateCommand:
    """Fields shared by every command."""

    assignment_id: UUID
    actor: ActorContext
    expected_version: int

    action: ClassVar[GateAction]


@dataclass(frozen=True)
class ApproveGate(GateCommand):
    notes: str | None = None
    target_stage: Stage | None = None
    salary: Decimal | int | None = None
    staged_document_refs: tuple[str, ...] = ()
    action: ClassVar[GateAction] = GateAction.APPROVE


@dataclass(frozen=True)
class DenyGate(GateCommand):
    reason: str = ""
    action: ClassVar[GateAction] = GateAction.DENY


@dataclass(frozen=True)
class RequestInfo(GateCommand):
    questions: str = ""
    action: ClassVar[GateAction] = GateAction.REQUEST_INFO


@dataclass(frozen=True)
class ProvideInfo(GateCommand):
    answers: str = ""
    action: ClassVar[GateAction] = GateAction.PROVIDE_INFO


@dataclass(frozen=True)
class AddNote(GateCommand):
    note: str = ""
    action: ClassVar[GateAction] = GateAction.ADD_NOTE


@dataclass(frozen=True)
class TransitionOutcome:
    """Result of executing a command."""

    success: bool
    action: GateAction
    assignment: Assignment | None = None
    error_code: str | None = None
    reason: str = ""
    retriable: bool = False

    @classmethod
    def succeeded(cls, action: GateAction, assignment: Assignment) -> TransitionOutcome:
        return cls(success=True, action=action, assignment=assignment)

    @classmethod
    def failed(cls, action: GateAction, error: GateWorkflowError) -> TransitionOutcome:
        return cls(
            success=False,
            action=action,
            error_code=error.code,
            reason=str(error),
            retriable=error.retriable,
        )
