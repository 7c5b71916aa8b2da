"""
Pure transition planning (``review_kernel.domain.transitions``).

Responsibility
--------------
Given an assignment snapshot and a request payload, decide what the
request would do, or raise the ``ValidationError`` explaining why it
cannot.  Nothing here performs I/O; the workflow engine calls these
functions after authorization and conflict checks and before its first
write.

Approval rules
--------------
* Recruiter gate: the gate advances to the next gate of the assignment's
  sequence.  An optional ``target_stage`` must be a recruiter stage
  strictly after the current stage; without one the stage is kept.
* Company gate: the gate stays.  The stage advances to ``target_stage``
  (a company stage strictly after the current one) or, when omitted, to
  the next company stage.
* Reaching ``hired`` requires a finite salary greater than zero with at
  most two decimal places and at most thirteen integer digits, so the
  stored placement holds exactly the approved amount.  A salary on any
  other approval is rejected.
* Staged document references are accepted only when approving into
  ``interview`` and must be distinct non-empty strings.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from review_kernel.domain.dtos import Assignment, TransitionPlan
from review_kernel.domain.gates import (
    COMPANY_STAGES,
    DOCUMENT_STAGE,
    RECRUITER_STAGES,
    AssignmentState,
    Gate,
    Stage,
    is_forward,
    next_company_stage,
    next_gate,
)
from review_kernel.exceptions import ValidationError

SALARY_MAX_PLACES = 2
SALARY_MAX_INTEGER_DIGITS = 13


def require_text(field: str, value: Any) -> str:
    """Return ``value`` stripped, or raise if it is empty or not a string."""
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(field, "must be a non-empty string")
    return value.strip()


def _decimal_places(amount: Decimal) -> int:
    # Trailing zeros do not count: 150000.00 has no significant places.
    _, digits, exponent = amount.as_tuple()
    while exponent < 0 and len(digits) > 1 and digits[-1] == 0:
        digits = digits[:-1]
        exponent += 1
    return max(0, -exponent)


def normalize_salary(salary: Any) -> Decimal | None:
    """Coerce ``salary`` to a positive finite money Decimal; None passes through."""
    if salary is None:
        return None
    if isinstance(salary, bool):
        raise ValidationError("salary", "must be a number")
    try:
        amount = salary if isinstance(salary, Decimal) else Decimal(str(salary))
    except (InvalidOperation, ValueError):
        raise ValidationError("salary", f"must be a number, got {salary!r}") from None
    if not amount.is_finite():
        raise ValidationError("salary", "must be finite")
    if amount <= 0:
        raise ValidationError("salary", "must be greater than zero")
    if amount.adjusted() >= SALARY_MAX_INTEGER_DIGITS:
        raise ValidationError(
            "salary", f"must have at most {SALARY_MAX_INTEGER_DIGITS} integer digits",
        )
    if _decimal_places(amount) > SALARY_MAX_PLACES:
        raise ValidationError(
            "salary", f"must have at most {SALARY_MAX_PLACES} decimal places",
        )
    return amount


def normalize_document_refs(refs: Any) -> tuple[str, ...]:
    """Validate staged document references: distinct, non-empty strings."""
    if refs is None:
        return ()
    if isinstance(refs, str):
        raise ValidationError("staged_document_refs", "must be a sequence of references")
    refs = tuple(refs)
    for ref in refs:
        if not isinstance(ref, str) or not ref.strip():
            raise ValidationError(
                "staged_document_refs", "references must be non-empty strings",
            )
    if len(set(refs)) != len(refs):
        raise ValidationError("staged_document_refs", "references must be distinct")
    return refs


def _coerce_stage(target_stage: Stage | str | None) -> Stage | None:
    if target_stage is None or isinstance(target_stage, Stage):
        return target_stage
    try:
        return Stage(target_stage)
    except ValueError:
        raise ValidationError("target_stage", f"unknown stage {target_stage!r}") from None


def _resolve_target_stage(
    current: Assignment,
    requested: Stage | None,
) -> Stage:
    if current.current_gate is Gate.COMPANY:
        if requested is None:
            default = next_company_stage(current.stage)
            if default is None:
                raise ValidationError("target_stage", "no further stage to advance to")
            return default
        allowed = COMPANY_STAGES
    else:
        if requested is None:
            return current.stage
        allowed = RECRUITER_STAGES

    if requested not in allowed:
        raise ValidationError(
            "target_stage",
            f"{requested.value} is not reachable from the "
            f"{current.current_gate.value} gate",
        )
    if not is_forward(current.stage, requested):
        raise ValidationError(
            "target_stage",
            f"{requested.value} does not advance past {current.stage.value}",
        )
    return requested


def plan_approval(
    current: Assignment,
    target_stage: Stage | str | None = None,
    salary: Any = None,
    staged_document_refs: Any = (),
) -> TransitionPlan:
    """
    Compute the effect of approving ``current`` at its current gate.

    Raises:
        ValidationError: for an unreachable stage, a missing, invalid or
            unexpected salary, or misplaced or malformed document refs.
    """
    requested = _coerce_stage(target_stage)
    amount = normalize_salary(salary)
    refs = normalize_document_refs(staged_document_refs)

    if current.current_gate is Gate.COMPANY:
        target_gate = Gate.COMPANY
    else:
        target_gate = next_gate(current.gate_sequence, current.current_gate)

    stage = _resolve_target_stage(current, requested)
    hire = stage is Stage.HIRED

    if hire and amount is None:
        raise ValidationError("salary", "is required to hire")
    if not hire and amount is not None:
        raise ValidationError("salary", "is only accepted on the approval that hires")
    if refs and stage is not DOCUMENT_STAGE:
        raise ValidationError(
            "staged_document_refs",
            f"documents may only be attached when approving into {DOCUMENT_STAGE.value}",
        )

    return TransitionPlan(
        target_gate=target_gate,
        target_stage=stage,
        target_state=(
            AssignmentState.TERMINAL_HIRED if hire else AssignmentState.AWAITING_REVIEW
        ),
        salary=amount,
        document_refs=refs,
    )
