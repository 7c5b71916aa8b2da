"""
Gate review domain types (``review_kernel.domain.gates``).

Responsibility
--------------
Pure vocabulary of the gate review workflow: gates, stages, assignment
states, gate event actions, actor roles, gate routing and the stage
ordering rules used when an approval advances an assignment.

Architecture position
---------------------
**Kernel domain layer** -- pure values and functions.  ZERO I/O.  No
imports from ``db/``, ``models/``, ``services/`` or ``selectors/``.

Invariants enforced
-------------------
* The gate and state vocabularies are closed enums; nothing outside them
  can be represented.
* ``STATE_TRANSITIONS`` defines the only valid state changes.  Terminal
  states have no outgoing edges.
* ``STAGE_ORDER`` is strictly forward: an approval never moves a stage
  backwards.
"""

from __future__ import annotations

from enum import Enum


class Gate(str, Enum):
    """Review checkpoints, in their canonical order."""

    CANDIDATE_RECRUITER = "candidate_recruiter"
    COMPANY_RECRUITER = "company_recruiter"
    COMPANY = "company"


class Stage(str, Enum):
    """Pipeline stages an assignment moves through."""

    SCREEN = "screen"
    SUBMITTED = "submitted"
    RECRUITER_REVIEW = "recruiter_review"
    RECRUITER_PROPOSED = "recruiter_proposed"
    COMPANY_REVIEW = "company_review"
    COMPANY_FEEDBACK = "company_feedback"
    INTERVIEW = "interview"
    OFFER = "offer"
    HIRED = "hired"
    REJECTED = "rejected"


class AssignmentState(str, Enum):
    """Review state of an assignment at its current gate."""

    AWAITING_REVIEW = "awaiting_review"
    INFO_REQUESTED = "info_requested"
    TERMINAL_HIRED = "terminal_hired"
    TERMINAL_REJECTED = "terminal_rejected"


class EventAction(str, Enum):
    """Actions recorded in an assignment's gate history."""

    APPROVE = "approve"
    DENY = "deny"
    REQUEST_INFO = "request_info"
    PROVIDE_INFO = "provide_info"
    NOTE = "note"


class ActorRole(str, Enum):
    """Roles an actor may hold with respect to an assignment."""

    CANDIDATE = "candidate"
    CANDIDATE_RECRUITER = "candidate_recruiter"
    COMPANY_RECRUITER = "company_recruiter"
    HIRING_MANAGER = "hiring_manager"
    COMPANY_ADMIN = "company_admin"
    PLATFORM_ADMIN = "platform_admin"


# =========================================================================
# State machine
# =========================================================================

STATE_TRANSITIONS: dict[AssignmentState, frozenset[AssignmentState]] = {
    AssignmentState.AWAITING_REVIEW: frozenset({
        AssignmentState.AWAITING_REVIEW,
        AssignmentState.INFO_REQUESTED,
        AssignmentState.TERMINAL_HIRED,
        AssignmentState.TERMINAL_REJECTED,
    }),
    AssignmentState.INFO_REQUESTED: frozenset({
        AssignmentState.INFO_REQUESTED,
        AssignmentState.AWAITING_REVIEW,
        AssignmentState.TERMINAL_REJECTED,
    }),
    AssignmentState.TERMINAL_HIRED: frozenset(),
    AssignmentState.TERMINAL_REJECTED: frozenset(),
}

TERMINAL_STATES: frozenset[AssignmentState] = frozenset({
    AssignmentState.TERMINAL_HIRED,
    AssignmentState.TERMINAL_REJECTED,
})


def is_valid_state_transition(
    current: AssignmentState,
    new: AssignmentState,
) -> bool:
    """True when ``current -> new`` is an edge of the state machine."""
    return new in STATE_TRANSITIONS[current]


# =========================================================================
# Stage ordering
# =========================================================================

STAGE_ORDER: tuple[Stage, ...] = (
    Stage.SCREEN,
    Stage.SUBMITTED,
    Stage.RECRUITER_REVIEW,
    Stage.RECRUITER_PROPOSED,
    Stage.COMPANY_REVIEW,
    Stage.COMPANY_FEEDBACK,
    Stage.INTERVIEW,
    Stage.OFFER,
    Stage.HIRED,
)

# Stages a recruiter gate approval may move to.
RECRUITER_STAGES: tuple[Stage, ...] = (
    Stage.SUBMITTED,
    Stage.RECRUITER_REVIEW,
    Stage.RECRUITER_PROPOSED,
)

# Stages a company gate approval may move to, in order.
COMPANY_STAGES: tuple[Stage, ...] = (
    Stage.COMPANY_REVIEW,
    Stage.COMPANY_FEEDBACK,
    Stage.INTERVIEW,
    Stage.OFFER,
    Stage.HIRED,
)

# Approving into this stage may attach staged documents.
DOCUMENT_STAGE = Stage.INTERVIEW


def stage_rank(stage: Stage) -> int:
    """Position of ``stage`` in the forward pipeline order."""
    if stage is Stage.REJECTED:
        raise ValueError("rejected is not part of the forward stage order")
    return STAGE_ORDER.index(stage)


def is_forward(current: Stage, target: Stage) -> bool:
    """True when ``target`` lies strictly after ``current``."""
    return stage_rank(target) > stage_rank(current)


def next_company_stage(current: Stage) -> Stage | None:
    """Default target of a company gate approval.

    Returns the first company stage strictly after ``current``, or None
    when ``current`` is already ``hired``.
    """
    for stage in COMPANY_STAGES:
        if is_forward(current, stage):
            return stage
    return None


# =========================================================================
# Gate routing
# =========================================================================

FULL_GATE_SEQUENCE: tuple[Gate, ...] = (
    Gate.CANDIDATE_RECRUITER,
    Gate.COMPANY_RECRUITER,
    Gate.COMPANY,
)


def route_gates(
    has_candidate_recruiter: bool,
    has_company_recruiter: bool,
) -> tuple[Gate, ...]:
    """
    Build the gate sequence for a new assignment.

    Four routings:
        1. No recruiters            -> company
        2. Candidate recruiter only -> candidate_recruiter, company
        3. Company recruiter only   -> company_recruiter, company
        4. Both recruiters          -> candidate_recruiter, company_recruiter, company

    The company gate is always last.
    """
    sequence: list[Gate] = []
    if has_candidate_recruiter:
        sequence.append(Gate.CANDIDATE_RECRUITER)
    if has_company_recruiter:
        sequence.append(Gate.COMPANY_RECRUITER)
    sequence.append(Gate.COMPANY)
    return tuple(sequence)


def next_gate(sequence: tuple[Gate, ...], current: Gate) -> Gate | None:
    """Gate following ``current`` in ``sequence``; None for the last gate."""
    if current not in sequence:
        raise ValueError(f"Gate {current.value} is not part of sequence")
    index = sequence.index(current)
    if index == len(sequence) - 1:
        return None
    return sequence[index + 1]


def validate_gate_sequence(sequence: tuple[Gate, ...]) -> None:
    """Raise ValueError unless ``sequence`` is an ordered subset ending at company."""
    if not sequence or sequence[-1] is not Gate.COMPANY:
        raise ValueError("Gate sequence must end with the company gate")
    if len(set(sequence)) != len(sequence):
        raise ValueError("Gate sequence must not repeat gates")
    ranks = [FULL_GATE_SEQUENCE.index(g) for g in sequence]
    if ranks != sorted(ranks):
        raise ValueError("Gate sequence must follow canonical gate order")
