"""
Authorization resolver (``review_kernel.domain.authorization``).

Responsibility
--------------
The single rule table deciding who may act at which gate.  Both the
workflow engine (which enforces it) and any display layer (which shows
the buttons) derive their answers from ``GATE_RULES`` through the
functions in this module; nothing else encodes gate permissions.

Architecture position
---------------------
**Kernel domain layer** -- pure lookup, ZERO I/O.  May import only from
``domain/gates`` and ``domain/dtos``.

Rule table
----------
=====================  =================================  ==============================
Gate                   Reviewer roles                     Info requests answered by
=====================  =================================  ==============================
candidate_recruiter    candidate_recruiter                candidate
company_recruiter      company_recruiter                  candidate_recruiter
company                hiring_manager, company_admin      candidate_recruiter
=====================  =================================  ==============================

* Reviewers may approve, deny and request info.  ``platform_admin`` is a
  reviewer at every gate.
* Only the roles asked by the outstanding request may provide info.  When
  the assignment's routing has no candidate recruiter gate, company-side
  requests are answered by the candidate directly.
* Anyone holding any other permitted action may add a note.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from review_kernel.domain.dtos import Assignment
from review_kernel.domain.gates import (
    ActorRole,
    AssignmentState,
    EventAction,
    Gate,
)


class GateAction(str, Enum):
    """Actions an actor may be permitted to take at a gate."""

    APPROVE = "approve"
    DENY = "deny"
    REQUEST_INFO = "request_info"
    PROVIDE_INFO = "provide_info"
    ADD_NOTE = "add_note"


# Gate action -> the action recorded in history.
EVENT_ACTIONS: dict[GateAction, EventAction] = {
    GateAction.APPROVE: EventAction.APPROVE,
    GateAction.DENY: EventAction.DENY,
    GateAction.REQUEST_INFO: EventAction.REQUEST_INFO,
    GateAction.PROVIDE_INFO: EventAction.PROVIDE_INFO,
    GateAction.ADD_NOTE: EventAction.NOTE,
}

REVIEW_ACTIONS: frozenset[GateAction] = frozenset({
    GateAction.APPROVE,
    GateAction.DENY,
    GateAction.REQUEST_INFO,
})

# Roles that review at every gate.
OVERRIDE_ROLES: frozenset[ActorRole] = frozenset({ActorRole.PLATFORM_ADMIN})


@dataclass(frozen=True)
class GateRule:
    """Who reviews a gate and who answers the questions it raises."""

    gate: Gate
    reviewer_roles: frozenset[ActorRole]
    responder_roles: frozenset[ActorRole]


GATE_RULES: dict[Gate, GateRule] = {
    Gate.CANDIDATE_RECRUITER: GateRule(
        gate=Gate.CANDIDATE_RECRUITER,
        reviewer_roles=frozenset({ActorRole.CANDIDATE_RECRUITER}),
        responder_roles=frozenset({ActorRole.CANDIDATE}),
    ),
    Gate.COMPANY_RECRUITER: GateRule(
        gate=Gate.COMPANY_RECRUITER,
        reviewer_roles=frozenset({ActorRole.COMPANY_RECRUITER}),
        responder_roles=frozenset({ActorRole.CANDIDATE_RECRUITER}),
    ),
    Gate.COMPANY: GateRule(
        gate=Gate.COMPANY,
        reviewer_roles=frozenset({
            ActorRole.HIRING_MANAGER,
            ActorRole.COMPANY_ADMIN,
        }),
        responder_roles=frozenset({ActorRole.CANDIDATE_RECRUITER}),
    ),
}

# Deterministic preference when an actor holds several qualifying roles.
_ROLE_PRIORITY: tuple[ActorRole, ...] = tuple(ActorRole)


def responders_for(
    gate: Gate,
    gate_sequence: tuple[Gate, ...],
) -> frozenset[ActorRole]:
    """Roles asked by an info request raised at ``gate``."""
    responders = GATE_RULES[gate].responder_roles
    if (
        ActorRole.CANDIDATE_RECRUITER in responders
        and Gate.CANDIDATE_RECRUITER not in gate_sequence
    ):
        return frozenset({ActorRole.CANDIDATE})
    return responders


def resolve_permitted_actions(
    gate: Gate,
    roles: frozenset[ActorRole],
    responders: frozenset[ActorRole] = frozenset(),
) -> frozenset[GateAction]:
    """
    Map ``(gate, roles)`` to the permitted actions.

    ``responders`` is the set of roles asked by the outstanding info
    request, empty when none is outstanding.
    """
    actions: set[GateAction] = set()
    reviewers = GATE_RULES[gate].reviewer_roles | OVERRIDE_ROLES
    if roles & reviewers:
        actions |= REVIEW_ACTIONS
    if roles & responders:
        actions.add(GateAction.PROVIDE_INFO)
    if actions:
        actions.add(GateAction.ADD_NOTE)
    return frozenset(actions)


def acting_role(
    action: GateAction,
    gate: Gate,
    roles: frozenset[ActorRole],
    responders: frozenset[ActorRole] = frozenset(),
) -> ActorRole | None:
    """The role under which ``action`` is taken, or None if not permitted.

    Gate reviewers take precedence over the override roles, so a recruiter
    who is also a platform admin is recorded as the recruiter.
    """
    reviewers = GATE_RULES[gate].reviewer_roles
    if action is GateAction.PROVIDE_INFO:
        candidates = [roles & responders]
    elif action in REVIEW_ACTIONS:
        candidates = [roles & reviewers, roles & OVERRIDE_ROLES]
    else:
        candidates = [roles & reviewers, roles & OVERRIDE_ROLES, roles & responders]

    for matched in candidates:
        if matched:
            return next(r for r in _ROLE_PRIORITY if r in matched)
    return None


def outstanding_responders(assignment: Assignment) -> frozenset[ActorRole]:
    """Roles asked by the assignment's outstanding request, if any."""
    request = assignment.outstanding_request
    if request is None:
        return frozenset()
    return responders_for(request.gate, assignment.gate_sequence)


def available_actions(
    assignment: Assignment,
    roles: frozenset[ActorRole],
) -> frozenset[GateAction]:
    """Actions a display layer should offer ``roles`` on ``assignment``.

    Same table as the engine, narrowed by state: nothing on a frozen
    assignment, and no forward motion while an info request is open.
    """
    if assignment.is_terminal:
        return frozenset()
    actions = resolve_permitted_actions(
        assignment.current_gate,
        roles,
        outstanding_responders(assignment),
    )
    if assignment.state is AssignmentState.INFO_REQUESTED:
        actions -= {GateAction.APPROVE, GateAction.REQUEST_INFO}
    return actions
