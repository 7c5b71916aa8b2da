"""
Pure domain layer.

Value types, the gate rule table, transition planning and the port
protocols, with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- I/O

All domain objects are immutable and deterministic.
"""

from review_kernel.domain.authorization import (
    GATE_RULES,
    GateAction,
    available_actions,
    resolve_permitted_actions,
)
from review_kernel.domain.clock import Clock, DeterministicClock, SystemClock
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
    StagedDocument,
    TransitionPlan,
)
from review_kernel.domain.gates import (
    ActorRole,
    AssignmentState,
    EventAction,
    Gate,
    Stage,
    route_gates,
)

__all__ = [
    # Gates and stages
    "Gate",
    "Stage",
    "AssignmentState",
    "EventAction",
    "ActorRole",
    "route_gates",
    # Authorization
    "GATE_RULES",
    "GateAction",
    "resolve_permitted_actions",
    "available_actions",
    # Records
    "ActorContext",
    "Assignment",
    "EventPayload",
    "GateEvent",
    "Placement",
    "StagedDocument",
    "TransitionPlan",
    # Commands
    "GateCommand",
    "ApproveGate",
    "DenyGate",
    "RequestInfo",
    "ProvideInfo",
    "AddNote",
    "TransitionOutcome",
    # Time
    "Clock",
    "SystemClock",
    "DeterministicClock",
]
