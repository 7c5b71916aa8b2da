"""
ORM-level immutability enforcement for review records.

SQLAlchemy fires events before UPDATE/DELETE statements reach the
database.  The listeners registered here intercept them and check the
append-only rules of the review history:

    session.flush()
         |
         v
    [before_update event] --> _check_*_immutability() --> ImmutabilityViolationError
         |                                                        ^
         v                                                        |
    [before_delete event] --> _check_*_delete() -----------------+
         |
         v
    SQL sent to database (only if checks pass)

Protected entities
------------------

Entity          | When immutable              | Allowed change
----------------|-----------------------------|----------------------------------
GateEvent       | ALWAYS (from creation)      | answered: false -> true, once
Placement       | ALWAYS (from creation)      | none
Assignment      | Once in a terminal state    | none (entering terminal is allowed)

Usage
-----

Registered by ``create_tables()``; call directly when tables are managed
elsewhere:

    from review_kernel.db.immutability import register_immutability_listeners
    register_immutability_listeners()

To temporarily disable (TESTS ONLY):

    unregister_immutability_listeners()
"""

from sqlalchemy import event, inspect
from sqlalchemy.orm.attributes import get_history

from review_kernel.exceptions import ImmutabilityViolationError
from review_kernel.logging_config import get_logger

logger = get_logger("db.immutability")

_TERMINAL_STATE_VALUES = frozenset({"terminal_hired", "terminal_rejected"})


def _blocked(entity_type: str, entity_id, operation: str, reason: str, **extra):
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(entity_id),
            "operation": operation,
            **extra,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(entity_id),
        reason=reason,
    )


def _check_gate_event_immutability(mapper, connection, target):
    """
    Allow only the one-time answered flag flip on a request_info event.
    """
    from review_kernel.models.gate_event import GateEventModel

    if not isinstance(target, GateEventModel):
        return

    insp = inspect(target)
    for attr in insp.attrs:
        if not attr.history.has_changes():
            continue
        if attr.key != "answered":
            _blocked(
                "GateEvent", target.id, "UPDATE",
                f"Cannot modify field '{attr.key}' on a gate event",
                field=attr.key,
            )

    answered = get_history(target, "answered")
    if not answered.has_changes():
        return
    old = answered.deleted[0] if answered.deleted else False
    if target.action != "request_info" or old or not target.answered:
        _blocked(
            "GateEvent", target.id, "UPDATE",
            "answered may only change from false to true on a request_info event",
            field="answered",
        )


def _check_gate_event_delete(mapper, connection, target):
    from review_kernel.models.gate_event import GateEventModel

    if not isinstance(target, GateEventModel):
        return

    _blocked(
        "GateEvent", target.id, "DELETE",
        "Gate events are append-only and cannot be deleted",
    )


def _check_placement_immutability(mapper, connection, target):
    from review_kernel.models.placement import PlacementModel

    if not isinstance(target, PlacementModel):
        return

    _blocked(
        "Placement", target.id, "UPDATE",
        "Placements are immutable and cannot be modified",
    )


def _check_placement_delete(mapper, connection, target):
    from review_kernel.models.placement import PlacementModel

    if not isinstance(target, PlacementModel):
        return

    _blocked(
        "Placement", target.id, "DELETE",
        "Placements are immutable and cannot be deleted",
    )


def _was_terminal(target) -> bool:
    """True when the row was already terminal before this flush.

    The transition INTO a terminal state is the one update allowed; any
    update after it is blocked.
    """
    state_history = get_history(target, "state")
    if state_history.deleted:
        return state_history.deleted[0] in _TERMINAL_STATE_VALUES
    if not state_history.added:
        return target.state in _TERMINAL_STATE_VALUES
    return False


def _check_assignment_immutability(mapper, connection, target):
    from review_kernel.models.assignment import AssignmentModel

    if not isinstance(target, AssignmentModel):
        return

    if _was_terminal(target):
        _blocked(
            "Assignment", target.id, "UPDATE",
            f"Assignment is frozen in terminal state {target.state}",
        )


def _check_assignment_delete(mapper, connection, target):
    from review_kernel.models.assignment import AssignmentModel

    if not isinstance(target, AssignmentModel):
        return

    _blocked(
        "Assignment", target.id, "DELETE",
        "Assignments carry audit history and cannot be deleted",
    )


def _listeners():
    from review_kernel.models.assignment import AssignmentModel
    from review_kernel.models.gate_event import GateEventModel
    from review_kernel.models.placement import PlacementModel

    return (
        (GateEventModel, "before_update", _check_gate_event_immutability),
        (GateEventModel, "before_delete", _check_gate_event_delete),
        (PlacementModel, "before_update", _check_placement_immutability),
        (PlacementModel, "before_delete", _check_placement_delete),
        (AssignmentModel, "before_update", _check_assignment_immutability),
        (AssignmentModel, "before_delete", _check_assignment_delete),
    )


def register_immutability_listeners() -> None:
    """
    Register all immutability enforcement event listeners.

    Idempotent: listeners already registered are not added twice.
    """
    for target, event_name, listener_fn in _listeners():
        if not event.contains(target, event_name, listener_fn):
            event.listen(target, event_name, listener_fn)


def unregister_immutability_listeners() -> None:
    """
    Remove immutability enforcement event listeners.

    WARNING: Only use this in tests where you need to intentionally
    violate immutability rules to verify detection.
    """
    for target, event_name, listener_fn in _listeners():
        if event.contains(target, event_name, listener_fn):
            event.remove(target, event_name, listener_fn)
