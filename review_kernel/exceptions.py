"""
Typed Exception Hierarchy for the Gate Review Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the workflow engine (API layers, UI adapters, retry loops) must
decide what to do with a rejected operation without parsing messages:

  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Every exception has a RETRIABLE flag (reload-and-retry vs. give up)
  4. Exceptions carry structured DATA (not just a message string)

Example:
    try:
        engine.approve_gate(assignment_id, actor, expected_version=3)
    except StaleStateError as e:
        assignment = engine.get_assignment(e.assignment_id)  # reload
        ...                                                  # and retry
    except GateWorkflowError as e:
        return {"error": e.code, "reason": str(e)}

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    GateWorkflowError (base)
    |
    +-- ValidationError
    |   +-- DocumentNotStagedError
    +-- AuthorizationError
    +-- ConflictError
    |   +-- DuplicatePlacementError
    +-- StaleStateError
    +-- NotFoundError
    |   +-- AssignmentNotFoundError
    +-- TerminalStateError
    +-- AuditError
    |   +-- AuditChainBrokenError
    |   +-- AuditSequenceError
    +-- ImmutabilityViolationError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                    | Retriable | When Raised
------------------------|-----------|------------------------------------------
VALIDATION_FAILED       | no        | Missing/invalid reason, questions,
                        |           | answers, note, salary, stage or documents
DOCUMENT_NOT_STAGED     | no        | Document ref unknown or already committed
NOT_AUTHORIZED          | no        | Actor role not permitted for the action
CONFLICT                | yes       | Outstanding info request blocks the action
DUPLICATE_PLACEMENT     | no        | Placement already exists for assignment
STALE_STATE             | yes       | expected_version != stored version
NOT_FOUND               | no        | Unknown assignment id
TERMINAL_STATE          | no        | Mutation attempted on a frozen assignment
AUDIT_CHAIN_BROKEN      | no        | Gate event hash chain validation failed
AUDIT_SEQUENCE_GAP      | yes       | Appended event is not the next sequence
IMMUTABILITY_VIOLATION  | no        | Written gate event modified or deleted
"""


class GateWorkflowError(Exception):
    """
    Base exception for all gate review kernel errors.

    All subclasses carry a ``code`` class attribute for machine-readable
    identification and a ``retriable`` flag telling the caller whether
    reloading and retrying the same request can succeed.
    """

    code: str = "GATE_WORKFLOW_ERROR"
    retriable: bool = False


class ValidationError(GateWorkflowError):
    """Request payload is missing or invalid for the requested action."""

    code: str = "VALIDATION_FAILED"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid {field}: {reason}")


class DocumentNotStagedError(ValidationError):
    """A referenced document is not staged for this assignment."""

    code: str = "DOCUMENT_NOT_STAGED"

    def __init__(self, assignment_id: str, document_ref: str):
        self.assignment_id = assignment_id
        self.document_ref = document_ref
        super().__init__(
            "staged_document_refs",
            f"document {document_ref} is not staged for assignment {assignment_id}",
        )


class AuthorizationError(GateWorkflowError):
    """Actor roles do not permit the action at the current gate."""

    code: str = "NOT_AUTHORIZED"

    def __init__(
        self,
        assignment_id: str,
        action: str,
        gate: str,
        roles: tuple[str, ...],
    ):
        self.assignment_id = assignment_id
        self.action = action
        self.gate = gate
        self.roles = roles
        role_list = ", ".join(roles) or "none"
        super().__init__(
            f"Roles [{role_list}] may not {action} at gate {gate} "
            f"on assignment {assignment_id}"
        )


class ConflictError(GateWorkflowError):
    """Action conflicts with the assignment's outstanding info request."""

    code: str = "CONFLICT"
    retriable: bool = True

    def __init__(self, assignment_id: str, reason: str):
        self.assignment_id = assignment_id
        self.reason = reason
        super().__init__(f"Conflict on assignment {assignment_id}: {reason}")


class DuplicatePlacementError(ConflictError):
    """A placement already exists for the assignment."""

    code: str = "DUPLICATE_PLACEMENT"
    retriable: bool = False

    def __init__(self, assignment_id: str):
        super().__init__(assignment_id, "placement already exists")


class StaleStateError(GateWorkflowError):
    """Optimistic concurrency conflict: the assignment changed underneath."""

    code: str = "STALE_STATE"
    retriable: bool = True

    def __init__(
        self,
        assignment_id: str,
        expected_version: int,
        actual_version: int | None = None,
    ):
        self.assignment_id = assignment_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        if actual_version is None:
            detail = "assignment was modified by another transaction"
        else:
            detail = f"stored version is {actual_version}"
        super().__init__(
            f"Stale state on assignment {assignment_id}: expected version "
            f"{expected_version}, {detail}"
        )


class NotFoundError(GateWorkflowError):
    """Base exception for unknown entities."""

    code: str = "NOT_FOUND"


class AssignmentNotFoundError(NotFoundError):
    """Assignment with given ID was not found."""

    def __init__(self, assignment_id: str):
        self.assignment_id = assignment_id
        super().__init__(f"Assignment not found: {assignment_id}")


class TerminalStateError(GateWorkflowError):
    """Mutation attempted on a hired or rejected assignment."""

    code: str = "TERMINAL_STATE"

    def __init__(self, assignment_id: str, state: str):
        self.assignment_id = assignment_id
        self.state = state
        super().__init__(
            f"Assignment {assignment_id} is frozen in terminal state {state}"
        )


class AuditError(GateWorkflowError):
    """Base exception for audit trail errors."""

    code: str = "AUDIT_ERROR"


class AuditChainBrokenError(AuditError):
    """
    Gate event hash chain validation failed.

    This is a critical error indicating the history of an assignment was
    altered outside the engine.
    """

    code: str = "AUDIT_CHAIN_BROKEN"

    def __init__(
        self,
        assignment_id: str,
        sequence: int,
        expected_hash: str,
        actual_hash: str,
    ):
        self.assignment_id = assignment_id
        self.sequence = sequence
        self.expected_hash = expected_hash
        self.actual_hash = actual_hash
        super().__init__(
            f"Audit chain broken for assignment {assignment_id} at sequence "
            f"{sequence}: expected {expected_hash}, got {actual_hash}"
        )


class AuditSequenceError(AuditError):
    """Appended event does not directly follow the last recorded one."""

    code: str = "AUDIT_SEQUENCE_GAP"
    retriable: bool = True

    def __init__(self, assignment_id: str, expected_sequence: int, actual_sequence: int):
        self.assignment_id = assignment_id
        self.expected_sequence = expected_sequence
        self.actual_sequence = actual_sequence
        super().__init__(
            f"Gate event for assignment {assignment_id} has sequence "
            f"{actual_sequence}, expected {expected_sequence}"
        )


class ImmutabilityViolationError(GateWorkflowError):
    """Attempted to modify or delete an immutable record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )
