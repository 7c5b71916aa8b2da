"""ORM models for the gate review kernel."""

from review_kernel.models.assignment import AssignmentModel
from review_kernel.models.gate_event import GateEventModel
from review_kernel.models.placement import PlacementModel
from review_kernel.models.staged_document import StagedDocumentModel

__all__ = [
    "AssignmentModel",
    "GateEventModel",
    "PlacementModel",
    "StagedDocumentModel",
]
