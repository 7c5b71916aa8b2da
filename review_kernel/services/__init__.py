"""Services layer - the workflow engine and the SQL port implementations."""

from review_kernel.services.assignment_store import SqlAssignmentStore
from review_kernel.services.audit_log import SqlAuditLog
from review_kernel.services.document_staging import SqlDocumentStaging
from review_kernel.services.gate_workflow import GateWorkflowEngine
from review_kernel.services.notifications import (
    LoggingNotificationPort,
    NullNotificationPort,
)
from review_kernel.services.placement_service import SqlPlacementPort
from review_kernel.services.side_effects import Notification, SideEffectDispatcher

__all__ = [
    "GateWorkflowEngine",
    "SqlAssignmentStore",
    "SqlAuditLog",
    "SqlDocumentStaging",
    "SqlPlacementPort",
    "LoggingNotificationPort",
    "NullNotificationPort",
    "Notification",
    "SideEffectDispatcher",
]
