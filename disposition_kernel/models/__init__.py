"""ORM models for the disposition kernel."""

from disposition_kernel.models.assignment import AssignmentModel
from disposition_kernel.models.audit_entry import AuditLogEntryModel
from disposition_kernel.models.decision import DecisionModel
from disposition_kernel.models.report import ReportModel, ReportTransactionModel
from disposition_kernel.models.sequence import SequenceCounter

__all__ = [
    "AssignmentModel",
    "AuditLogEntryModel",
    "DecisionModel",
    "ReportModel",
    "ReportTransactionModel",
    "SequenceCounter",
]
