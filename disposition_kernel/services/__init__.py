"""Services for the disposition kernel (write side)."""

from disposition_kernel.services.assignment_manager import AssignmentManager
from disposition_kernel.services.audit_log import AuditLog
from disposition_kernel.services.decision_engine import DecisionEngine
from disposition_kernel.services.escalation_gate import EscalationGate
from disposition_kernel.services.report_store import ReportStore
from disposition_kernel.services.retry import run_with_retry
from disposition_kernel.services.sequence_service import SequenceService

__all__ = [
    "AssignmentManager",
    "AuditLog",
    "DecisionEngine",
    "EscalationGate",
    "ReportStore",
    "SequenceService",
    "run_with_retry",
]
