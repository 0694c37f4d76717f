"""
Pure domain layer.

Value objects and rules for the disposition workflow with NO dependencies
on the ORM, the database or I/O.  Time comes in through ``Clock``.

All domain objects are immutable and deterministic.
"""

from disposition_kernel.domain.audit import AuditEntry, AuditPage, AuditQuery
from disposition_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from disposition_kernel.domain.collaborators import (
    DecisionEvent,
    DecisionPublisher,
    StaffDirectory,
)
from disposition_kernel.domain.decisions import (
    DecisionOutcome,
    DecisionRecord,
    DecisionRequest,
    parse_decision_payload,
)
from disposition_kernel.domain.escalation import ensure_distinct_reviewer
from disposition_kernel.domain.lifecycle import (
    TERMINAL_STATES,
    TRANSITION_TABLE,
    DecisionKind,
    DecisionStage,
    ReportState,
    ReportType,
    TransitionRule,
    find_transition,
)
from disposition_kernel.domain.queues import (
    AgeBucket,
    QueueFilters,
    QueueName,
    QueueView,
    ReportSummary,
    RiskLevel,
    SortOrder,
)
from disposition_kernel.domain.reports import (
    AssignmentInfo,
    ReportInfo,
    ReportSubmission,
    TransactionLine,
    Workload,
)
from disposition_kernel.domain.roles import (
    DEFAULT_ROLE_POLICY,
    DEFAULT_SETTINGS,
    Actor,
    RolePolicyTable,
    RoleScope,
    StaffRole,
    WorkflowSettings,
)

__all__ = [
    # Clock
    "Clock",
    "DeterministicClock",
    "SystemClock",
    # Lifecycle
    "DecisionKind",
    "DecisionStage",
    "ReportState",
    "ReportType",
    "TERMINAL_STATES",
    "TRANSITION_TABLE",
    "TransitionRule",
    "find_transition",
    # Decisions
    "DecisionOutcome",
    "DecisionRecord",
    "DecisionRequest",
    "parse_decision_payload",
    "ensure_distinct_reviewer",
    # Queues
    "AgeBucket",
    "QueueFilters",
    "QueueName",
    "QueueView",
    "ReportSummary",
    "RiskLevel",
    "SortOrder",
    # Reports and assignments
    "AssignmentInfo",
    "ReportInfo",
    "ReportSubmission",
    "TransactionLine",
    "Workload",
    # Roles
    "Actor",
    "DEFAULT_ROLE_POLICY",
    "DEFAULT_SETTINGS",
    "RolePolicyTable",
    "RoleScope",
    "StaffRole",
    "WorkflowSettings",
    # Audit
    "AuditEntry",
    "AuditPage",
    "AuditQuery",
    # Collaborators
    "DecisionEvent",
    "DecisionPublisher",
    "StaffDirectory",
]
