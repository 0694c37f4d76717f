"""
Report DTOs.

Immutable snapshots of report rows and the intake submission shape.  The
report store hands these out; nothing outside ``models/`` sees ORM objects.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from disposition_kernel.domain.lifecycle import ReportState, ReportType
from disposition_kernel.domain.queues import RiskLevel


@dataclass(frozen=True)
class TransactionLine:
    transaction_date: date
    amount: Decimal
    account_number: str = ""
    subject_name: str = ""
    currency: str = "USD"


@dataclass(frozen=True)
class ReportSubmission:
    """What intake hands over once a submission has passed schema checks."""

    reference_number: str
    report_type: ReportType
    entity_id: UUID
    entity_name: str
    transactions: tuple[TransactionLine, ...] = ()
    risk_level: RiskLevel | None = None
    submitted_at: datetime | None = None


@dataclass(frozen=True)
class ReportInfo:
    report_id: UUID
    reference_number: str
    report_type: ReportType
    entity_id: UUID
    entity_name: str
    state: ReportState
    version: int
    submitted_at: datetime
    entered_queue_at: datetime
    total_amount: Decimal
    transaction_count: int
    risk_level: RiskLevel | None = None
    transactions: tuple[TransactionLine, ...] = field(default_factory=tuple)


@dataclass(frozen=True)
class AssignmentInfo:
    assignment_id: UUID
    report_id: UUID
    reference_number: str
    assignee_id: UUID
    assignee_role: str
    assigned_by_id: UUID
    assigned_at: datetime
    deadline: datetime
    is_active: bool
    assignee_name: str | None = None
    superseded_at: datetime | None = None
    released_at: datetime | None = None
    release_reason: str | None = None

    def is_overdue(self, now: datetime) -> bool:
        return self.is_active and self.deadline < now


@dataclass(frozen=True)
class Workload:
    """Live workload of one staff member."""

    assignee_id: UUID
    total: int
    ctrs: int
    strs: int
    escalated_ctrs: int
    overdue: int
