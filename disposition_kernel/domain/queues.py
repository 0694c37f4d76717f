"""
Queue membership and queue view types (``disposition_kernel.domain.queues``).

Responsibility
--------------
Declares which report states belong to which queue, the filter value
objects accepted by the queue resolver, and the computed ``QueueView``
returned to callers.  Membership is data, not code: the resolver turns
``QUEUE_MEMBERSHIP`` into SQL.

Dual-queue rule
---------------
A report sitting in one of its type's dual-queue states with an ACTIVE
assignment is a member of both the validation queue ("My Assigned
Validations") and the domain review queue.  For CTRs that covers the
validation states and ``UNDER_COMPLIANCE_REVIEW``; STRs never reach
compliance review, so the analyst equivalent is the assigned validation
states.  Any transition out of those states removes the report from both
queues in the same read, because membership is recomputed from current
rows on every query.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID

from disposition_kernel.domain.lifecycle import (
    TERMINAL_STATES,
    ReportState,
    ReportType,
)
from disposition_kernel.exceptions import InvalidQueueFilterError


class QueueName(str, Enum):
    VALIDATION = "validation"
    REVIEW = "review"
    ESCALATION = "escalation"
    DISPOSITIONS = "dispositions"


ACTIVE_QUEUES: frozenset[QueueName] = frozenset({
    QueueName.VALIDATION,
    QueueName.REVIEW,
    QueueName.ESCALATION,
})


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class AgeBucket(str, Enum):
    """Age of a report in its current queue, measured from entered_queue_at."""

    LT_24H = "lt_24h"
    D1_3 = "1_3d"
    D3_7 = "3_7d"
    GT_7D = "gt_7d"


class SortOrder(str, Enum):
    OLDEST_FIRST = "oldest"
    NEWEST_FIRST = "newest"


@dataclass(frozen=True)
class QueueMembership:
    """States that place a report in a queue.

    ``states`` qualify regardless of assignment; ``assigned_states`` qualify
    only while the report has an active assignment.  ``pickup_states`` are
    the unassigned backlog that individual roles see next to their own
    assignments so they can claim from it.
    """

    states: frozenset[ReportState]
    assigned_states: frozenset[ReportState] = frozenset()
    pickup_states: frozenset[ReportState] = frozenset()

    def includes(self, state: ReportState, assigned: bool) -> bool:
        return state in self.states or (assigned and state in self.assigned_states)


_VALIDATION_STATES = frozenset({ReportState.PENDING_VALIDATION, ReportState.IN_VALIDATION})

QUEUE_MEMBERSHIP: dict[tuple[QueueName, ReportType], QueueMembership] = {
    (QueueName.VALIDATION, ReportType.CTR): QueueMembership(
        states=_VALIDATION_STATES,
        assigned_states=frozenset({ReportState.UNDER_COMPLIANCE_REVIEW}),
    ),
    (QueueName.VALIDATION, ReportType.STR): QueueMembership(states=_VALIDATION_STATES),
    (QueueName.REVIEW, ReportType.CTR): QueueMembership(
        states=frozenset({ReportState.VALIDATED, ReportState.UNDER_COMPLIANCE_REVIEW}),
        assigned_states=_VALIDATION_STATES,
        pickup_states=frozenset({ReportState.VALIDATED}),
    ),
    (QueueName.REVIEW, ReportType.STR): QueueMembership(
        states=frozenset(),
        assigned_states=_VALIDATION_STATES,
    ),
    (QueueName.ESCALATION, ReportType.CTR): QueueMembership(
        states=frozenset({ReportState.ESCALATION_PENDING}),
    ),
    (QueueName.ESCALATION, ReportType.STR): QueueMembership(
        states=frozenset({ReportState.ESCALATION_PENDING}),
    ),
    (QueueName.DISPOSITIONS, ReportType.CTR): QueueMembership(states=TERMINAL_STATES),
    (QueueName.DISPOSITIONS, ReportType.STR): QueueMembership(states=TERMINAL_STATES),
}

# Preference when naming the queue a decision routed a report to.
_ROUTING_PREFERENCE: tuple[QueueName, ...] = (
    QueueName.ESCALATION,
    QueueName.REVIEW,
    QueueName.VALIDATION,
)


def membership_for(queue: QueueName, report_type: ReportType) -> QueueMembership:
    return QUEUE_MEMBERSHIP[(queue, report_type)]


def dual_queue_states(report_type: ReportType) -> frozenset[ReportState]:
    """States where an assigned report sits in validation and review at once."""
    validation = membership_for(QueueName.VALIDATION, report_type)
    review = membership_for(QueueName.REVIEW, report_type)
    v_assigned = validation.states | validation.assigned_states
    r_assigned = review.states | review.assigned_states
    return frozenset(v_assigned & r_assigned)


def active_queues_for(state: ReportState, report_type: ReportType, assigned: bool) -> frozenset[QueueName]:
    return frozenset(
        q for q in ACTIVE_QUEUES if membership_for(q, report_type).includes(state, assigned)
    )


def routed_queue(state: ReportState, report_type: ReportType, assigned: bool) -> QueueName | None:
    """Active queue a report lands in after a transition, or None."""
    members = active_queues_for(state, report_type, assigned)
    for queue in _ROUTING_PREFERENCE:
        if queue in members:
            return queue
    return None


def age_bucket_bounds(
    bucket: AgeBucket, edges_hours: tuple[int, int, int]
) -> tuple[int, int | None]:
    """(min_hours inclusive, max_hours exclusive or None) for a bucket."""
    first, second, third = edges_hours
    return {
        AgeBucket.LT_24H: (0, first),
        AgeBucket.D1_3: (first, second),
        AgeBucket.D3_7: (second, third),
        AgeBucket.GT_7D: (third, None),
    }[bucket]


def age_bucket_for(age_hours: float, edges_hours: tuple[int, int, int]) -> AgeBucket:
    for bucket in AgeBucket:
        low, high = age_bucket_bounds(bucket, edges_hours)
        if age_hours >= low and (high is None or age_hours < high):
            return bucket
    return AgeBucket.LT_24H


# ---------------------------------------------------------------------------
# Filters
# ---------------------------------------------------------------------------

_TRUE_VALUES = frozenset({"true", "1", "yes", "on"})
_FALSE_VALUES = frozenset({"false", "0", "no", "off", ""})


def _parse_bool(name: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in _TRUE_VALUES:
        return True
    if isinstance(value, str) and value.strip().lower() in _FALSE_VALUES:
        return False
    raise InvalidQueueFilterError(name, f"expected a boolean, got {value!r}")


def _parse_enum(name: str, enum_cls: type[Enum], value: Any) -> Any:
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(str(value).strip())
    except ValueError:
        try:
            return enum_cls(str(value).strip().upper())
        except ValueError:
            raise InvalidQueueFilterError(name, f"unknown value {value!r}") from None


def _parse_date(name: str, value: Any) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value))
    except ValueError:
        raise InvalidQueueFilterError(name, f"expected ISO date, got {value!r}") from None


def _parse_positive_int(name: str, value: Any) -> int:
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise InvalidQueueFilterError(name, f"expected an integer, got {value!r}") from None
    if number < 1:
        raise InvalidQueueFilterError(name, "must be at least 1")
    return number


@dataclass(frozen=True)
class QueueFilters:
    """Caller-supplied queue parameters, before role scoping."""

    queue: QueueName = QueueName.VALIDATION
    report_type: ReportType | None = None
    assigned_to_me: bool | None = None
    unassigned: bool = False
    search: str | None = None
    status: ReportState | None = None
    risk: RiskLevel | None = None
    age: AgeBucket | None = None
    from_date: date | None = None
    to_date: date | None = None
    overdue: bool = False
    sort: SortOrder = SortOrder.OLDEST_FIRST
    page: int = 1
    page_size: int | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> QueueFilters:
        """Build filters from query-string style parameters.

        Unknown keys are ignored; blank values count as absent.
        """
        values: dict[str, Any] = {}
        present = {k: v for k, v in params.items() if v is not None and v != ""}

        if "queue" in present:
            values["queue"] = _parse_enum("queue", QueueName, str(present["queue"]).lower())
        if "report_type" in present:
            values["report_type"] = _parse_enum("report_type", ReportType, present["report_type"])
        if "assigned_to_me" in present:
            values["assigned_to_me"] = _parse_bool("assigned_to_me", present["assigned_to_me"])
        if "unassigned" in present:
            values["unassigned"] = _parse_bool("unassigned", present["unassigned"])
        if "search" in present:
            values["search"] = str(present["search"])
        if "status" in present:
            values["status"] = _parse_enum("status", ReportState, present["status"])
        if "risk" in present:
            values["risk"] = _parse_enum("risk", RiskLevel, str(present["risk"]).lower())
        if "age" in present:
            values["age"] = _parse_enum("age", AgeBucket, str(present["age"]).lower())
        if "from_date" in present:
            values["from_date"] = _parse_date("from_date", present["from_date"])
        if "to_date" in present:
            values["to_date"] = _parse_date("to_date", present["to_date"])
        if "overdue" in present:
            values["overdue"] = _parse_bool("overdue", present["overdue"])
        if "sort" in present:
            values["sort"] = _parse_enum("sort", SortOrder, str(present["sort"]).lower())
        if "page" in present:
            values["page"] = _parse_positive_int("page", present["page"])
        if "page_size" in present:
            values["page_size"] = _parse_positive_int("page_size", present["page_size"])

        return cls(**values)

    def normalized_search(self) -> str | None:
        if self.search is None:
            return None
        text = self.search.strip()
        return text or None

    def with_scope(self, **changes: Any) -> QueueFilters:
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return {
            "queue": self.queue.value,
            "report_type": self.report_type.value if self.report_type else None,
            "assigned_to_me": self.assigned_to_me,
            "unassigned": self.unassigned,
            "search": self.normalized_search(),
            "status": self.status.value if self.status else None,
            "risk": self.risk.value if self.risk else None,
            "age": self.age.value if self.age else None,
            "from_date": self.from_date.isoformat() if self.from_date else None,
            "to_date": self.to_date.isoformat() if self.to_date else None,
            "overdue": self.overdue,
            "sort": self.sort.value,
            "page": self.page,
            "page_size": self.page_size,
        }


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ReportSummary:
    """One row of a queue view."""

    report_id: UUID
    reference_number: str
    report_type: ReportType
    entity_name: str
    state: ReportState
    submitted_at: datetime
    entered_queue_at: datetime
    transaction_count: int
    total_amount: Decimal
    age_hours: float
    risk_level: RiskLevel | None = None
    assigned_to_id: UUID | None = None
    assigned_to_name: str | None = None
    deadline: datetime | None = None
    is_overdue: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "submission_id": str(self.report_id),
            "reference_number": self.reference_number,
            "report_type": self.report_type.value,
            "entity_name": self.entity_name,
            "status": self.state.value,
            "submitted_at": self.submitted_at.isoformat(),
            "entered_queue_at": self.entered_queue_at.isoformat(),
            "transaction_count": self.transaction_count,
            "total_amount": str(self.total_amount),
            "age_hours": round(self.age_hours, 2),
            "risk_level": self.risk_level.value if self.risk_level else None,
            "assigned_to": str(self.assigned_to_id) if self.assigned_to_id else None,
            "assigned_to_name": self.assigned_to_name,
            "deadline": self.deadline.isoformat() if self.deadline else None,
            "is_overdue": self.is_overdue,
        }


@dataclass(frozen=True)
class QueueView:
    """Computed, read-only page of a queue.  Never cached."""

    queue: QueueName
    items: tuple[ReportSummary, ...]
    total: int
    page: int
    page_size: int
    ordering: SortOrder = SortOrder.OLDEST_FIRST
    applied_filters: dict[str, Any] = field(default_factory=dict)

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.page_size) if self.total else 0

    @property
    def has_more(self) -> bool:
        return self.page < self.total_pages

    @property
    def references(self) -> list[str]:
        return [item.reference_number for item in self.items]

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "total_pages": self.total_pages,
            "has_more": self.has_more,
        }
