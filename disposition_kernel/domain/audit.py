"""
Audit log DTOs and query parameters.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any
from uuid import UUID

from disposition_kernel.domain.lifecycle import DecisionKind, ReportState, ReportType
from disposition_kernel.domain.decisions import DECISION_ALIASES
from disposition_kernel.exceptions import InvalidQueueFilterError


@dataclass(frozen=True)
class AuditEntry:
    entry_id: UUID
    seq: int
    decision_id: UUID
    reference_number: str
    report_type: ReportType
    entity_id: UUID
    entity_name: str
    decision: DecisionKind
    stage: str
    actor_id: UUID
    actor_role: str
    from_state: ReportState
    to_state: ReportState
    decided_at: datetime
    payload: dict[str, Any]
    payload_hash: str
    prev_hash: str | None
    hash: str
    reason: str | None = None
    comments: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.entry_id),
            "seq": self.seq,
            "reference_number": self.reference_number,
            "report_type": self.report_type.value,
            "entity_name": self.entity_name,
            "decision": self.decision.value,
            "stage": self.stage,
            "decided_by": str(self.actor_id),
            "actor_role": self.actor_role,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "reason": self.reason,
            "comments": self.comments,
            "decided_at": self.decided_at.isoformat(),
        }


@dataclass(frozen=True)
class AuditQuery:
    """
    Audit log filters.  Dates are inclusive calendar days in UTC.

    ``before_seq`` is a keyset cursor: pass the last ``seq`` of the
    previous page to continue without offset drift while new entries
    are being appended.
    """

    decision: DecisionKind | None = None
    actor_id: UUID | None = None
    from_date: date | None = None
    to_date: date | None = None
    reference: str | None = None
    page: int = 1
    page_size: int = 50
    before_seq: int | None = None

    @classmethod
    def from_params(cls, params: Mapping[str, Any]) -> AuditQuery:
        present = {k: v for k, v in params.items() if v is not None and v != ""}
        values: dict[str, Any] = {}
        try:
            if "decision" in present:
                kind = DECISION_ALIASES.get(str(present["decision"]).strip().upper())
                if kind is None:
                    raise InvalidQueueFilterError("decision", f"unknown value {present['decision']!r}")
                values["decision"] = kind
            if "user" in present:
                values["actor_id"] = UUID(str(present["user"]))
            if "from_date" in present:
                values["from_date"] = date.fromisoformat(str(present["from_date"]))
            if "to_date" in present:
                values["to_date"] = date.fromisoformat(str(present["to_date"]))
            if "page" in present:
                values["page"] = int(present["page"])
            if "page_size" in present:
                values["page_size"] = int(present["page_size"])
            if "before_seq" in present:
                values["before_seq"] = int(present["before_seq"])
        except ValueError as exc:
            raise InvalidQueueFilterError("audit", str(exc)) from exc
        if "reference" in present:
            values["reference"] = str(present["reference"]).strip()
        if values.get("page", 1) < 1 or values.get("page_size", 1) < 1:
            raise InvalidQueueFilterError("page", "page and page_size must be at least 1")
        return cls(**values)


@dataclass(frozen=True)
class AuditPage:
    entries: tuple[AuditEntry, ...]
    total: int
    page: int
    page_size: int
    next_before_seq: int | None = None
    filters: dict[str, Any] = field(default_factory=dict)

    @property
    def has_more(self) -> bool:
        return self.next_before_seq is not None

    def to_dict(self) -> dict[str, Any]:
        return {
            "items": [e.to_dict() for e in self.entries],
            "total": self.total,
            "page": self.page,
            "page_size": self.page_size,
            "has_more": self.has_more,
            "next_before_seq": self.next_before_seq,
        }
