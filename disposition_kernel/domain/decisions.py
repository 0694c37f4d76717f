"""
Decision payloads and records (``disposition_kernel.domain.decisions``).

Responsibility
--------------
Parses submitted decision payloads into ``DecisionRequest`` values and is
the single authoritative validator for reason fields.  Client-side checks
are advisory; whatever reaches the engine is re-validated here.

Accepted payload shapes::

    {"decision": "ACCEPT"}
    {"decision": "RETURN", "return_reason": "..."}
    {"decision": "REJECT", "rejection_reason": "..."}
    {"decision": "ARCHIVED" | "MONITORED" | "ESCALATED",
     "comments": "...", "escalation_reason": "..."}
    {"decision": "APPROVE", "comments": "..."}

Canonical kind names (``ARCHIVE``, ``MONITOR``, ``ESCALATE``) are accepted
alongside the review-form spellings.

Architecture position
---------------------
**Kernel domain layer** -- pure, no I/O.

Invariants enforced
-------------------
* RETURN, REJECT and ESCALATE require a non-empty, non-whitespace reason
  in their own field; a missing one raises ``MissingReasonError`` naming
  that field.
* Reasons are stored trimmed.
* A reason field that belongs to a different decision kind is refused
  rather than dropped.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any
from uuid import UUID

from disposition_kernel.domain.lifecycle import (
    DecisionKind,
    DecisionStage,
    ReportState,
    ReportType,
    TransitionRule,
)
from disposition_kernel.domain.queues import QueueName
from disposition_kernel.exceptions import InvalidDecisionPayloadError, MissingReasonError

DECISION_ALIASES: dict[str, DecisionKind] = {
    **{kind.value: kind for kind in DecisionKind},
    "ARCHIVED": DecisionKind.ARCHIVE,
    "MONITORED": DecisionKind.MONITOR,
    "ESCALATED": DecisionKind.ESCALATE,
}

REASON_FIELDS: dict[DecisionKind, str] = {
    DecisionKind.RETURN: "return_reason",
    DecisionKind.REJECT: "rejection_reason",
    DecisionKind.ESCALATE: "escalation_reason",
}

_ALL_REASON_FIELDS: frozenset[str] = frozenset(REASON_FIELDS.values())


@dataclass(frozen=True)
class DecisionRequest:
    """A parsed, validated decision submission."""

    kind: DecisionKind
    reason: str | None = None
    comments: str | None = None
    payload: dict[str, str] = field(default_factory=dict)


def _optional_text(payload: Mapping[str, Any], key: str) -> str | None:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, str):
        raise InvalidDecisionPayloadError(f"{key} must be a string", field=key)
    text = value.strip()
    return text or None


def require_reason(kind: DecisionKind, value: Any) -> str:
    """
    Validate the mandatory reason for ``kind``.

    Raises:
        MissingReasonError: value is absent, empty or whitespace-only.
        InvalidDecisionPayloadError: value is not a string.
    """
    reason_field = REASON_FIELDS[kind]
    if value is None:
        raise MissingReasonError(reason_field, kind.value)
    if not isinstance(value, str):
        raise InvalidDecisionPayloadError(f"{reason_field} must be a string", field=reason_field)
    text = value.strip()
    if not text:
        raise MissingReasonError(reason_field, kind.value)
    return text


def parse_decision_payload(payload: Mapping[str, Any]) -> DecisionRequest:
    """Parse a submitted payload into a ``DecisionRequest``."""
    if not isinstance(payload, Mapping):
        raise InvalidDecisionPayloadError("payload must be a mapping")

    raw = payload.get("decision")
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidDecisionPayloadError("decision is required", field="decision")
    kind = DECISION_ALIASES.get(raw.strip().upper())
    if kind is None:
        raise InvalidDecisionPayloadError(f"unknown decision {raw!r}", field="decision")

    reason_field = REASON_FIELDS.get(kind)
    for other in sorted(_ALL_REASON_FIELDS - {reason_field}):
        if _optional_text(payload, other) is not None:
            raise InvalidDecisionPayloadError(
                f"{other} does not apply to {kind.value}", field=other
            )

    comments = _optional_text(payload, "comments")
    normalized: dict[str, str] = {"decision": kind.value}
    reason = None
    if reason_field is not None:
        reason = require_reason(kind, payload.get(reason_field))
        normalized[reason_field] = reason
    if comments is not None:
        normalized["comments"] = comments

    return DecisionRequest(kind=kind, reason=reason, comments=comments, payload=normalized)


@dataclass(frozen=True)
class DecisionRecord:
    """Immutable record of one applied decision."""

    decision_id: UUID
    report_id: UUID
    reference_number: str
    report_type: ReportType
    kind: DecisionKind
    stage: DecisionStage
    actor_id: UUID
    actor_role: str
    from_state: ReportState
    to_state: ReportState
    path: tuple[ReportState, ...]
    payload: dict[str, str]
    decided_at: datetime
    reason: str | None = None
    comments: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision_id": str(self.decision_id),
            "reference_number": self.reference_number,
            "report_type": self.report_type.value,
            "decision": self.kind.value,
            "stage": self.stage.value,
            "actor_id": str(self.actor_id),
            "actor_role": self.actor_role,
            "from_state": self.from_state.value,
            "to_state": self.to_state.value,
            "path": [s.value for s in self.path],
            "reason": self.reason,
            "comments": self.comments,
            "decided_at": self.decided_at.isoformat(),
        }


_OUTCOME_MESSAGES: dict[ReportState, str] = {
    ReportState.VALIDATED: "Report {ref} validated and awaiting compliance review",
    ReportState.UNDER_COMPLIANCE_REVIEW: "Report {ref} validated and moved to compliance review",
    ReportState.UNDER_ANALYSIS: "Report {ref} routed to analysis",
    ReportState.RETURNED: "Report {ref} returned to the reporting entity for correction",
    ReportState.REJECTED: "Report {ref} rejected",
    ReportState.ARCHIVED: "Report {ref} archived",
    ReportState.MONITORED: "Report {ref} placed under monitoring",
    ReportState.ESCALATION_PENDING: "Report {ref} escalated and awaiting approval",
}


def outcome_message(rule: TransitionRule, reference: str) -> str:
    if rule.stage == DecisionStage.ESCALATION:
        verb = "approved" if rule.kind == DecisionKind.APPROVE else "rejected"
        return f"Escalation of report {reference} {verb}"
    return _OUTCOME_MESSAGES[rule.to_state].format(ref=reference)


@dataclass(frozen=True)
class DecisionOutcome:
    """Response to a successful decision."""

    decision: DecisionRecord
    state: ReportState
    routed_to_queue: QueueName | None
    message: str
    audit_seq: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "decision": self.decision.to_dict(),
            "state": self.state.value,
            "routed_to_queue": self.routed_to_queue.value if self.routed_to_queue else None,
            "message": self.message,
            "audit_seq": self.audit_seq,
        }
