"""
Escalation second-reviewer rule.

Pure check shared by the decision engine and the escalation gate, so an
escalation cannot be approved or rejected by its own escalator through
either entry point.
"""

from __future__ import annotations

from uuid import UUID

from disposition_kernel.exceptions import SelfApprovalError


def ensure_distinct_reviewer(reference: str, escalated_by: UUID | None, approver_id: UUID) -> None:
    """Raise SelfApprovalError when the approver issued the ESCALATE decision."""
    if escalated_by is not None and escalated_by == approver_id:
        raise SelfApprovalError(reference, str(approver_id))
