"""
EscalationGate -- second-reviewer approval of escalated reports.

Responsibility:
    The supervisor-facing entry point for ESCALATION_PENDING reports:
    the pending sub-queue, approve/reject, and the history of past
    escalation outcomes.

Architecture position:
    Kernel > Services.  Approve and reject are decisions, so they are
    applied by DecisionEngine; the gate only shapes the payload and
    checks that the report is actually awaiting approval.

Invariants enforced:
    - The approver differs from the actor of the ESCALATE decision
      (checked by DecisionEngine through ``ensure_distinct_reviewer``).
    - Only supervisory roles may approve, reject or list escalations.
    - Rejection requires a note.
"""

from __future__ import annotations

from sqlalchemy.orm import Session

from disposition_kernel.domain.audit import AuditPage
from disposition_kernel.domain.clock import Clock, SystemClock
from disposition_kernel.domain.collaborators import DecisionPublisher
from disposition_kernel.domain.decisions import DecisionOutcome
from disposition_kernel.domain.lifecycle import DecisionKind, ReportState
from disposition_kernel.domain.queues import QueueFilters, QueueName, QueueView
from disposition_kernel.domain.roles import (
    DEFAULT_ROLE_POLICY,
    DEFAULT_SETTINGS,
    Actor,
    RolePolicyTable,
    WorkflowSettings,
)
from disposition_kernel.exceptions import (
    IllegalTransitionError,
    InvalidQueueFilterError,
    UnauthorizedActorError,
)
from disposition_kernel.logging_config import get_logger
from disposition_kernel.selectors.audit_selector import AuditSelector
from disposition_kernel.selectors.queue_resolver import QueueResolver
from disposition_kernel.services.decision_engine import DecisionEngine
from disposition_kernel.services.report_store import ReportStore

logger = get_logger("services.escalation_gate")

_OUTCOME_NAMES: dict[str, DecisionKind] = {
    "approved": DecisionKind.APPROVE,
    "approve": DecisionKind.APPROVE,
    "rejected": DecisionKind.REJECT,
    "reject": DecisionKind.REJECT,
}


class EscalationGate:
    """Escalation approval service."""

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RolePolicyTable = DEFAULT_ROLE_POLICY,
        settings: WorkflowSettings = DEFAULT_SETTINGS,
        publisher: DecisionPublisher | None = None,
    ):
        clock = clock or SystemClock()
        self._policy = policy
        self._store = ReportStore(session, clock)
        self._engine = DecisionEngine(session, clock, policy, settings, publisher)
        self._resolver = QueueResolver(session, clock, policy, settings)
        self._audit = AuditSelector(session)

    def approve(
        self,
        reference: str,
        approver: Actor,
        note: str | None = None,
        expected_version: int | None = None,
    ) -> DecisionOutcome:
        """Approve an escalation; the report moves on to analysis."""
        payload = {"decision": DecisionKind.APPROVE.value}
        if note is not None:
            payload["comments"] = note
        return self._apply(reference, approver, payload, expected_version)

    def reject(
        self,
        reference: str,
        approver: Actor,
        rejection_note: str | None,
        expected_version: int | None = None,
    ) -> DecisionOutcome:
        """Reject an escalation; the report is archived.  The note is mandatory."""
        payload = {
            "decision": DecisionKind.REJECT.value,
            "rejection_reason": rejection_note,
        }
        return self._apply(reference, approver, payload, expected_version)

    def _apply(
        self,
        reference: str,
        approver: Actor,
        payload: dict,
        expected_version: int | None,
    ) -> DecisionOutcome:
        report = self._store.get(reference)
        if report.state != ReportState.ESCALATION_PENDING:
            raise IllegalTransitionError(reference, report.state.value, payload["decision"])
        outcome = self._engine.decide(
            reference,
            approver,
            payload,
            expected_state=ReportState.ESCALATION_PENDING,
            expected_version=expected_version,
        )
        logger.info(
            "escalation_decided",
            extra={
                "reference_number": reference,
                "decision": payload["decision"],
                "approver_id": str(approver.actor_id),
            },
        )
        return outcome

    def pending(self, actor: Actor, filters: QueueFilters | None = None) -> QueueView:
        """The ESCALATION_PENDING sub-queue of the actor's domain."""
        scoped = (filters or QueueFilters()).with_scope(queue=QueueName.ESCALATION)
        return self._resolver.resolve(actor, scoped)

    def outcomes(
        self,
        actor: Actor,
        outcome: DecisionKind | str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> AuditPage:
        """Past approvals and rejections in the actor's domain, newest first."""
        scope = self._policy.scope_for(actor)
        if not scope.supervisory:
            raise UnauthorizedActorError(
                str(actor.actor_id), actor.role.value, "view escalation outcomes"
            )
        kind = None
        if isinstance(outcome, DecisionKind):
            kind = outcome
        elif outcome:
            kind = _OUTCOME_NAMES.get(outcome.strip().lower())
            if kind is None:
                raise InvalidQueueFilterError("outcome", f"unknown value {outcome!r}")
        if kind not in (None, DecisionKind.APPROVE, DecisionKind.REJECT):
            raise InvalidQueueFilterError("outcome", f"unknown value {kind.value!r}")
        if page < 1 or page_size < 1:
            raise InvalidQueueFilterError("page", "page and page_size must be at least 1")
        return self._audit.escalation_outcomes(scope.report_type, kind, page, page_size)
