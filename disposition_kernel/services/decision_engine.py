"""
DecisionEngine -- validates and applies validation, review and escalation
decisions.

Responsibility:
    Parses the submitted payload, checks it against the transition table
    and the actor's authority, and applies the transition: state CAS,
    Decision row, audit entry, assignment release or carry-forward, and
    the optional publisher call, all in the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell around the pure state machine in
    ``domain.lifecycle`` and the payload validator in ``domain.decisions``.

Invariants enforced:
    - Payload and reason validation happen before anything is read or
      written; a refused decision leaves no trace.
    - Only edges in TRANSITION_TABLE are applied.
    - Exactly one decision applies per (report, state): the CAS on
      ``(state, version)`` makes the second of two racing attempts fail
      with StaleStateError.  A loser that read the winner's state after
      commit is told apart from a never-legal decision by the latest
      Decision row, and also gets StaleStateError.
    - One Decision and one AuditLogEntry per successful transition.
    - Escalation-stage decisions pass the second-reviewer guard, whatever
      the entry point.

Failure modes:
    - InvalidDecisionPayloadError, MissingReasonError (payload).
    - ReportNotFoundError, IllegalTransitionError, StaleStateError.
    - UnauthorizedActorError, SelfApprovalError.
    - PersistenceError from the store or the audit log.

Audit relevance:
    Every state change that carries a decision goes through ``decide()``.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.orm import Session

from disposition_kernel.domain.clock import Clock, SystemClock
from disposition_kernel.domain.collaborators import (
    DecisionEvent,
    DecisionPublisher,
    StaffDirectory,
)
from disposition_kernel.domain.decisions import (
    DecisionOutcome,
    DecisionRecord,
    outcome_message,
    parse_decision_payload,
)
from disposition_kernel.domain.escalation import ensure_distinct_reviewer
from disposition_kernel.domain.lifecycle import (
    DecisionKind,
    DecisionStage,
    ReportState,
    ReportType,
    TransitionRule,
    find_transition,
    is_terminal,
)
from disposition_kernel.domain.queues import routed_queue
from disposition_kernel.domain.reports import AssignmentInfo, ReportInfo
from disposition_kernel.domain.roles import (
    DEFAULT_ROLE_POLICY,
    DEFAULT_SETTINGS,
    Actor,
    RolePolicyTable,
    WorkflowSettings,
)
from disposition_kernel.exceptions import (
    IllegalTransitionError,
    InvalidDecisionPayloadError,
    StaleStateError,
    UnauthorizedActorError,
)
from disposition_kernel.logging_config import LogContext, get_logger
from disposition_kernel.models.audit_entry import AuditLogEntryModel
from disposition_kernel.models.decision import DecisionModel
from disposition_kernel.models.report import ReportModel
from disposition_kernel.services.assignment_manager import AssignmentManager
from disposition_kernel.services.audit_log import AuditLog
from disposition_kernel.services.report_store import ReportStore

logger = get_logger("services.decision_engine")


class DecisionEngine:
    """
    Decision application service.

    Contract:
        ``decide()`` either applies the whole transition or raises and
        writes nothing.  It never commits; the caller's ``session_scope()``
        does.

    Non-goals:
        - Does NOT deliver notifications itself; a DecisionPublisher does.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RolePolicyTable = DEFAULT_ROLE_POLICY,
        settings: WorkflowSettings = DEFAULT_SETTINGS,
        publisher: DecisionPublisher | None = None,
        directory: StaffDirectory | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy
        self._settings = settings
        self._publisher = publisher
        self._store = ReportStore(session, self._clock)
        self._assignments = AssignmentManager(
            session, self._clock, policy, settings, directory
        )
        self._audit = AuditLog(session)

    # ------------------------------------------------------------------
    # Decisions
    # ------------------------------------------------------------------

    def decide(
        self,
        reference: str,
        actor: Actor,
        payload: Mapping[str, Any],
        expected_state: ReportState | str | None = None,
        expected_version: int | None = None,
    ) -> DecisionOutcome:
        """
        Validate and apply one decision.

        Args:
            reference: Report reference number.
            actor: The deciding staff member.
            payload: Submitted decision payload (see ``domain.decisions``).
            expected_state: State the caller saw when it rendered the form.
            expected_version: Version the caller saw.

        Returns:
            DecisionOutcome with the record, resulting state, routed queue
            and a human-readable message.
        """
        with LogContext.for_actor(actor, reference):
            request = parse_decision_payload(payload)

            report = self._store.load(reference)
            state = ReportState(report.state)
            report_type = ReportType(report.report_type)
            self._check_expected(report, state, expected_state, expected_version)

            rule = find_transition(
                state,
                request.kind,
                report_type,
                retain_validator_for_review=self._settings.retain_validator_for_review,
            )
            if rule is None:
                self._refuse_if_superseded(report, report_type, state, request.kind)
                logger.warning(
                    "illegal_transition_refused",
                    extra={"state": state.value, "decision": request.kind.value},
                )
                raise IllegalTransitionError(reference, state.value, request.kind.value)

            self._authorize(report, report_type, rule, actor)

            now = self._clock.now()
            record = DecisionRecord(
                decision_id=uuid4(),
                report_id=report.id,
                reference_number=reference,
                report_type=report_type,
                kind=request.kind,
                stage=rule.stage,
                actor_id=actor.actor_id,
                actor_role=actor.role.value,
                from_state=state,
                to_state=rule.to_state,
                path=rule.path,
                payload=request.payload,
                decided_at=now,
                reason=request.reason,
                comments=request.comments,
            )

            self._store.compare_and_swap_state(
                report,
                state,
                report.version,
                rule.to_state,
                reset_queue_clock=not is_terminal(rule.to_state),
                now=now,
            )
            self._session.add(DecisionModel.from_dto(record))
            self._session.flush()
            entry = self._audit.record(record, report)

            if rule.keeps_assignment:
                assignment = self._assignments.carry_forward(report, actor)
            else:
                self._assignments.release(report, f"decision_{request.kind.value.lower()}")
                assignment = None

            queue = routed_queue(rule.to_state, report_type, assignment is not None)
            outcome = DecisionOutcome(
                decision=record,
                state=rule.to_state,
                routed_to_queue=queue,
                message=outcome_message(rule, reference),
                audit_seq=entry.seq,
            )

            if self._publisher is not None:
                self._publisher.publish(
                    DecisionEvent(
                        decision=record,
                        entity_id=report.entity_id,
                        state=rule.to_state,
                        routed_to_queue=queue,
                        audit_seq=entry.seq,
                    )
                )

            logger.info(
                "decision_applied",
                extra={
                    "decision_id": str(record.decision_id),
                    "decision": request.kind.value,
                    "stage": rule.stage.value,
                    "from_state": state.value,
                    "to_state": rule.to_state.value,
                    "routed_to_queue": queue.value if queue else None,
                    "audit_seq": entry.seq,
                },
            )
            return outcome

    # ------------------------------------------------------------------
    # Lifecycle moves without a decision
    # ------------------------------------------------------------------

    def begin_validation(self, reference: str, actor: Actor) -> ReportInfo:
        """Open a PENDING_VALIDATION report for validation (PV -> IV)."""
        report = self._store.load(reference)
        state = ReportState(report.state)
        report_type = ReportType(report.report_type)
        if state != ReportState.PENDING_VALIDATION:
            raise IllegalTransitionError(reference, state.value, "BEGIN_VALIDATION")

        scope = self._policy.scope_for(actor)
        if not scope.supervises(report_type):
            active = self._assignments.active_for(report)
            if active is None or active.assignee_id != actor.actor_id:
                raise UnauthorizedActorError(
                    str(actor.actor_id), actor.role.value, "open this report for validation",
                    reference,
                )

        self._store.move(report, ReportState.IN_VALIDATION)
        logger.info(
            "validation_started",
            extra={"reference_number": reference, "actor_id": str(actor.actor_id)},
        )
        return report.to_dto()

    def begin_review(self, reference: str, actor: Actor) -> AssignmentInfo:
        """Compliance pickup of a VALIDATED report by ``actor`` for themselves."""
        report = self._store.load(reference)
        state = ReportState(report.state)
        if state != ReportState.VALIDATED:
            raise IllegalTransitionError(reference, state.value, "BEGIN_REVIEW")
        return self._assignments.assign(reference, actor, actor)

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _check_expected(
        self,
        report: ReportModel,
        state: ReportState,
        expected_state: ReportState | str | None,
        expected_version: int | None,
    ) -> None:
        try:
            expected = ReportState(expected_state) if expected_state is not None else None
        except ValueError:
            raise InvalidDecisionPayloadError(
                f"unknown state {expected_state!r}", field="expected_state"
            ) from None
        if (expected is None or expected == state) and (
            expected_version is None or expected_version == report.version
        ):
            return
        logger.warning(
            "stale_state_detected",
            extra={
                "expected_state": expected.value if expected else None,
                "actual_state": state.value,
                "expected_version": expected_version,
                "actual_version": report.version,
            },
        )
        raise StaleStateError(
            report.reference_number,
            expected.value if expected else None,
            state.value,
            expected_version,
            report.version,
        )

    def _refuse_if_superseded(
        self,
        report: ReportModel,
        report_type: ReportType,
        state: ReportState,
        kind: DecisionKind,
    ) -> None:
        """
        Raise StaleStateError when another decision moved the report out of
        a state where ``kind`` was legal.

        A caller that sends no expected state and loses a race reads the
        winner's state after the winner commits.  The latest decision tells
        that case apart from a decision that was never legal here.
        """
        latest = self._latest_decision(report.id)
        if latest is None or latest.to_state != state.value:
            return
        prior = ReportState(latest.from_state)
        if find_transition(
            prior,
            kind,
            report_type,
            retain_validator_for_review=self._settings.retain_validator_for_review,
        ) is None:
            return
        logger.warning(
            "stale_state_detected",
            extra={
                "expected_state": prior.value,
                "actual_state": state.value,
                "superseded_by": str(latest.id),
                "actual_version": report.version,
            },
        )
        raise StaleStateError(
            report.reference_number, prior.value, state.value, None, report.version
        )

    def _latest_decision(self, report_id: UUID) -> DecisionModel | None:
        return self._session.execute(
            select(DecisionModel)
            .join(AuditLogEntryModel, AuditLogEntryModel.decision_id == DecisionModel.id)
            .where(DecisionModel.report_id == report_id)
            .order_by(AuditLogEntryModel.seq.desc())
            .limit(1)
        ).scalar_one_or_none()

    def _authorize(
        self,
        report: ReportModel,
        report_type: ReportType,
        rule: TransitionRule,
        actor: Actor,
    ) -> None:
        scope = self._policy.scope_for(actor)
        supervisor = scope.supervises(report_type)

        if rule.stage == DecisionStage.ESCALATION:
            if not supervisor:
                raise UnauthorizedActorError(
                    str(actor.actor_id), actor.role.value, "decide escalations",
                    report.reference_number,
                )
            ensure_distinct_reviewer(
                report.reference_number, self._escalated_by(report.id), actor.actor_id
            )
            return

        if supervisor:
            return
        active = self._assignments.active_for(report)
        if (
            scope.report_type != report_type
            or active is None
            or active.assignee_id != actor.actor_id
        ):
            raise UnauthorizedActorError(
                str(actor.actor_id), actor.role.value, f"decide {rule.kind.value}",
                report.reference_number,
            )

    def _escalated_by(self, report_id: UUID) -> UUID | None:
        return self._session.execute(
            select(DecisionModel.actor_id)
            .where(
                DecisionModel.report_id == report_id,
                DecisionModel.kind == DecisionKind.ESCALATE.value,
            )
            .order_by(DecisionModel.decided_at.desc())
            .limit(1)
        ).scalar_one_or_none()
