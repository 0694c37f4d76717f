"""
AssignmentManager -- the exclusive report/assignee relation and workload.

Responsibility:
    Grants, supersedes, carries forward and releases assignments, and
    reports live per-officer workload.  The queue resolver reads the rows
    this service writes; there is no cached copy to go stale.

Architecture position:
    Kernel > Services.  Used directly by callers (claim, supervisor
    reassignment) and by DecisionEngine (release and carry-forward after a
    decision, compliance pickup).

Invariants enforced:
    - At most one active assignment per report.  A new assignment
      deactivates the previous one before it is inserted, and the partial
      unique index refuses a second active row.
    - Every assignment change bumps the report's version through the
      report store's compare-and-swap, so it serializes with decisions
      and with other assignment changes on the same report.
    - Only PENDING_VALIDATION, VALIDATED and ESCALATION_PENDING reports
      accept new assignments.

Failure modes:
    - ReportNotFoundError, ReportNotAssignableError, AlreadyAssignedError,
      IneligibleAssigneeError, UnauthorizedActorError, StaleStateError.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from uuid import UUID, uuid4

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from disposition_kernel.domain.clock import Clock, SystemClock
from disposition_kernel.domain.collaborators import StaffDirectory
from disposition_kernel.domain.lifecycle import ASSIGNABLE_STATES, ReportState, ReportType
from disposition_kernel.domain.reports import AssignmentInfo, Workload
from disposition_kernel.domain.roles import (
    DEFAULT_ROLE_POLICY,
    DEFAULT_SETTINGS,
    Actor,
    RolePolicyTable,
    StaffRole,
    WorkflowSettings,
)
from disposition_kernel.exceptions import (
    AlreadyAssignedError,
    IneligibleAssigneeError,
    ReportNotAssignableError,
    UnauthorizedActorError,
)
from disposition_kernel.logging_config import get_logger
from disposition_kernel.models.assignment import AssignmentModel
from disposition_kernel.models.report import ReportModel
from disposition_kernel.services.report_store import ReportStore

logger = get_logger("services.assignment_manager")


class AssignmentManager:
    """
    Assignment service.

    Contract:
        Never commits.  Each public write is one CAS on the report plus the
        assignment rows, all in the caller's transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RolePolicyTable = DEFAULT_ROLE_POLICY,
        settings: WorkflowSettings = DEFAULT_SETTINGS,
        directory: StaffDirectory | None = None,
    ):
        self._session = session
        self._clock = clock or SystemClock()
        self._policy = policy
        self._settings = settings
        self._directory = directory
        self._store = ReportStore(session, self._clock)

    # ------------------------------------------------------------------
    # Assignment
    # ------------------------------------------------------------------

    def assign(
        self,
        reference: str,
        assignee: Actor | UUID,
        actor: Actor,
        deadline: datetime | None = None,
    ) -> AssignmentInfo:
        """
        Assign ``reference`` to ``assignee`` on behalf of ``actor``.

        Supervisors of the report's domain may reassign; everyone else may
        only claim an unassigned report of their own type for themselves.
        Assigning a VALIDATED report is the compliance pickup and moves it
        to UNDER_COMPLIANCE_REVIEW.

        Args:
            reference: Report reference number.
            assignee: The staff member, or an id resolved through the
                staff directory.
            actor: Who is making the assignment.
            deadline: Explicit deadline; defaults to the report's queue
                entry time plus ``default_deadline_hours``.
        """
        report = self._store.load(reference)
        state = ReportState(report.state)
        report_type = ReportType(report.report_type)
        actor_scope = self._policy.scope_for(actor)
        supervisor = actor_scope.supervises(report_type)
        assignee = self._resolve_assignee(reference, assignee)

        if not supervisor and (
            actor_scope.report_type != report_type
            or assignee.actor_id != actor.actor_id
            or state == ReportState.ESCALATION_PENDING
        ):
            logger.warning(
                "assignment_refused",
                extra={
                    "reference_number": reference,
                    "actor_role": actor.role.value,
                    "state": state.value,
                },
            )
            raise UnauthorizedActorError(
                str(actor.actor_id), actor.role.value, "assign this report", reference
            )

        if state not in ASSIGNABLE_STATES:
            raise ReportNotAssignableError(reference, state.value)

        current = self._active_model(report.id)
        if current is not None and not supervisor:
            raise AlreadyAssignedError(reference, str(current.assignee_id))

        self._check_eligible(reference, state, report_type, assignee)

        to_state = (
            ReportState.UNDER_COMPLIANCE_REVIEW if state == ReportState.VALIDATED else state
        )
        self._store.compare_and_swap_state(report, state, report.version, to_state)

        now = self._clock.now()
        assignment = self._issue(report, assignee, actor.actor_id, now, deadline, current)

        logger.info(
            "assignment_created",
            extra={
                "reference_number": reference,
                "assignee_id": str(assignee.actor_id),
                "assigned_by_id": str(actor.actor_id),
                "deadline": assignment.deadline,
                "superseded": current is not None,
                "pickup": state == ReportState.VALIDATED,
            },
        )
        return assignment.to_dto()

    def carry_forward(self, report: ReportModel, actor: Actor) -> AssignmentInfo | None:
        """
        Re-issue the active assignment to the same assignee with a fresh
        deadline.  Used when a decision moves a report into a new queue but
        keeps its owner.  The caller has already bumped the version.
        """
        previous = self._active_model(report.id)
        if previous is None:
            return None
        assignee = Actor(
            actor_id=previous.assignee_id,
            role=StaffRole(previous.assignee_role),
            name=previous.assignee_name or "",
        )
        assignment = self._issue(
            report, assignee, actor.actor_id, self._clock.now(), None, previous
        )
        logger.info(
            "assignment_carried_forward",
            extra={
                "reference_number": report.reference_number,
                "assignee_id": str(assignee.actor_id),
                "deadline": assignment.deadline,
            },
        )
        return assignment.to_dto()

    def release(self, report: ReportModel, reason: str) -> AssignmentInfo | None:
        """Deactivate the active assignment, if any.  The caller owns the CAS."""
        current = self._active_model(report.id)
        if current is None:
            return None
        current.is_active = False
        current.released_at = self._clock.now()
        current.release_reason = reason
        self._session.flush()
        logger.info(
            "assignment_released",
            extra={
                "reference_number": report.reference_number,
                "assignee_id": str(current.assignee_id),
                "release_reason": reason,
            },
        )
        return current.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def active_assignment(self, reference: str) -> AssignmentInfo | None:
        report = self._store.load(reference)
        current = self._active_model(report.id)
        return current.to_dto() if current else None

    def active_for(self, report: ReportModel) -> AssignmentInfo | None:
        current = self._active_model(report.id)
        return current.to_dto() if current else None

    def history(self, reference: str) -> list[AssignmentInfo]:
        """Every assignment the report has had, oldest first."""
        report = self._store.load(reference)
        rows = self._session.execute(
            select(AssignmentModel)
            .where(AssignmentModel.report_id == report.id)
            .order_by(AssignmentModel.assigned_at, AssignmentModel.is_active)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def workload_of(self, assignee_id: UUID) -> int:
        """Live count of active assignments held by ``assignee_id``."""
        return self._session.execute(
            select(func.count(AssignmentModel.id)).where(
                AssignmentModel.assignee_id == assignee_id,
                AssignmentModel.is_active.is_(True),
            )
        ).scalar_one()

    def workload_breakdown(self, assignee_id: UUID) -> Workload:
        """Active assignments of one staff member split by type, escalation and overdue."""
        rows = self._session.execute(
            select(ReportModel.report_type, ReportModel.state, AssignmentModel.deadline)
            .join(ReportModel, ReportModel.id == AssignmentModel.report_id)
            .where(
                AssignmentModel.assignee_id == assignee_id,
                AssignmentModel.is_active.is_(True),
            )
        ).all()
        now = self._clock.now()
        return Workload(
            assignee_id=assignee_id,
            total=len(rows),
            ctrs=sum(1 for r in rows if r.report_type == ReportType.CTR.value),
            strs=sum(1 for r in rows if r.report_type == ReportType.STR.value),
            escalated_ctrs=sum(
                1
                for r in rows
                if r.report_type == ReportType.CTR.value
                and r.state == ReportState.ESCALATION_PENDING.value
            ),
            overdue=sum(1 for r in rows if r.deadline < now),
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _active_model(self, report_id: UUID) -> AssignmentModel | None:
        return self._session.execute(
            select(AssignmentModel)
            .where(
                AssignmentModel.report_id == report_id,
                AssignmentModel.is_active.is_(True),
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _resolve_assignee(self, reference: str, assignee: Actor | UUID) -> Actor:
        if isinstance(assignee, Actor):
            return assignee
        found = self._directory.lookup(assignee) if self._directory is not None else None
        if found is None:
            raise IneligibleAssigneeError(reference, str(assignee), "unknown")
        return found

    def _check_eligible(
        self,
        reference: str,
        state: ReportState,
        report_type: ReportType,
        assignee: Actor,
    ) -> None:
        scopes = {s.role: s for s in self._policy.roles_for(report_type)}
        scope = scopes.get(assignee.role)
        if scope is None or (state == ReportState.ESCALATION_PENDING and not scope.supervisory):
            raise IneligibleAssigneeError(reference, str(assignee.actor_id), assignee.role.value)

    def _issue(
        self,
        report: ReportModel,
        assignee: Actor,
        assigned_by_id: UUID,
        now: datetime,
        deadline: datetime | None,
        previous: AssignmentModel | None,
    ) -> AssignmentModel:
        new_id = uuid4()
        if previous is not None:
            previous.is_active = False
            previous.superseded_at = now
            previous.superseded_by_id = new_id
            # The partial unique index must see the old row inactive first.
            self._session.flush()

        model = AssignmentModel(
            id=new_id,
            report_id=report.id,
            reference_number=report.reference_number,
            assignee_id=assignee.actor_id,
            assignee_role=assignee.role.value,
            assignee_name=assignee.name or None,
            assigned_by_id=assigned_by_id,
            assigned_at=now,
            deadline=deadline
            or report.entered_queue_at + timedelta(hours=self._settings.default_deadline_hours),
            is_active=True,
        )
        self._session.add(model)
        self._session.flush()
        return model
