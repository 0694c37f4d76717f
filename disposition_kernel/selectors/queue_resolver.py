"""
Module: disposition_kernel.selectors.queue_resolver
Responsibility: Computes role-scoped queue views (validation, review,
    escalation, dispositions) from current report and assignment rows.
Architecture position: Kernel > Selectors.  Consumes the role policy table
    and queue membership data from domain/; issues read-only SQL.

Invariants enforced:
    - Role scoping is applied before caller filters and cannot be
      overridden: individual roles are pinned to their report type and to
      ``assigned_to_me``, plus the unassigned pickup backlog of the queue
      (VALIDATED CTRs in review); supervisory roles see their whole domain.
    - Membership is recomputed from current rows on every call.  A report
      that left a dual-queue state is gone from both queues in the same
      read.
    - Ordering is oldest-first by ``entered_queue_at`` with the reference
      number as tiebreaker, unless the caller asks for newest-first.

Failure modes:
    - UnauthorizedActorError: the role may not view the requested queue.
    - InvalidQueueFilterError: contradictory or role-forbidden filters.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from sqlalchemy import and_, false, func, or_, select
from sqlalchemy.orm import Session

from disposition_kernel.domain.clock import Clock, SystemClock
from disposition_kernel.domain.queues import (
    QueueFilters,
    QueueView,
    ReportSummary,
    RiskLevel,
    SortOrder,
    age_bucket_bounds,
    membership_for,
)
from disposition_kernel.domain.lifecycle import ReportState, ReportType
from disposition_kernel.domain.roles import (
    DEFAULT_ROLE_POLICY,
    DEFAULT_SETTINGS,
    Actor,
    RolePolicyTable,
    WorkflowSettings,
)
from disposition_kernel.exceptions import InvalidQueueFilterError, UnauthorizedActorError
from disposition_kernel.logging_config import get_logger
from disposition_kernel.models.assignment import AssignmentModel
from disposition_kernel.models.report import ReportModel
from disposition_kernel.selectors.base import BaseSelector, day_after, day_start, escape_like

logger = get_logger("selectors.queue_resolver")


class QueueResolver(BaseSelector[ReportModel]):
    """
    Role-scoped queue views.

    Contract:
        ``resolve(actor, filters)`` returns one page of the requested queue.
        Nothing is cached between calls.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        policy: RolePolicyTable = DEFAULT_ROLE_POLICY,
        settings: WorkflowSettings = DEFAULT_SETTINGS,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._policy = policy
        self._settings = settings

    # ------------------------------------------------------------------
    # Scoping
    # ------------------------------------------------------------------

    def scope_filters(self, actor: Actor, filters: QueueFilters) -> QueueFilters:
        """Apply the actor's role scope on top of caller filters."""
        scope = self._policy.scope_for(actor)
        if not scope.can_view(filters.queue):
            raise UnauthorizedActorError(
                str(actor.actor_id), actor.role.value, f"view the {filters.queue.value} queue"
            )

        if filters.report_type is not None and filters.report_type != scope.report_type:
            logger.debug(
                "queue_report_type_overridden",
                extra={
                    "requested": filters.report_type.value,
                    "applied": scope.report_type.value,
                    "role": actor.role.value,
                },
            )

        if not scope.supervisory:
            if filters.unassigned:
                raise InvalidQueueFilterError(
                    "unassigned", f"not available to role {actor.role.value}"
                )
            return filters.with_scope(report_type=scope.report_type, assigned_to_me=True)

        assigned_to_me = bool(filters.assigned_to_me)
        requested = {"assigned_to_me": assigned_to_me, "unassigned": filters.unassigned}
        for name, enabled in requested.items():
            if enabled and name not in scope.optional_filters:
                raise InvalidQueueFilterError(name, f"not available to role {actor.role.value}")
        if assigned_to_me and filters.unassigned:
            raise InvalidQueueFilterError("unassigned", "cannot be combined with assigned_to_me")
        return filters.with_scope(report_type=scope.report_type, assigned_to_me=assigned_to_me)

    def page_size_for(self, filters: QueueFilters) -> int:
        return min(filters.page_size or self._settings.default_page_size, self._settings.max_page_size)

    # ------------------------------------------------------------------
    # Resolution
    # ------------------------------------------------------------------

    def _conditions(self, actor: Actor, filters: QueueFilters, now: datetime) -> list:
        report_type: ReportType = filters.report_type
        membership = membership_for(filters.queue, report_type)

        in_queue = []
        if membership.states:
            in_queue.append(ReportModel.state.in_(sorted(s.value for s in membership.states)))
        if membership.assigned_states:
            in_queue.append(
                and_(
                    ReportModel.state.in_(sorted(s.value for s in membership.assigned_states)),
                    AssignmentModel.id.is_not(None),
                )
            )

        conditions = [
            ReportModel.report_type == report_type.value,
            or_(*in_queue) if in_queue else false(),
        ]

        if filters.assigned_to_me:
            mine = AssignmentModel.assignee_id == actor.actor_id
            if membership.pickup_states and not self._policy.scope_for(actor).supervisory:
                mine = or_(
                    mine,
                    and_(
                        AssignmentModel.id.is_(None),
                        ReportModel.state.in_(sorted(s.value for s in membership.pickup_states)),
                    ),
                )
            conditions.append(mine)
        if filters.unassigned:
            conditions.append(AssignmentModel.id.is_(None))

        search = filters.normalized_search()
        if search:
            pattern = f"%{escape_like(search.lower())}%"
            conditions.append(
                or_(
                    func.lower(ReportModel.reference_number).like(pattern, escape="\\"),
                    func.lower(ReportModel.entity_name).like(pattern, escape="\\"),
                )
            )
        if filters.status is not None:
            conditions.append(ReportModel.state == filters.status.value)
        if filters.risk is not None:
            conditions.append(ReportModel.risk_level == filters.risk.value)
        if filters.age is not None:
            low, high = age_bucket_bounds(filters.age, self._settings.age_bucket_hours)
            conditions.append(ReportModel.entered_queue_at <= now - timedelta(hours=low))
            if high is not None:
                conditions.append(ReportModel.entered_queue_at > now - timedelta(hours=high))
        if filters.from_date is not None:
            conditions.append(ReportModel.submitted_at >= day_start(filters.from_date))
        if filters.to_date is not None:
            conditions.append(ReportModel.submitted_at < day_after(filters.to_date))
        if filters.overdue:
            conditions.append(AssignmentModel.deadline < now)
        return conditions

    @staticmethod
    def _active_join():
        return and_(
            AssignmentModel.report_id == ReportModel.id,
            AssignmentModel.is_active.is_(True),
        )

    def resolve(self, actor: Actor, filters: QueueFilters | None = None) -> QueueView:
        """
        Compute one page of a queue for ``actor``.

        Args:
            actor: The requesting staff member.
            filters: Caller filters; defaults to the validation queue.

        Returns:
            QueueView with items, total and paging fields.
        """
        scoped = self.scope_filters(actor, filters or QueueFilters())
        now = self._clock.now()
        page_size = self.page_size_for(scoped)
        conditions = self._conditions(actor, scoped, now)

        total = self.session.execute(
            select(func.count(ReportModel.id))
            .select_from(ReportModel)
            .outerjoin(AssignmentModel, self._active_join())
            .where(*conditions)
        ).scalar_one()

        if scoped.sort == SortOrder.NEWEST_FIRST:
            ordering = (ReportModel.entered_queue_at.desc(), ReportModel.reference_number.desc())
        else:
            ordering = (ReportModel.entered_queue_at.asc(), ReportModel.reference_number.asc())

        rows = self.session.execute(
            select(ReportModel, AssignmentModel)
            .outerjoin(AssignmentModel, self._active_join())
            .where(*conditions)
            .order_by(*ordering)
            .offset((scoped.page - 1) * page_size)
            .limit(page_size)
            .execution_options(populate_existing=True)
        ).all()

        items = tuple(self._summary(report, assignment, now) for report, assignment in rows)
        applied = {**scoped.to_dict(), "page_size": page_size}

        logger.debug(
            "queue_resolved",
            extra={
                "queue": scoped.queue.value,
                "role": actor.role.value,
                "report_type": scoped.report_type.value,
                "total": total,
                "page": scoped.page,
            },
        )

        return QueueView(
            queue=scoped.queue,
            items=items,
            total=total,
            page=scoped.page,
            page_size=page_size,
            ordering=scoped.sort,
            applied_filters=applied,
        )

    @staticmethod
    def _summary(
        report: ReportModel, assignment: AssignmentModel | None, now: datetime
    ) -> ReportSummary:
        age_hours = max((now - report.entered_queue_at).total_seconds() / 3600, 0.0)
        return ReportSummary(
            report_id=report.id,
            reference_number=report.reference_number,
            report_type=ReportType(report.report_type),
            entity_name=report.entity_name,
            state=ReportState(report.state),
            submitted_at=report.submitted_at,
            entered_queue_at=report.entered_queue_at,
            transaction_count=report.transaction_count,
            total_amount=report.total_amount,
            age_hours=age_hours,
            risk_level=RiskLevel(report.risk_level) if report.risk_level else None,
            assigned_to_id=assignment.assignee_id if assignment else None,
            assigned_to_name=assignment.assignee_name if assignment else None,
            deadline=assignment.deadline if assignment else None,
            is_overdue=bool(assignment and assignment.deadline < now),
        )
