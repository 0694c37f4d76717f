"""
Module: disposition_kernel.selectors.audit_selector
Responsibility: Read-only queries over the decision audit log: filtered
    history pages, the chronological trail of one report, and escalation
    outcome history.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - History pages are ordered by decided_at descending, then seq
      descending.  ``seq`` is the tiebreaker and the keyset cursor; the
      cursor filter compares the same (decided_at, seq) pair, so pages
      neither skip nor repeat entries when the two orders disagree.
    - Date filters are inclusive calendar days in UTC.

Failure modes:
    - Returns empty pages, never raises, when nothing matches.
"""

from typing import Any

from sqlalchemy import and_, func, or_, select
from sqlalchemy.sql import ColumnElement, Select

from disposition_kernel.domain.audit import AuditEntry, AuditPage, AuditQuery
from disposition_kernel.domain.lifecycle import DecisionKind, DecisionStage, ReportType
from disposition_kernel.models.audit_entry import AuditLogEntryModel
from disposition_kernel.selectors.base import BaseSelector, day_after, day_start, escape_like


class AuditSelector(BaseSelector[AuditLogEntryModel]):
    """
    Selector for audit log queries.

    Guarantees:
        - Read-only.
        - ``total`` counts every match regardless of page or cursor.
    """

    def _filtered(self, query: AuditQuery) -> Select:
        stmt = select(AuditLogEntryModel)
        if query.decision is not None:
            stmt = stmt.where(AuditLogEntryModel.decision == query.decision.value)
        if query.actor_id is not None:
            stmt = stmt.where(AuditLogEntryModel.actor_id == query.actor_id)
        if query.from_date is not None:
            stmt = stmt.where(AuditLogEntryModel.decided_at >= day_start(query.from_date))
        if query.to_date is not None:
            stmt = stmt.where(AuditLogEntryModel.decided_at < day_after(query.to_date))
        if query.reference:
            pattern = f"%{escape_like(query.reference.lower())}%"
            stmt = stmt.where(
                func.lower(AuditLogEntryModel.reference_number).like(pattern, escape="\\")
            )
        return stmt

    def _before_cursor(self, before_seq: int) -> ColumnElement[bool]:
        cursor_at = self.session.execute(
            select(AuditLogEntryModel.decided_at).where(AuditLogEntryModel.seq == before_seq)
        ).scalar_one_or_none()
        if cursor_at is None:
            return AuditLogEntryModel.seq < before_seq
        return or_(
            AuditLogEntryModel.decided_at < cursor_at,
            and_(
                AuditLogEntryModel.decided_at == cursor_at,
                AuditLogEntryModel.seq < before_seq,
            ),
        )

    def query(self, query: AuditQuery) -> AuditPage:
        """
        One page of audit history matching ``query``.

        With ``before_seq`` set the page starts after that cursor and
        ``page`` is ignored for offsetting.
        """
        base = self._filtered(query)
        total = self.session.execute(
            select(func.count()).select_from(base.subquery())
        ).scalar_one()

        stmt = base.order_by(
            AuditLogEntryModel.decided_at.desc(), AuditLogEntryModel.seq.desc()
        )
        if query.before_seq is not None:
            stmt = stmt.where(self._before_cursor(query.before_seq))
        else:
            stmt = stmt.offset((query.page - 1) * query.page_size)

        rows = self.session.execute(stmt.limit(query.page_size + 1)).scalars().all()
        has_more = len(rows) > query.page_size
        rows = rows[: query.page_size]

        return AuditPage(
            entries=tuple(row.to_dto() for row in rows),
            total=total,
            page=query.page,
            page_size=query.page_size,
            next_before_seq=rows[-1].seq if has_more and rows else None,
            filters=_query_filters(query),
        )

    def trail_for(self, reference: str) -> tuple[AuditEntry, ...]:
        """Every audit entry for one report, oldest first."""
        rows = self.session.execute(
            select(AuditLogEntryModel)
            .where(AuditLogEntryModel.reference_number == reference)
            .order_by(AuditLogEntryModel.seq)
        ).scalars().all()
        return tuple(row.to_dto() for row in rows)

    def escalation_outcomes(
        self,
        report_type: ReportType,
        outcome: DecisionKind | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> AuditPage:
        """Past escalation approvals and rejections for one domain, newest first."""
        base = select(AuditLogEntryModel).where(
            AuditLogEntryModel.stage == DecisionStage.ESCALATION.value,
            AuditLogEntryModel.report_type == report_type.value,
        )
        if outcome is not None:
            base = base.where(AuditLogEntryModel.decision == outcome.value)

        total = self.session.execute(
            select(func.count()).select_from(base.subquery())
        ).scalar_one()
        rows = self.session.execute(
            base.order_by(
                AuditLogEntryModel.decided_at.desc(), AuditLogEntryModel.seq.desc()
            )
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()

        return AuditPage(
            entries=tuple(row.to_dto() for row in rows),
            total=total,
            page=page,
            page_size=page_size,
            filters={
                "report_type": report_type.value,
                "outcome": outcome.value if outcome else None,
            },
        )


def _query_filters(query: AuditQuery) -> dict[str, Any]:
    return {
        "decision": query.decision.value if query.decision else None,
        "user": str(query.actor_id) if query.actor_id else None,
        "from_date": query.from_date.isoformat() if query.from_date else None,
        "to_date": query.to_date.isoformat() if query.to_date else None,
        "reference": query.reference,
    }
