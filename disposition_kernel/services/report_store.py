"""
ReportStore -- durable report records and the state compare-and-swap.

Responsibility:
    Intake hand-off (creating SUBMITTED reports and releasing them to the
    validation queue), report lookup by reference, and the single write
    path for a report's lifecycle state.

Architecture position:
    Kernel > Services.  Used by AssignmentManager, DecisionEngine and
    EscalationGate.  Nothing else writes ``reports.state``.

Invariants enforced:
    - Compare-and-swap: ``UPDATE reports SET state, version+1 WHERE id AND
      state AND version``.  Zero matched rows means someone else wrote
      first, and the caller gets StaleStateError instead of overwriting.
    - Non-decision lifecycle moves must be edges of LIFECYCLE_EDGES.

Failure modes:
    - ReportNotFoundError for unknown references.
    - DuplicateReportError on intake of an existing reference.
    - StaleStateError when the CAS loses.
    - PersistenceError when the store is unreachable.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from disposition_kernel.domain.clock import Clock, SystemClock
from disposition_kernel.domain.lifecycle import ReportState, is_lifecycle_edge
from disposition_kernel.domain.reports import ReportInfo, ReportSubmission
from disposition_kernel.exceptions import (
    DuplicateReportError,
    IllegalTransitionError,
    ReportNotFoundError,
    StaleStateError,
)
from disposition_kernel.logging_config import get_logger
from disposition_kernel.models.report import ReportModel, ReportTransactionModel
from disposition_kernel.services.retry import translate_store_errors

logger = get_logger("services.report_store")


class ReportStore:
    """
    Report persistence and state CAS.

    Contract:
        Never commits.  The caller's transaction decides whether a state
        write, and everything written alongside it, becomes durable.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    # ------------------------------------------------------------------
    # Intake
    # ------------------------------------------------------------------

    def intake(self, submission: ReportSubmission) -> ReportInfo:
        """Record a report that passed intake checks, in SUBMITTED."""
        existing = self._session.execute(
            select(ReportModel.id).where(
                ReportModel.reference_number == submission.reference_number
            )
        ).scalar_one_or_none()
        if existing is not None:
            raise DuplicateReportError(submission.reference_number)

        submitted_at = submission.submitted_at or self._clock.now()
        total = sum((t.amount for t in submission.transactions), Decimal("0"))
        model = ReportModel(
            reference_number=submission.reference_number,
            report_type=submission.report_type.value,
            entity_id=submission.entity_id,
            entity_name=submission.entity_name,
            submitted_at=submitted_at,
            entered_queue_at=submitted_at,
            state=ReportState.SUBMITTED.value,
            version=1,
            total_amount=total,
            transaction_count=len(submission.transactions),
            risk_level=submission.risk_level.value if submission.risk_level else None,
        )
        model.transactions = [
            ReportTransactionModel(
                line_no=i,
                transaction_date=t.transaction_date,
                amount=t.amount,
                currency=t.currency,
                account_number=t.account_number,
                subject_name=t.subject_name,
            )
            for i, t in enumerate(submission.transactions, start=1)
        ]
        self._session.add(model)
        try:
            with translate_store_errors("report_intake"):
                self._session.flush()
        except IntegrityError as exc:
            raise DuplicateReportError(submission.reference_number) from exc

        logger.info(
            "report_received",
            extra={
                "reference_number": model.reference_number,
                "report_type": model.report_type,
                "transaction_count": model.transaction_count,
            },
        )
        return model.to_dto()

    def release_to_validation(self, reference: str) -> ReportInfo:
        """Move a SUBMITTED report into the validation queue."""
        model = self.load(reference)
        self.move(model, ReportState.PENDING_VALIDATION, reset_queue_clock=True)
        return model.to_dto()

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def load(self, reference: str) -> ReportModel:
        """Load the current row for ``reference`` (bypassing the identity map cache)."""
        with translate_store_errors("report_load"):
            model = self._session.execute(
                select(ReportModel)
                .where(ReportModel.reference_number == reference)
                .execution_options(populate_existing=True)
            ).scalar_one_or_none()
        if model is None:
            raise ReportNotFoundError(reference)
        return model

    def get(self, reference: str, include_transactions: bool = False) -> ReportInfo:
        return self.load(reference).to_dto(include_transactions=include_transactions)

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

    def move(
        self,
        model: ReportModel,
        to_state: ReportState,
        *,
        reset_queue_clock: bool = False,
    ) -> int:
        """Apply a non-decision lifecycle edge through the CAS."""
        from_state = ReportState(model.state)
        if not is_lifecycle_edge(from_state, to_state):
            raise IllegalTransitionError(model.reference_number, from_state.value, to_state.value)
        return self.compare_and_swap_state(
            model, from_state, model.version, to_state, reset_queue_clock=reset_queue_clock
        )

    def compare_and_swap_state(
        self,
        model: ReportModel,
        expected_state: ReportState,
        expected_version: int,
        new_state: ReportState,
        *,
        reset_queue_clock: bool = False,
        now: datetime | None = None,
    ) -> int:
        """
        Write ``new_state`` only if the row still holds the expected pair.

        ``new_state`` may equal ``expected_state``; that is a pure version
        bump, used to serialize assignment changes with decisions.

        Returns:
            The new version.

        Raises:
            StaleStateError: the row no longer matches.
        """
        values: dict = {"state": new_state.value, "version": expected_version + 1}
        if reset_queue_clock:
            values["entered_queue_at"] = now or self._clock.now()

        with translate_store_errors("report_state_cas"):
            result = self._session.execute(
                update(ReportModel)
                .where(
                    ReportModel.id == model.id,
                    ReportModel.state == expected_state.value,
                    ReportModel.version == expected_version,
                )
                .values(**values)
                .execution_options(synchronize_session=False)
            )

        if result.rowcount != 1:
            current = self._session.execute(
                select(ReportModel.state, ReportModel.version).where(ReportModel.id == model.id)
            ).one_or_none()
            logger.warning(
                "stale_state_detected",
                extra={
                    "reference_number": model.reference_number,
                    "expected_state": expected_state.value,
                    "expected_version": expected_version,
                    "actual_state": current.state if current else None,
                    "actual_version": current.version if current else None,
                },
            )
            raise StaleStateError(
                model.reference_number,
                expected_state.value,
                current.state if current else None,
                expected_version,
                current.version if current else None,
            )

        self._session.refresh(model)
        logger.debug(
            "report_state_written",
            extra={
                "reference_number": model.reference_number,
                "from_state": expected_state.value,
                "to_state": new_state.value,
                "version": model.version,
            },
        )
        return model.version
