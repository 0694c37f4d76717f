"""
Module: disposition_kernel.models.report
Responsibility: ORM persistence for reports and their transaction rows.
Architecture position: Kernel > Models.  May import from db/base.py and
    domain/ DTOs only.

Invariants enforced:
    - reference_number is unique and never changes after intake.
    - ``version`` is the compare-and-swap token.  Every state or assignment
      write bumps it through ReportStore.compare_and_swap_state().
    - Reports are never deleted (ORM listener in db/immutability.py).

Failure modes:
    - IntegrityError on duplicate reference_number.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, ForeignKey, Index, Integer, Numeric, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from disposition_kernel.db.base import Base, UTCDateTime, UUIDString
from disposition_kernel.domain.lifecycle import ReportState, ReportType
from disposition_kernel.domain.queues import RiskLevel
from disposition_kernel.domain.reports import ReportInfo, TransactionLine


class ReportModel(Base):
    """
    A submitted CTR or STR.

    Contract:
        ``state`` is written only by ReportStore's compare-and-swap; the
        decision engine and assignment manager never assign it directly.
    """

    __tablename__ = "reports"
    __table_args__ = (
        CheckConstraint("report_type IN ('CTR', 'STR')", name="ck_reports_type"),
        CheckConstraint("version >= 1", name="ck_reports_version"),
        Index("idx_reports_queue", "report_type", "state", "entered_queue_at"),
        Index("idx_reports_entity_name", "entity_name"),
    )

    reference_number: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)

    report_type: Mapped[str] = mapped_column(String(8), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)

    submitted_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    # Reset whenever the report moves into a new queue; drives FIFO order,
    # age buckets and the default assignment deadline.
    entered_queue_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    state: Mapped[str] = mapped_column(String(40), nullable=False)

    version: Mapped[int] = mapped_column(Integer, nullable=False, default=1)

    total_amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False, default=Decimal("0"))

    transaction_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)

    risk_level: Mapped[str | None] = mapped_column(String(10), nullable=True)

    transactions: Mapped[list["ReportTransactionModel"]] = relationship(
        back_populates="report",
        order_by="ReportTransactionModel.line_no",
        cascade="all",
    )

    def __repr__(self) -> str:
        return f"<Report {self.reference_number} {self.report_type} {self.state} v{self.version}>"

    def to_dto(self, include_transactions: bool = False) -> ReportInfo:
        return ReportInfo(
            report_id=self.id,
            reference_number=self.reference_number,
            report_type=ReportType(self.report_type),
            entity_id=self.entity_id,
            entity_name=self.entity_name,
            state=ReportState(self.state),
            version=self.version,
            submitted_at=self.submitted_at,
            entered_queue_at=self.entered_queue_at,
            total_amount=self.total_amount,
            transaction_count=self.transaction_count,
            risk_level=RiskLevel(self.risk_level) if self.risk_level else None,
            transactions=(
                tuple(t.to_dto() for t in self.transactions) if include_transactions else ()
            ),
        )


class ReportTransactionModel(Base):
    """One transaction row of a report, as accepted by intake."""

    __tablename__ = "report_transactions"

    report_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reports.id"), nullable=False, index=True,
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    transaction_date: Mapped[date] = mapped_column(Date, nullable=False)

    amount: Mapped[Decimal] = mapped_column(Numeric(38, 9), nullable=False)

    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="USD")

    account_number: Mapped[str] = mapped_column(String(64), nullable=False, default="")

    subject_name: Mapped[str] = mapped_column(String(255), nullable=False, default="")

    report: Mapped[ReportModel] = relationship(back_populates="transactions")

    def to_dto(self) -> TransactionLine:
        return TransactionLine(
            transaction_date=self.transaction_date,
            amount=self.amount,
            account_number=self.account_number,
            subject_name=self.subject_name,
            currency=self.currency,
        )
