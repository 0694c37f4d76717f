"""
Module: disposition_kernel.models.decision
Responsibility: ORM persistence for applied decisions.
Architecture position: Kernel > Models.

Invariants enforced:
    - Decisions are immutable from creation; UPDATE and DELETE are refused
      by db/immutability.py.
    - A decision row exists only if its state transition committed: both are
      written in the same transaction by the DecisionEngine.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from disposition_kernel.db.base import Base, UTCDateTime, UUIDString
from disposition_kernel.domain.decisions import DecisionRecord
from disposition_kernel.domain.lifecycle import (
    DecisionKind,
    DecisionStage,
    ReportState,
    ReportType,
)


class DecisionModel(Base):
    __tablename__ = "decisions"
    __table_args__ = (
        Index("idx_decisions_report", "report_id", "decided_at"),
        Index("idx_decisions_kind", "kind", "stage"),
    )

    report_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reports.id"), nullable=False,
    )

    reference_number: Mapped[str] = mapped_column(String(64), nullable=False)

    report_type: Mapped[str] = mapped_column(String(8), nullable=False)

    kind: Mapped[str] = mapped_column(String(16), nullable=False)

    stage: Mapped[str] = mapped_column(String(16), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_role: Mapped[str] = mapped_column(String(40), nullable=False)

    from_state: Mapped[str] = mapped_column(String(40), nullable=False)

    to_state: Mapped[str] = mapped_column(String(40), nullable=False)

    # Every state passed through, ending with to_state
    path: Mapped[list] = mapped_column(JSON, nullable=False)

    # Normalized submission, exactly as recorded
    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    decided_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return f"<Decision {self.kind} on {self.reference_number} by {self.actor_id}>"

    def to_dto(self) -> DecisionRecord:
        return DecisionRecord(
            decision_id=self.id,
            report_id=self.report_id,
            reference_number=self.reference_number,
            report_type=ReportType(self.report_type),
            kind=DecisionKind(self.kind),
            stage=DecisionStage(self.stage),
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            from_state=ReportState(self.from_state),
            to_state=ReportState(self.to_state),
            path=tuple(ReportState(s) for s in self.path),
            payload=dict(self.payload),
            decided_at=self.decided_at,
            reason=self.reason,
            comments=self.comments,
        )

    @classmethod
    def from_dto(cls, record: DecisionRecord) -> "DecisionModel":
        return cls(
            id=record.decision_id,
            report_id=record.report_id,
            reference_number=record.reference_number,
            report_type=record.report_type.value,
            kind=record.kind.value,
            stage=record.stage.value,
            actor_id=record.actor_id,
            actor_role=record.actor_role,
            from_state=record.from_state.value,
            to_state=record.to_state.value,
            path=[s.value for s in record.path],
            payload=dict(record.payload),
            reason=record.reason,
            comments=record.comments,
            decided_at=record.decided_at,
        )
