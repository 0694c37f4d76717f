"""
Module: disposition_kernel.models.audit_entry
Responsibility: ORM persistence for the tamper-evident decision audit log.
Architecture position: Kernel > Models.

Invariants enforced:
    - Append-only: no UPDATE or DELETE (ORM listeners in db/immutability.py).
    - One entry per decision (unique decision_id).
    - seq is strictly increasing, allocated by SequenceService.
    - hash = H(reference_number | decision_id | decision | payload_hash |
      prev_hash), validated by AuditLog.validate_chain().

Audit relevance:
    This table IS the compliance record of who decided what, when and why.
    Report reference, type and entity are denormalized so queries never
    need the reports table.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import JSON, BigInteger, ForeignKey, Index, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from disposition_kernel.db.base import Base, UTCDateTime, UUIDString
from disposition_kernel.domain.audit import AuditEntry
from disposition_kernel.domain.lifecycle import DecisionKind, ReportState, ReportType


class AuditLogEntryModel(Base):
    """
    Audit log entry with hash chain.

    Non-goals:
        Does not check hash correctness at INSERT time; AuditLog does that.
    """

    __tablename__ = "audit_log_entries"
    __table_args__ = (
        Index("idx_audit_reference", "reference_number"),
        Index("idx_audit_decision", "decision"),
        Index("idx_audit_actor", "actor_id"),
        Index("idx_audit_decided_at", "decided_at"),
    )

    seq: Mapped[int] = mapped_column(BigInteger, nullable=False, unique=True)

    decision_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("decisions.id"), nullable=False, unique=True,
    )

    report_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    reference_number: Mapped[str] = mapped_column(String(64), nullable=False)

    report_type: Mapped[str] = mapped_column(String(8), nullable=False)

    entity_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entity_name: Mapped[str] = mapped_column(String(255), nullable=False)

    decision: Mapped[str] = mapped_column(String(16), nullable=False)

    stage: Mapped[str] = mapped_column(String(16), nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    actor_role: Mapped[str] = mapped_column(String(40), nullable=False)

    from_state: Mapped[str] = mapped_column(String(40), nullable=False)

    to_state: Mapped[str] = mapped_column(String(40), nullable=False)

    reason: Mapped[str | None] = mapped_column(Text, nullable=True)

    comments: Mapped[str | None] = mapped_column(Text, nullable=True)

    decided_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    payload: Mapped[dict] = mapped_column(JSON, nullable=False)

    payload_hash: Mapped[str] = mapped_column(String(64), nullable=False)

    # Null only for the genesis entry
    prev_hash: Mapped[str | None] = mapped_column(String(64), nullable=True)

    hash: Mapped[str] = mapped_column(String(64), nullable=False)

    def __repr__(self) -> str:
        return f"<AuditLogEntry #{self.seq} {self.decision} {self.reference_number}>"

    @property
    def is_genesis(self) -> bool:
        return self.prev_hash is None

    def to_dto(self) -> AuditEntry:
        return AuditEntry(
            entry_id=self.id,
            seq=self.seq,
            decision_id=self.decision_id,
            reference_number=self.reference_number,
            report_type=ReportType(self.report_type),
            entity_id=self.entity_id,
            entity_name=self.entity_name,
            decision=DecisionKind(self.decision),
            stage=self.stage,
            actor_id=self.actor_id,
            actor_role=self.actor_role,
            from_state=ReportState(self.from_state),
            to_state=ReportState(self.to_state),
            decided_at=self.decided_at,
            payload=dict(self.payload),
            payload_hash=self.payload_hash,
            prev_hash=self.prev_hash,
            hash=self.hash,
            reason=self.reason,
            comments=self.comments,
        )
