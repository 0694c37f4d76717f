"""
Module: disposition_kernel.models.assignment
Responsibility: ORM persistence for report assignments.
Architecture position: Kernel > Models.

Invariants enforced:
    - At most one active assignment per report.  The AssignmentManager
      checks it, and the partial unique index ``uq_assignments_one_active``
      rejects a second active row at the database.
    - Rows are superseded or released, never edited otherwise: only the
      deactivation columns (is_active, superseded_*, released_*) change.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, Index, String, text
from sqlalchemy.orm import Mapped, mapped_column

from disposition_kernel.db.base import Base, UTCDateTime, UUIDString
from disposition_kernel.domain.reports import AssignmentInfo


class AssignmentModel(Base):
    __tablename__ = "assignments"
    __table_args__ = (
        Index(
            "uq_assignments_one_active",
            "report_id",
            unique=True,
            sqlite_where=text("is_active = 1"),
            postgresql_where=text("is_active"),
        ),
        Index("idx_assignments_assignee", "assignee_id", "is_active"),
    )

    report_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("reports.id"), nullable=False,
    )

    # Denormalized for logs and DTOs
    reference_number: Mapped[str] = mapped_column(String(64), nullable=False)

    assignee_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    assignee_role: Mapped[str] = mapped_column(String(40), nullable=False)

    assignee_name: Mapped[str | None] = mapped_column(String(255), nullable=True)

    assigned_by_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    assigned_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    deadline: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    superseded_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    superseded_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    released_at: Mapped[datetime | None] = mapped_column(UTCDateTime(), nullable=True)

    release_reason: Mapped[str | None] = mapped_column(String(64), nullable=True)

    def __repr__(self) -> str:
        flag = "active" if self.is_active else "inactive"
        return f"<Assignment {self.reference_number} -> {self.assignee_id} ({flag})>"

    def to_dto(self) -> AssignmentInfo:
        return AssignmentInfo(
            assignment_id=self.id,
            report_id=self.report_id,
            reference_number=self.reference_number,
            assignee_id=self.assignee_id,
            assignee_role=self.assignee_role,
            assigned_by_id=self.assigned_by_id,
            assigned_at=self.assigned_at,
            deadline=self.deadline,
            is_active=self.is_active,
            assignee_name=self.assignee_name,
            superseded_at=self.superseded_at,
            released_at=self.released_at,
            release_reason=self.release_reason,
        )
