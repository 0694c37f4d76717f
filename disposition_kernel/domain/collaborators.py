"""
Ports to collaborators outside the workflow kernel.

Identity resolution and notification dispatch live elsewhere; the kernel
only sees them through these protocols.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable
from uuid import UUID

from disposition_kernel.domain.decisions import DecisionRecord
from disposition_kernel.domain.lifecycle import ReportState
from disposition_kernel.domain.queues import QueueName
from disposition_kernel.domain.roles import Actor


@dataclass(frozen=True)
class DecisionEvent:
    """Published after a decision has been applied and audited."""

    decision: DecisionRecord
    entity_id: UUID
    state: ReportState
    routed_to_queue: QueueName | None
    audit_seq: int

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.decision.to_dict(),
            "entity_id": str(self.entity_id),
            "state": self.state.value,
            "routed_to_queue": self.routed_to_queue.value if self.routed_to_queue else None,
            "audit_seq": self.audit_seq,
        }


@runtime_checkable
class DecisionPublisher(Protocol):
    """
    Notification dispatch.

    Called inside the decision's transaction; an exception aborts the
    decision.  Implementations that must not block should enqueue.
    """

    def publish(self, event: DecisionEvent) -> None: ...


@runtime_checkable
class StaffDirectory(Protocol):
    """Identity and role resolution for staff members."""

    def lookup(self, actor_id: UUID) -> Actor | None: ...
