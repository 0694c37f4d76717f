"""
Staff roles and the role policy table.

Responsibility:
    One ``role -> scope`` lookup consumed by the queue resolver, the
    assignment manager and the decision engine, so role rules cannot drift
    between views.  The shipped defaults mirror
    ``disposition_config/sets/default.yaml``; runtime code normally receives
    a table built from configuration by ``disposition_config.bridges``.

Architecture position:
    Kernel > Domain -- pure value objects, ZERO I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from uuid import UUID

from disposition_kernel.domain.lifecycle import ReportType
from disposition_kernel.domain.queues import QueueName
from disposition_kernel.exceptions import UnauthorizedActorError


class StaffRole(str, Enum):
    COMPLIANCE_OFFICER = "compliance_officer"
    ANALYST = "analyst"
    HEAD_OF_COMPLIANCE = "head_of_compliance"
    HEAD_OF_ANALYSIS = "head_of_analysis"


@dataclass(frozen=True)
class Actor:
    """An authenticated staff member as supplied by identity resolution."""

    actor_id: UUID
    role: StaffRole
    name: str = ""


@dataclass(frozen=True)
class RoleScope:
    """
    Queue scoping for one role.

    Individual roles are pinned to ``assigned_to_me`` and their
    ``report_type``.  Supervisory roles see the whole domain queue and may
    opt into the filters listed in ``optional_filters``.
    """

    role: StaffRole
    report_type: ReportType
    supervisory: bool
    queues: frozenset[QueueName]
    optional_filters: frozenset[str] = frozenset()

    def can_view(self, queue: QueueName) -> bool:
        return queue in self.queues

    def supervises(self, report_type: ReportType) -> bool:
        return self.supervisory and self.report_type == report_type


@dataclass(frozen=True)
class RolePolicyTable:
    scopes: tuple[RoleScope, ...]

    def scope_for(self, actor: Actor) -> RoleScope:
        for scope in self.scopes:
            if scope.role == actor.role:
                return scope
        raise UnauthorizedActorError(
            str(actor.actor_id), actor.role.value, "use the disposition workflow"
        )

    def roles_for(self, report_type: ReportType) -> tuple[RoleScope, ...]:
        return tuple(s for s in self.scopes if s.report_type == report_type)


_INDIVIDUAL_QUEUES = frozenset({QueueName.VALIDATION, QueueName.REVIEW})
_SUPERVISOR_QUEUES = frozenset(QueueName)
_SUPERVISOR_FILTERS = frozenset({"assigned_to_me", "unassigned"})

DEFAULT_ROLE_POLICY = RolePolicyTable(
    scopes=(
        RoleScope(StaffRole.COMPLIANCE_OFFICER, ReportType.CTR, False, _INDIVIDUAL_QUEUES),
        RoleScope(StaffRole.ANALYST, ReportType.STR, False, _INDIVIDUAL_QUEUES),
        RoleScope(
            StaffRole.HEAD_OF_COMPLIANCE, ReportType.CTR, True,
            _SUPERVISOR_QUEUES, _SUPERVISOR_FILTERS,
        ),
        RoleScope(
            StaffRole.HEAD_OF_ANALYSIS, ReportType.STR, True,
            _SUPERVISOR_QUEUES, _SUPERVISOR_FILTERS,
        ),
    )
)


@dataclass(frozen=True)
class WorkflowSettings:
    """Tunable workflow parameters (see ``disposition_config``)."""

    default_deadline_hours: int = 48
    retain_validator_for_review: bool = True
    default_page_size: int = 20
    max_page_size: int = 100
    age_bucket_hours: tuple[int, int, int] = (24, 72, 168)


DEFAULT_SETTINGS = WorkflowSettings()
