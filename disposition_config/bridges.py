"""
Config -> Kernel Bridges.

Functions that convert a ``WorkflowConfig`` into kernel inputs.  These
live in disposition_config (the producer) because the kernel must NEVER
import disposition_config.

Usage:
    from disposition_config import get_active_config
    from disposition_config.bridges import build_role_policy, build_workflow_settings

    config = get_active_config()
    resolver = QueueResolver(
        session,
        policy=build_role_policy(config),
        settings=build_workflow_settings(config),
    )
"""

from __future__ import annotations

from disposition_config.schema import WorkflowConfig
from disposition_kernel.domain.lifecycle import ReportType
from disposition_kernel.domain.queues import QueueName
from disposition_kernel.domain.roles import (
    RolePolicyTable,
    RoleScope,
    StaffRole,
    WorkflowSettings,
)


def build_role_policy(config: WorkflowConfig) -> RolePolicyTable:
    """Build the kernel role policy table from the configured role rows."""
    return RolePolicyTable(
        scopes=tuple(
            RoleScope(
                role=StaffRole(row.role),
                report_type=ReportType(row.report_type),
                supervisory=row.supervisory,
                queues=frozenset(QueueName(q) for q in row.queues),
                optional_filters=frozenset(row.optional_filters),
            )
            for row in config.roles
        )
    )


def build_workflow_settings(config: WorkflowConfig) -> WorkflowSettings:
    wf = config.workflow
    first, second, third = wf.age_bucket_hours
    return WorkflowSettings(
        default_deadline_hours=wf.default_deadline_hours,
        retain_validator_for_review=wf.retain_validator_for_review,
        default_page_size=wf.default_page_size,
        max_page_size=wf.max_page_size,
        age_bucket_hours=(first, second, third),
    )
