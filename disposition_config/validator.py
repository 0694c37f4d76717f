"""
Configuration Validator (``disposition_config.validator``).

Responsibility
--------------
Checks a loaded ``WorkflowConfig`` before any kernel input is built
from it.

Invariants enforced
-------------------
* Roles, report types, queues, filters and risk levels are names the
  kernel knows.
* Each role appears once.
* Every report type has an individual role and a supervisory role, so
  every report can be both worked and escalated.
* Escalation and dispositions queues are supervisor-only.
* Page sizes and deadline hours are positive; age bucket edges are three
  strictly increasing hour counts.

Failure modes
-------------
* Errors  -> the configuration MUST NOT be used.
* Warnings  -> usable, but should be reviewed.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from disposition_config.schema import WorkflowConfig
from disposition_kernel.domain.lifecycle import ReportType
from disposition_kernel.domain.queues import QueueName, RiskLevel
from disposition_kernel.domain.roles import StaffRole

_KNOWN_FILTERS = frozenset({"assigned_to_me", "unassigned"})
_SUPERVISOR_ONLY_QUEUES = frozenset({QueueName.ESCALATION.value, QueueName.DISPOSITIONS.value})


@dataclass
class ConfigValidationResult:
    """
    Result of configuration validation.

    ``is_valid`` returns ``True`` only when ``errors`` is empty.
    """

    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return len(self.errors) == 0

    def add_error(self, msg: str) -> None:
        self.errors.append(msg)

    def add_warning(self, msg: str) -> None:
        self.warnings.append(msg)


def validate_configuration(config: WorkflowConfig) -> ConfigValidationResult:
    """Validate a configuration set.  A configuration with errors MUST NOT be used."""
    result = ConfigValidationResult()

    _validate_roles(config, result)
    _validate_role_coverage(config, result)
    _validate_workflow(config, result)
    _validate_risk_levels(config, result)

    return result


def _validate_roles(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    known_roles = {r.value for r in StaffRole}
    known_types = {t.value for t in ReportType}
    known_queues = {q.value for q in QueueName}
    seen: set[str] = set()

    for row in config.roles:
        if row.role not in known_roles:
            result.add_error(f"Unknown role '{row.role}'")
        if row.role in seen:
            result.add_error(f"Role '{row.role}' declared more than once")
        seen.add(row.role)
        if row.report_type not in known_types:
            result.add_error(f"Role '{row.role}' has unknown report_type '{row.report_type}'")
        if not row.queues:
            result.add_error(f"Role '{row.role}' has no queues")
        for queue in row.queues:
            if queue not in known_queues:
                result.add_error(f"Role '{row.role}' references unknown queue '{queue}'")
            elif queue in _SUPERVISOR_ONLY_QUEUES and not row.supervisory:
                result.add_error(
                    f"Queue '{queue}' is supervisor-only but granted to '{row.role}'"
                )
        for name in row.optional_filters:
            if name not in _KNOWN_FILTERS:
                result.add_error(f"Role '{row.role}' references unknown filter '{name}'")
            elif not row.supervisory:
                result.add_warning(
                    f"Filter '{name}' on individual role '{row.role}' has no effect"
                )

    for role in sorted(known_roles - seen):
        result.add_warning(f"Role '{role}' has no policy row and cannot use the workflow")


def _validate_role_coverage(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    for report_type in ReportType:
        rows = [r for r in config.roles if r.report_type == report_type.value]
        if not any(not r.supervisory for r in rows):
            result.add_error(f"No individual role handles {report_type.value} reports")
        if not any(r.supervisory for r in rows):
            result.add_error(f"No supervisory role handles {report_type.value} reports")


def _validate_workflow(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    wf = config.workflow
    if wf.default_deadline_hours < 1:
        result.add_error("default_deadline_hours must be at least 1")
    if wf.default_page_size < 1 or wf.max_page_size < 1:
        result.add_error("page sizes must be at least 1")
    if wf.default_page_size > wf.max_page_size:
        result.add_error("default_page_size exceeds max_page_size")
    edges = wf.age_bucket_hours
    if len(edges) != 3:
        result.add_error("age_bucket_hours must list exactly three edges")
    elif not (0 < edges[0] < edges[1] < edges[2]):
        result.add_error("age_bucket_hours must be positive and strictly increasing")


def _validate_risk_levels(config: WorkflowConfig, result: ConfigValidationResult) -> None:
    known = {r.value for r in RiskLevel}
    for level in config.risk_levels:
        if level not in known:
            result.add_error(f"Unknown risk level '{level}'")
