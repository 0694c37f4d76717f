"""
Disposition workflow configuration schema.

The human-authored, reviewable configuration artifact.  YAML is parsed
into these frozen types by the loader, checked by the validator, and
turned into kernel inputs by the bridges.
"""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True)
class RolePolicyDef:
    """One row of the role policy table."""

    role: str
    report_type: str
    supervisory: bool
    queues: tuple[str, ...]
    optional_filters: tuple[str, ...] = ()


@dataclass(frozen=True)
class WorkflowSettingsDef:
    default_deadline_hours: int = 48
    retain_validator_for_review: bool = True
    default_page_size: int = 20
    max_page_size: int = 100
    age_bucket_hours: tuple[int, ...] = (24, 72, 168)


@dataclass(frozen=True)
class WorkflowConfig:
    """
    A loaded configuration set.

    ``checksum`` is the SHA-256 of the canonical JSON of the source
    document, so two deployments can be compared by value.
    """

    config_id: str
    version: int
    roles: tuple[RolePolicyDef, ...]
    workflow: WorkflowSettingsDef
    risk_levels: tuple[str, ...]
    checksum: str
    description: str = ""
