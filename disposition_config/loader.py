"""
Configuration Loader (``disposition_config.loader``).

Responsibility
--------------
Loads a YAML configuration file and parses it into the frozen
``disposition_config.schema`` types.  Runtime code does not call this
directly; the entry point is ``disposition_config.get_active_config()``.

Invariants enforced
-------------------
* Parse errors raise ``ValueError`` or ``KeyError`` with descriptive
  messages; required fields have no silent defaults.
* ``compute_checksum`` is deterministic for identical documents.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing required keys  -> ``KeyError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from pathlib import Path
from typing import Any

import yaml

from disposition_config.schema import RolePolicyDef, WorkflowConfig, WorkflowSettingsDef


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _str_tuple(value: Any, field_name: str) -> tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str) or not isinstance(value, (list, tuple)):
        raise ValueError(f"{field_name} must be a list, got {value!r}")
    return tuple(str(v) for v in value)


def parse_role_policy(data: dict[str, Any]) -> RolePolicyDef:
    """Parse one role policy row."""
    return RolePolicyDef(
        role=data["role"],
        report_type=str(data["report_type"]).upper(),
        supervisory=bool(data["supervisory"]),
        queues=_str_tuple(data["queues"], "queues"),
        optional_filters=_str_tuple(data.get("optional_filters"), "optional_filters"),
    )


def parse_workflow_settings(data: dict[str, Any]) -> WorkflowSettingsDef:
    defaults = WorkflowSettingsDef()
    edges = data.get("age_bucket_hours", defaults.age_bucket_hours)
    return WorkflowSettingsDef(
        default_deadline_hours=int(
            data.get("default_deadline_hours", defaults.default_deadline_hours)
        ),
        retain_validator_for_review=bool(
            data.get("retain_validator_for_review", defaults.retain_validator_for_review)
        ),
        default_page_size=int(data.get("default_page_size", defaults.default_page_size)),
        max_page_size=int(data.get("max_page_size", defaults.max_page_size)),
        age_bucket_hours=tuple(int(h) for h in edges),
    )


def parse_config(data: dict[str, Any]) -> WorkflowConfig:
    """Parse a whole configuration document."""
    roles = data.get("roles")
    if not roles:
        raise ValueError("Configuration must declare at least one role")
    return WorkflowConfig(
        config_id=str(data["config_id"]),
        version=int(data["version"]),
        description=str(data.get("description", "")),
        roles=tuple(parse_role_policy(r) for r in roles),
        workflow=parse_workflow_settings(data.get("workflow") or {}),
        risk_levels=_str_tuple(data.get("risk_levels", ["low", "medium", "high"]), "risk_levels"),
        checksum=compute_checksum(data),
    )


def load_config(path: Path) -> WorkflowConfig:
    return parse_config(load_yaml_file(path))


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization of ``data``."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
