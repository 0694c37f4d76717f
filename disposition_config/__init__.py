"""
disposition_config -- single public entrypoint for workflow configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  Returns a validated ``WorkflowConfig``; the
    bridges module turns it into kernel inputs (role policy table and
    workflow settings).

Architecture position:
    Configuration -- sits above ``disposition_kernel``.  The kernel MUST
    NEVER import from ``disposition_config``.

Invariants enforced:
    - Single entrypoint: all runtime config flows through
      ``get_active_config()``.
    - A configuration that fails validation is never returned.

Failure modes:
    - ``FileNotFoundError`` -- the configuration file does not exist.
    - ``ValueError`` -- parse or validation failures.

Audit relevance:
    Every successful call emits a ``DISPOSITION_CONFIG_TRACE`` log entry
    with the config id, version and checksum, tying each decision back to
    the configuration that scoped it.
"""

from __future__ import annotations

import logging
from pathlib import Path

from disposition_config.loader import load_config
from disposition_config.schema import WorkflowConfig
from disposition_config.validator import validate_configuration

_logger = logging.getLogger("disposition_kernel.config")

DEFAULT_CONFIG_PATH = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(path: Path | str | None = None) -> WorkflowConfig:
    """The ONLY public configuration entrypoint.

    Args:
        path: Override path to a configuration file.  Defaults to
            ``disposition_config/sets/default.yaml``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the configuration fails validation.
    """
    config_path = Path(path) if path is not None else DEFAULT_CONFIG_PATH
    config = load_config(config_path)

    validation = validate_configuration(config)
    if not validation.is_valid:
        raise ValueError(
            "Configuration validation failed:\n"
            + "\n".join(f"  - {e}" for e in validation.errors)
        )
    for warning in validation.warnings:
        _logger.warning("config_validation_warning", extra={"detail": warning})

    _logger.info(
        "DISPOSITION_CONFIG_TRACE",
        extra={
            "trace_type": "DISPOSITION_CONFIG_TRACE",
            "config_set_id": config.config_id,
            "config_set_version": config.version,
            "checksum": config.checksum,
            "role_count": len(config.roles),
            "retain_validator_for_review": config.workflow.retain_validator_for_review,
        },
    )
    return config


__all__ = ["DEFAULT_CONFIG_PATH", "WorkflowConfig", "get_active_config"]
