"""
approval_config -- YAML-backed approval settings.

Responsibility:
    Provides the packaged default ``ApprovalSettings`` and the loader for
    site-specific settings files.  Runtime code obtains defaults through
    ``default_settings()`` and hands them to ``SettingsService``.

Architecture position:
    Configuration -- sits above ``approval_kernel``.  The kernel MUST NEVER
    import from ``approval_config``.

Failure modes:
    - ``FileNotFoundError`` -- settings file missing.
    - ``InvalidSettingsError`` -- a value is malformed or out of range.
"""

from __future__ import annotations

import logging
from pathlib import Path

from approval_config.loader import (
    load_settings_file,
    load_yaml_file,
    parse_settings,
    parse_threshold,
)
from approval_kernel.domain.approval import ApprovalSettings

_logger = logging.getLogger("approval_kernel.config")

# Packaged configuration sets directory
_DEFAULT_CONFIG_DIR = Path(__file__).parent / "sets"
DEFAULT_SETTINGS_FILE = _DEFAULT_CONFIG_DIR / "default.yaml"


def default_settings() -> ApprovalSettings:
    """Settings from the packaged ``sets/default.yaml``."""
    settings = load_settings_file(DEFAULT_SETTINGS_FILE)
    _logger.debug(
        "approval_settings_loaded",
        extra={
            "path": str(DEFAULT_SETTINGS_FILE),
            "max_approval_levels": settings.max_approval_levels,
            "escalation_days": settings.escalation_days,
        },
    )
    return settings


__all__ = [
    "DEFAULT_SETTINGS_FILE",
    "default_settings",
    "load_settings_file",
    "load_yaml_file",
    "parse_settings",
    "parse_threshold",
]
