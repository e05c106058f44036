"""
Settings Loader (``approval_config.loader``).

Responsibility
--------------
Loads an approval settings YAML file and parses it into a validated,
frozen ``ApprovalSettings``.

Architecture position
---------------------
**Config layer** -- sits above ``approval_kernel``.  The kernel never
imports from here; callers pass the loaded settings into
``SettingsService(defaults=...)``.

Invariants enforced
-------------------
* Every parse or range error raises ``InvalidSettingsError`` naming the
  offending field; there are no silent fallbacks for malformed values.
* Missing keys take the ``ApprovalSettings`` defaults.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Bad values  -> ``InvalidSettingsError``.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import fields
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from approval_kernel.domain.approval import (
    ApprovalSettings,
    AutoApproveThreshold,
    RequestType,
    validate_settings,
)
from approval_kernel.exceptions import InvalidSettingsError

SETTINGS_ROOT_KEY = "approval_settings"

_INT_FIELDS = ("max_approval_levels", "escalation_days")
_BOOL_FIELDS = (
    "hr_always_final_level",
    "allow_delegation",
    "reserve_hr_slot",
)
_KNOWN_FIELDS = frozenset(f.name for f in fields(ApprovalSettings))


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path, encoding="utf-8") as f:
        return yaml.safe_load(f) or {}


def load_settings_file(path: Path | str) -> ApprovalSettings:
    """Load and validate settings from a YAML file.

    The file holds either an ``approval_settings:`` mapping or the
    settings keys at top level.
    """
    data = load_yaml_file(Path(path))
    if SETTINGS_ROOT_KEY in data:
        data = data[SETTINGS_ROOT_KEY] or {}
    return parse_settings(data)


def parse_settings(data: Mapping[str, Any]) -> ApprovalSettings:
    """Build a validated ``ApprovalSettings`` from a plain mapping."""
    if not isinstance(data, Mapping):
        raise InvalidSettingsError(
            SETTINGS_ROOT_KEY, f"expected a mapping, got {type(data).__name__}",
        )

    unknown = set(data) - _KNOWN_FIELDS
    if unknown:
        raise InvalidSettingsError(sorted(unknown)[0], "unknown setting")

    kwargs: dict[str, Any] = {}

    for name in _INT_FIELDS:
        if name in data:
            value = data[name]
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidSettingsError(name, f"must be an integer, got {value!r}")
            kwargs[name] = value

    for name in _BOOL_FIELDS:
        if name in data:
            value = data[name]
            if not isinstance(value, bool):
                raise InvalidSettingsError(name, f"must be true or false, got {value!r}")
            kwargs[name] = value

    if "auto_approve_thresholds" in data:
        kwargs["auto_approve_thresholds"] = tuple(
            parse_threshold(t) for t in data["auto_approve_thresholds"] or ()
        )

    return validate_settings(ApprovalSettings(**kwargs))


def parse_threshold(data: Mapping[str, Any]) -> AutoApproveThreshold:
    """Parse one ``{request_type, field, max_value}`` entry."""
    field = "auto_approve_thresholds"
    if not isinstance(data, Mapping):
        raise InvalidSettingsError(field, f"threshold must be a mapping, got {data!r}")

    missing = [k for k in ("request_type", "field", "max_value") if k not in data]
    if missing:
        raise InvalidSettingsError(field, f"threshold missing keys: {missing}")

    try:
        request_type = RequestType(data["request_type"])
    except ValueError:
        raise InvalidSettingsError(
            field, f"unknown request type {data['request_type']!r}",
        ) from None

    raw_max = data["max_value"]
    if isinstance(raw_max, bool):
        raise InvalidSettingsError(field, f"max_value must be numeric, got {raw_max!r}")
    try:
        max_value = Decimal(str(raw_max))
    except InvalidOperation:
        raise InvalidSettingsError(
            field, f"max_value must be numeric, got {raw_max!r}",
        ) from None
    if not max_value.is_finite():
        raise InvalidSettingsError(field, f"max_value must be finite, got {raw_max!r}")

    return AutoApproveThreshold(
        request_type=request_type,
        field=str(data["field"]),
        max_value=max_value,
    )
