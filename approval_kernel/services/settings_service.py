"""
SettingsService -- the org-wide ApprovalSettings document.

Responsibility:
    Reads the singleton settings row (keyed ``global``) and applies partial
    updates.  When no row exists yet, the injected defaults are returned;
    the first update materializes the row.

Architecture position:
    Kernel > Services.  Defaults are passed in by the caller (usually
    ``approval_config.default_settings()``); the kernel never reads
    configuration files itself.

Failure modes:
    - InvalidSettingsError on an unknown field or an out-of-range value.
"""

from __future__ import annotations

from dataclasses import fields, replace
from decimal import Decimal
from typing import Any

from sqlalchemy import select

from approval_kernel.domain.approval import (
    ApprovalSettings,
    AutoApproveThreshold,
    RequestType,
    validate_settings,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import InvalidSettingsError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.settings import GLOBAL_SETTINGS_KEY, ApprovalSettingsModel
from approval_kernel.services.base import BaseService

logger = get_logger("services.settings")

_SETTINGS_FIELDS = frozenset(f.name for f in fields(ApprovalSettings))


class SettingsService(BaseService[ApprovalSettingsModel]):
    """Load and update approval settings."""

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        defaults: ApprovalSettings | None = None,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._defaults = defaults or ApprovalSettings()

    def get_settings(self) -> ApprovalSettings:
        model = self._load()
        if model is None:
            return self._defaults
        return model.to_dto()

    def update_settings(self, updated_by: str = "", **changes: Any) -> ApprovalSettings:
        """Apply ``changes`` on top of the current settings and persist them.

        ``auto_approve_thresholds`` may be given as AutoApproveThreshold
        objects or as mappings with request_type/field/max_value keys.
        """
        unknown = set(changes) - _SETTINGS_FIELDS
        if unknown:
            name = sorted(unknown)[0]
            raise InvalidSettingsError(name, "unknown setting")

        if "auto_approve_thresholds" in changes:
            changes["auto_approve_thresholds"] = tuple(
                _coerce_threshold(t) for t in changes["auto_approve_thresholds"]
            )

        settings = validate_settings(replace(self.get_settings(), **changes))

        model = self._load()
        if model is None:
            model = ApprovalSettingsModel(settings_key=GLOBAL_SETTINGS_KEY)
            self.session.add(model)
        model.apply_dto(settings)
        model.updated_at = self._clock.now()
        model.updated_by = updated_by
        self.session.flush()

        logger.info(
            "approval_settings_updated",
            extra={
                "updated_by": updated_by,
                "changed_fields": sorted(changes),
                "max_approval_levels": settings.max_approval_levels,
                "escalation_days": settings.escalation_days,
            },
        )
        return settings

    def _load(self) -> ApprovalSettingsModel | None:
        return self.session.execute(
            select(ApprovalSettingsModel).where(
                ApprovalSettingsModel.settings_key == GLOBAL_SETTINGS_KEY,
            )
        ).scalar_one_or_none()


def _coerce_threshold(value: Any) -> AutoApproveThreshold:
    if isinstance(value, AutoApproveThreshold):
        return value
    try:
        return AutoApproveThreshold(
            request_type=RequestType(value["request_type"]),
            field=str(value["field"]),
            max_value=Decimal(str(value["max_value"])),
        )
    except (KeyError, TypeError, ValueError, ArithmeticError) as exc:
        raise InvalidSettingsError(
            "auto_approve_thresholds", f"malformed threshold {value!r}: {exc}",
        ) from exc
