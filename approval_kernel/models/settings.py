"""
Module: approval_kernel.models.settings
Responsibility: ORM persistence for the org-wide approval settings document.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Singleton: one row, keyed ``settings_key = 'global'`` (UNIQUE).
    - Range checks mirror the YAML loader: max_approval_levels >= 1,
      escalation_days >= 0.
"""

from __future__ import annotations

from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING

from sqlalchemy import JSON, Boolean, CheckConstraint, String
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime

if TYPE_CHECKING:
    from approval_kernel.domain.approval import ApprovalSettings

GLOBAL_SETTINGS_KEY = "global"


class ApprovalSettingsModel(Base):
    """Persistent approval settings singleton."""

    __tablename__ = "approval_settings"

    __table_args__ = (
        CheckConstraint(
            "max_approval_levels >= 1",
            name="ck_approval_settings_max_levels",
        ),
        CheckConstraint(
            "escalation_days >= 0",
            name="ck_approval_settings_escalation_days",
        ),
    )

    settings_key: Mapped[str] = mapped_column(
        String(50), nullable=False, unique=True, default=GLOBAL_SETTINGS_KEY,
    )
    max_approval_levels: Mapped[int] = mapped_column(nullable=False)
    hr_always_final_level: Mapped[bool] = mapped_column(Boolean, nullable=False)
    escalation_days: Mapped[int] = mapped_column(nullable=False)
    allow_delegation: Mapped[bool] = mapped_column(Boolean, nullable=False)
    reserve_hr_slot: Mapped[bool] = mapped_column(
        Boolean, nullable=False, default=False,
    )
    # [{"request_type": "leave", "field": "days", "max_value": "1"}]
    auto_approve_thresholds: Mapped[list] = mapped_column(
        JSON, nullable=False, default=list,
    )
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_by: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    def __repr__(self) -> str:
        return (
            f"<ApprovalSettings {self.settings_key} "
            f"max={self.max_approval_levels} "
            f"escalation_days={self.escalation_days}>"
        )

    def to_dto(self) -> ApprovalSettings:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalSettings as ApprovalSettingsDTO,
            AutoApproveThreshold,
            RequestType,
        )

        thresholds = tuple(
            AutoApproveThreshold(
                request_type=RequestType(t["request_type"]),
                field=t["field"],
                max_value=Decimal(str(t["max_value"])),
            )
            for t in self.auto_approve_thresholds or ()
        )
        return ApprovalSettingsDTO(
            max_approval_levels=self.max_approval_levels,
            hr_always_final_level=self.hr_always_final_level,
            escalation_days=self.escalation_days,
            allow_delegation=self.allow_delegation,
            auto_approve_thresholds=thresholds,
            reserve_hr_slot=self.reserve_hr_slot,
        )

    def apply_dto(self, dto: ApprovalSettings) -> None:
        """Copy every settings field from the DTO onto this row."""
        self.max_approval_levels = dto.max_approval_levels
        self.hr_always_final_level = dto.hr_always_final_level
        self.escalation_days = dto.escalation_days
        self.allow_delegation = dto.allow_delegation
        self.reserve_hr_slot = dto.reserve_hr_slot
        self.auto_approve_thresholds = [
            {
                "request_type": t.request_type.value,
                "field": t.field,
                "max_value": str(t.max_value),
            }
            for t in dto.auto_approve_thresholds
        ]
