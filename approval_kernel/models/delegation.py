"""
Module: approval_kernel.models.delegation
Responsibility: ORM persistence for approval delegations.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Inclusive date window: CHECK(start_date <= end_date).
    - No self-delegation: CHECK(from_employee_id <> to_employee_id).
    - Lookup indexes on (from_employee_id, is_active) for resolution and on
      to_employee_id for the delegate's own listing.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, Boolean, CheckConstraint, Date, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from approval_kernel.domain.approval import Delegation


class DelegationModel(Base):
    """Persistent delegation of one approver's authority to another."""

    __tablename__ = "approval_delegations"

    __table_args__ = (
        CheckConstraint(
            "start_date <= end_date",
            name="ck_approval_delegations_date_range",
        ),
        CheckConstraint(
            "from_employee_id <> to_employee_id",
            name="ck_approval_delegations_not_self",
        ),
        Index("ix_approval_delegations_from_active", "from_employee_id", "is_active"),
        Index("ix_approval_delegations_to", "to_employee_id"),
    )

    delegation_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    from_employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    from_employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    to_employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    to_employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    # "all" or a list of request type values
    request_types: Mapped[Any] = mapped_column(JSON, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default="")

    def __repr__(self) -> str:
        return (
            f"<Delegation {self.delegation_id} "
            f"{self.from_employee_id}->{self.to_employee_id} "
            f"{self.start_date}..{self.end_date} active={self.is_active}>"
        )

    def to_dto(self) -> Delegation:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ALL_REQUEST_TYPES,
            Delegation as DelegationDTO,
            RequestType,
        )

        if self.request_types == ALL_REQUEST_TYPES:
            request_types = ALL_REQUEST_TYPES
        else:
            request_types = tuple(RequestType(t) for t in self.request_types)

        return DelegationDTO(
            delegation_id=self.delegation_id,
            from_employee_id=self.from_employee_id,
            from_employee_name=self.from_employee_name,
            to_employee_id=self.to_employee_id,
            to_employee_name=self.to_employee_name,
            start_date=self.start_date,
            end_date=self.end_date,
            request_types=request_types,
            is_active=self.is_active,
            created_at=self.created_at,
            created_by=self.created_by,
        )

    @classmethod
    def from_dto(cls, dto: Delegation) -> DelegationModel:
        """Create ORM model from domain DTO."""
        from approval_kernel.domain.approval import ALL_REQUEST_TYPES

        if dto.request_types == ALL_REQUEST_TYPES:
            request_types = ALL_REQUEST_TYPES
        else:
            request_types = [t.value for t in dto.request_types]

        return cls(
            delegation_id=dto.delegation_id,
            from_employee_id=dto.from_employee_id,
            from_employee_name=dto.from_employee_name,
            to_employee_id=dto.to_employee_id,
            to_employee_name=dto.to_employee_name,
            start_date=dto.start_date,
            end_date=dto.end_date,
            request_types=request_types,
            is_active=dto.is_active,
            created_at=dto.created_at,
            created_by=dto.created_by,
        )
