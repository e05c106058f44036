"""
Module: approval_kernel.models.audit_log
Responsibility: ORM persistence for the approval audit log.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: ORM listeners reject every UPDATE and DELETE.

Failure modes:
    - ImmutabilityViolationError on any UPDATE/DELETE attempt.

Audit relevance:
    Every create, approve, reject, cancel, escalate and admin override on an
    approval request produces exactly one row here, independent of the
    history embedded in the request itself.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING
from uuid import UUID

from sqlalchemy import JSON, Index, String, event
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString
from approval_kernel.exceptions import ImmutabilityViolationError

if TYPE_CHECKING:
    from approval_kernel.domain.approval import AuditLogEntry


class ApprovalAuditLogModel(Base):
    """One audit record per action on an approval request. Append-only."""

    __tablename__ = "approval_audit_log"

    __table_args__ = (
        Index("ix_approval_audit_request", "request_id", "timestamp"),
        Index("ix_approval_audit_employee", "employee_id", "timestamp"),
        Index("ix_approval_audit_performer", "performed_by", "timestamp"),
        Index("ix_approval_audit_action", "action", "timestamp"),
    )

    entry_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    request_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    request_type: Mapped[str] = mapped_column(String(20), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    action: Mapped[str] = mapped_column(String(30), nullable=False)
    performed_by: Mapped[str] = mapped_column(String(100), nullable=False)
    performed_by_name: Mapped[str] = mapped_column(String(200), nullable=False)
    step: Mapped[int | None] = mapped_column(nullable=True)
    # "metadata" is reserved on declarative classes
    entry_metadata: Mapped[dict] = mapped_column(
        "metadata", JSON, nullable=False, default=dict,
    )
    timestamp: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<ApprovalAuditLog {self.entry_id} "
            f"{self.action} request={self.request_id} by={self.performed_by}>"
        )

    def to_dto(self) -> AuditLogEntry:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalAction,
            AuditLogEntry as AuditLogEntryDTO,
            RequestType,
        )

        return AuditLogEntryDTO(
            entry_id=self.entry_id,
            request_id=self.request_id,
            request_type=RequestType(self.request_type),
            employee_id=self.employee_id,
            action=ApprovalAction(self.action),
            performed_by=self.performed_by,
            performed_by_name=self.performed_by_name,
            step=self.step,
            metadata=dict(self.entry_metadata or {}),
            timestamp=self.timestamp,
        )


# =============================================================================
# ORM-Level Immutability (Append-Only)
# =============================================================================


@event.listens_for(ApprovalAuditLogModel, "before_update")
def prevent_audit_update(mapper, connection, target):
    """Prevent updates to audit log records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAuditLog",
        entity_id=str(target.entry_id),
        reason="Audit log entries are immutable -- cannot modify",
    )


@event.listens_for(ApprovalAuditLogModel, "before_delete")
def prevent_audit_delete(mapper, connection, target):
    """Prevent deletion of audit log records."""
    raise ImmutabilityViolationError(
        entity_type="ApprovalAuditLog",
        entity_id=str(target.entry_id),
        reason="Audit log entries are immutable -- cannot delete",
    )
