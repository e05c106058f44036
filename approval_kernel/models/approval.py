"""
Module: approval_kernel.models.approval
Responsibility: ORM persistence for approval requests.

Architecture position: Kernel > Models.  May import from db/base.py and the
    pure domain types (for to_dto/from_dto conversion only).

Invariants enforced:
    - Lifecycle: DB check constraint limits status values; the RequestStore
      refuses writes to terminal rows in its UPDATE ... WHERE clause.
    - Optimistic concurrency: ``version`` starts at 1 and is bumped by every
      RequestStore write.
    - Chain snapshot: ``approval_chain`` is stored as a JSON copy of the
      approver records taken at build time.

Failure modes:
    - IntegrityError on duplicate request_id or out-of-range status/step.
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from approval_kernel.db.base import Base, UTCDateTime, UUIDString

if TYPE_CHECKING:
    from approval_kernel.domain.approval import (
        ApprovalChainStep,
        ApprovalRequest,
        HistoryEntry,
    )


class ApprovalRequestModel(Base):
    """Persistent approval request with its embedded chain and history.

    Contract:
        Terminal statuses (approved, rejected, cancelled) are never changed
        once set.  All writes after INSERT go through RequestStore.update().
    """

    __tablename__ = "approval_requests"

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'in_progress', 'approved', 'rejected', "
            "'cancelled', 'escalated')",
            name="ck_approval_requests_valid_status",
        ),
        CheckConstraint(
            "request_type IN ('leave', 'overtime', 'loan')",
            name="ck_approval_requests_valid_type",
        ),
        CheckConstraint(
            "current_step >= 0",
            name="ck_approval_requests_current_step",
        ),
        CheckConstraint(
            "version >= 1",
            name="ck_approval_requests_version",
        ),
        # Escalation scan: open requests oldest first
        Index("ix_approval_requests_status_updated", "status", "updated_at"),
        Index("ix_approval_requests_employee", "employee_id", "created_at"),
        Index("ix_approval_requests_type", "request_type", "created_at"),
        Index("ix_approval_requests_escalated", "status", "escalated_at"),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(), nullable=False, unique=True,
    )
    request_type: Mapped[str] = mapped_column(String(20), nullable=False)
    employee_id: Mapped[str] = mapped_column(String(100), nullable=False)
    employee_name: Mapped[str] = mapped_column(String(200), nullable=False)
    department_id: Mapped[str] = mapped_column(
        String(100), nullable=False, default="",
    )
    request_data: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)
    approval_chain: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    current_step: Mapped[int] = mapped_column(nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    history: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    source_request_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    created_by: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    created_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime(), nullable=False)
    escalated_at: Mapped[datetime | None] = mapped_column(
        UTCDateTime(), nullable=True,
    )
    version: Mapped[int] = mapped_column(nullable=False, default=1)

    def __repr__(self) -> str:
        return (
            f"<ApprovalRequest {self.request_id} "
            f"{self.request_type}/{self.employee_id} "
            f"status={self.status} step={self.current_step} v{self.version}>"
        )

    def to_dto(self) -> ApprovalRequest:
        """Convert ORM model to frozen domain DTO."""
        from approval_kernel.domain.approval import (
            ApprovalRequest as ApprovalRequestDTO,
            RequestStatus,
            RequestType,
        )

        return ApprovalRequestDTO(
            request_id=self.request_id,
            request_type=RequestType(self.request_type),
            employee_id=self.employee_id,
            employee_name=self.employee_name,
            department_id=self.department_id,
            request_data=dict(self.request_data or {}),
            approval_chain=tuple(
                chain_step_from_json(s) for s in self.approval_chain or ()
            ),
            current_step=self.current_step,
            status=RequestStatus(self.status),
            history=tuple(history_from_json(h) for h in self.history or ()),
            source_request_id=self.source_request_id,
            created_by=self.created_by,
            created_at=self.created_at,
            updated_at=self.updated_at,
            escalated_at=self.escalated_at,
            version=self.version,
        )

    @classmethod
    def from_dto(cls, dto: ApprovalRequest) -> ApprovalRequestModel:
        """Create ORM model from domain DTO."""
        return cls(
            request_id=dto.request_id,
            request_type=dto.request_type.value,
            employee_id=dto.employee_id,
            employee_name=dto.employee_name,
            department_id=dto.department_id,
            request_data=to_json_value(dto.request_data),
            approval_chain=chain_to_json(dto.approval_chain),
            current_step=dto.current_step,
            status=dto.status.value,
            history=history_to_json(dto.history),
            source_request_id=dto.source_request_id,
            created_by=dto.created_by,
            created_at=dto.created_at,
            updated_at=dto.updated_at or dto.created_at,
            escalated_at=dto.escalated_at,
            version=dto.version,
        )


# =============================================================================
# JSON (de)serialization of the embedded chain and history
# =============================================================================


def to_json_value(value: Any) -> Any:
    """Make request data JSON-safe: Decimal -> str, date -> ISO, Enum -> value."""
    if isinstance(value, dict):
        return {str(k): to_json_value(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [to_json_value(v) for v in value]
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, UUID):
        return str(value)
    if isinstance(value, Enum):
        return value.value
    return value


def _dt_to_json(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


def _dt_from_json(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def chain_step_to_json(step: ApprovalChainStep) -> dict[str, Any]:
    return {
        "approver_employee_id": step.approver_employee_id,
        "approver_name": step.approver_name,
        "approver_job_title": step.approver_job_title,
        "level": step.level,
        "department_id": step.department_id,
        "department_name": step.department_name,
        "status": step.status.value,
        "action_date": _dt_to_json(step.action_date),
        "notes": step.notes,
        "delegated_to": step.delegated_to,
        "delegated_to_name": step.delegated_to_name,
    }


def chain_step_from_json(data: dict[str, Any]) -> ApprovalChainStep:
    from approval_kernel.domain.approval import ApprovalChainStep, StepStatus

    return ApprovalChainStep(
        approver_employee_id=data["approver_employee_id"],
        approver_name=data.get("approver_name", ""),
        approver_job_title=data.get("approver_job_title", ""),
        level=int(data.get("level", 0)),
        department_id=data.get("department_id", ""),
        department_name=data.get("department_name", ""),
        status=StepStatus(data.get("status", "pending")),
        action_date=_dt_from_json(data.get("action_date")),
        notes=data.get("notes", ""),
        delegated_to=data.get("delegated_to"),
        delegated_to_name=data.get("delegated_to_name"),
    )


def chain_to_json(chain: tuple[ApprovalChainStep, ...]) -> list[dict[str, Any]]:
    return [chain_step_to_json(s) for s in chain]


def history_entry_to_json(entry: HistoryEntry) -> dict[str, Any]:
    return {
        "step": entry.step,
        "action": entry.action.value,
        "performed_by": entry.performed_by,
        "performed_by_name": entry.performed_by_name,
        "timestamp": _dt_to_json(entry.timestamp),
        "notes": entry.notes,
        "previous_status": entry.previous_status.value,
        "new_status": entry.new_status.value,
    }


def history_from_json(data: dict[str, Any]) -> HistoryEntry:
    from approval_kernel.domain.approval import (
        ApprovalAction,
        HistoryEntry,
        RequestStatus,
    )

    return HistoryEntry(
        step=int(data["step"]),
        action=ApprovalAction(data["action"]),
        performed_by=data["performed_by"],
        performed_by_name=data.get("performed_by_name", ""),
        timestamp=_dt_from_json(data["timestamp"]),
        notes=data.get("notes", ""),
        previous_status=RequestStatus(data["previous_status"]),
        new_status=RequestStatus(data["new_status"]),
    )


def history_to_json(history: tuple[HistoryEntry, ...]) -> list[dict[str, Any]]:
    return [history_entry_to_json(h) for h in history]
