"""
AuditService -- append-only audit log for approval actions.

Responsibility:
    Writes one ``ApprovalAuditLogModel`` row per action on a request and
    answers the audit queries (by request, requester, performer, action).

Architecture position:
    Kernel > Services -- imperative shell, called by ApprovalService and
    EscalationService inside their own transaction.

Invariants enforced:
    - Append-only: rows are never modified or deleted (ORM listeners on
      the model raise ImmutabilityViolationError).
    - The audit row is written in the same transaction (or SAVEPOINT) as
      the request change it describes.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID, uuid4

from sqlalchemy import select

from approval_kernel.domain.approval import (
    ApprovalAction,
    ApprovalRequest,
    AuditLogEntry,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.logging_config import get_logger
from approval_kernel.models.approval import to_json_value
from approval_kernel.models.audit_log import ApprovalAuditLogModel
from approval_kernel.services.base import BaseService

logger = get_logger("services.audit")


class AuditService(BaseService[ApprovalAuditLogModel]):
    """
    Service for recording and querying approval audit entries.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def log(
        self,
        request: ApprovalRequest,
        action: ApprovalAction,
        performed_by: str,
        performed_by_name: str,
        step: int | None = None,
        metadata: dict[str, Any] | None = None,
    ) -> AuditLogEntry:
        """Append one audit entry for ``request``."""
        model = ApprovalAuditLogModel(
            entry_id=uuid4(),
            request_id=request.request_id,
            request_type=request.request_type.value,
            employee_id=request.employee_id,
            action=ApprovalAction(action).value,
            performed_by=performed_by,
            performed_by_name=performed_by_name,
            step=step,
            entry_metadata=to_json_value(metadata or {}),
            timestamp=self._clock.now(),
        )
        self.session.add(model)
        self.session.flush()

        logger.debug(
            "approval_audit_logged",
            extra={
                "request_id": str(request.request_id),
                "action": model.action,
                "performed_by": performed_by,
                "step": step,
            },
        )
        return model.to_dto()

    def get_by_request(self, request_id: UUID) -> list[AuditLogEntry]:
        """Audit trail of one request, oldest first."""
        return self._query(
            ApprovalAuditLogModel.request_id == request_id, newest_first=False,
        )

    def get_by_employee(self, employee_id: str) -> list[AuditLogEntry]:
        """Entries for requests filed by ``employee_id``, newest first."""
        return self._query(ApprovalAuditLogModel.employee_id == employee_id)

    def get_by_performer(self, performed_by: str) -> list[AuditLogEntry]:
        """Entries for actions taken by ``performed_by``, newest first."""
        return self._query(ApprovalAuditLogModel.performed_by == performed_by)

    def get_by_action(self, action: ApprovalAction) -> list[AuditLogEntry]:
        return self._query(
            ApprovalAuditLogModel.action == ApprovalAction(action).value,
        )

    def _query(self, criterion, newest_first: bool = True) -> list[AuditLogEntry]:
        order = (
            ApprovalAuditLogModel.timestamp.desc() if newest_first
            else ApprovalAuditLogModel.timestamp.asc()
        )
        rows = self.session.execute(
            select(ApprovalAuditLogModel).where(criterion).order_by(order)
        ).scalars().all()
        return [r.to_dto() for r in rows]
