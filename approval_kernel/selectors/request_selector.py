"""
Module: approval_kernel.selectors.request_selector
Responsibility: Read-only queries over approval requests: by id, requester,
    type, status, the escalation scan, the escalated list and the
    approver inbox.
Architecture position: Kernel > Selectors.  Read side of RequestStore.

Invariants enforced:
    - Read-only: no add/flush/commit.
    - Every method returns frozen ``ApprovalRequest`` DTOs.
    - The escalation scan orders by ``updated_at`` ascending (oldest first)
      and uses the (status, updated_at) index.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from approval_kernel.domain.approval import (
    ACTIONABLE_REQUEST_STATUSES,
    OPEN_REQUEST_STATUSES,
    ApprovalRequest,
    RequestStatus,
    RequestType,
)
from approval_kernel.models.approval import ApprovalRequestModel
from approval_kernel.selectors.base import BaseSelector


class RequestSelector(BaseSelector[ApprovalRequestModel]):
    """Query approval requests as immutable DTOs."""

    def get(self, request_id: UUID) -> ApprovalRequest | None:
        model = self.session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.request_id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        return model.to_dto() if model is not None else None

    def list_by_employee(self, employee_id: str) -> list[ApprovalRequest]:
        """Requester's own requests, newest first."""
        return self._list(
            ApprovalRequestModel.employee_id == employee_id,
        )

    def list_by_type(self, request_type: RequestType) -> list[ApprovalRequest]:
        return self._list(
            ApprovalRequestModel.request_type == RequestType(request_type).value,
        )

    def list_by_status(self, status: RequestStatus) -> list[ApprovalRequest]:
        return self._list(
            ApprovalRequestModel.status == RequestStatus(status).value,
        )

    def list_all(self) -> list[ApprovalRequest]:
        return self._list()

    def list_stale(self, cutoff: datetime) -> list[ApprovalRequest]:
        """Open requests not updated since ``cutoff``, oldest first."""
        rows = self.session.execute(
            select(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.status.in_(_values(OPEN_REQUEST_STATUSES)),
                ApprovalRequestModel.updated_at <= cutoff,
            )
            .order_by(
                ApprovalRequestModel.updated_at.asc(),
                ApprovalRequestModel.created_at.asc(),
            )
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def list_escalated(self) -> list[ApprovalRequest]:
        """Requests waiting on admin action, most recent escalation first."""
        rows = self.session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.status == RequestStatus.ESCALATED.value)
            .order_by(ApprovalRequestModel.escalated_at.desc())
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def list_actionable(
        self,
        request_type: RequestType | None = None,
    ) -> list[ApprovalRequest]:
        """Pending, in-progress and escalated requests, newest first.

        The chain lives in a JSON column, so filtering by approver happens
        on the returned DTOs.
        """
        stmt = select(ApprovalRequestModel).where(
            ApprovalRequestModel.status.in_(_values(ACTIONABLE_REQUEST_STATUSES)),
        )
        if request_type is not None:
            stmt = stmt.where(
                ApprovalRequestModel.request_type == RequestType(request_type).value,
            )
        rows = self.session.execute(
            stmt.order_by(ApprovalRequestModel.created_at.desc())
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [r.to_dto() for r in rows]

    def _list(self, *criteria) -> list[ApprovalRequest]:
        rows = self.session.execute(
            select(ApprovalRequestModel)
            .where(*criteria)
            .order_by(ApprovalRequestModel.created_at.desc())
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [r.to_dto() for r in rows]


def _values(statuses: Iterable[RequestStatus]) -> list[str]:
    return sorted(s.value for s in statuses)
