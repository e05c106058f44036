"""
RequestStore -- write path for approval requests.

Responsibility:
    Inserts new requests and applies every later change through a single
    guarded UPDATE.  Reads used by the write path (``get``) live here too;
    list queries belong to ``RequestSelector``.

Architecture position:
    Kernel > Services -- imperative shell.

Invariants enforced:
    - Optimistic concurrency: ``update()`` issues
      ``UPDATE ... WHERE request_id = :id AND version = :expected
      AND status NOT IN (terminal)`` and bumps ``version``.  A human action
      racing the escalation batch therefore loses cleanly instead of
      overwriting.
    - Terminal immutability: approved/rejected/cancelled rows never match
      the UPDATE.

Failure modes:
    - ApprovalNotFoundError: no row for the id.
    - RequestClosedError: the row is terminal.
    - OptimisticLockError: the row's version moved since it was read.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import select, update

from approval_kernel.domain.approval import (
    TERMINAL_REQUEST_STATUSES,
    ApprovalRequest,
    DenialReason,
    RequestStatus,
)
from approval_kernel.exceptions import (
    ApprovalNotFoundError,
    OptimisticLockError,
    RequestClosedError,
)
from approval_kernel.logging_config import get_logger
from approval_kernel.models.approval import (
    ApprovalRequestModel,
    chain_to_json,
    history_to_json,
    to_json_value,
)
from approval_kernel.services.base import BaseService

logger = get_logger("services.request_store")

_TERMINAL_VALUES = sorted(s.value for s in TERMINAL_REQUEST_STATUSES)

# Domain field name -> converter to the column value
_UPDATABLE_FIELDS = {
    "status": lambda v: RequestStatus(v).value,
    "current_step": int,
    "approval_chain": chain_to_json,
    "history": history_to_json,
    "request_data": to_json_value,
    "updated_at": lambda v: v,
    "escalated_at": lambda v: v,
}


class RequestStore(BaseService[ApprovalRequestModel]):
    """Persist approval requests with version-checked updates."""

    def create(self, request: ApprovalRequest) -> ApprovalRequest:
        """INSERT a new request at version 1."""
        model = ApprovalRequestModel.from_dto(request)
        model.version = 1
        self.session.add(model)
        self.session.flush()
        return model.to_dto()

    def get(self, request_id: UUID) -> ApprovalRequest:
        """
        Raises:
            ApprovalNotFoundError: If no request has this id.
        """
        model = self._load(request_id)
        if model is None:
            raise ApprovalNotFoundError(str(request_id))
        return model.to_dto()

    def update(
        self,
        request_id: UUID,
        expected_version: int,
        **fields: Any,
    ) -> ApprovalRequest:
        """Apply ``fields`` if the row is still at ``expected_version`` and open.

        Args:
            request_id: Request to change.
            expected_version: Version the caller read.
            **fields: Any of status, current_step, approval_chain, history,
                request_data, updated_at, escalated_at.

        Returns:
            The request as stored after the write.
        """
        unknown = set(fields) - set(_UPDATABLE_FIELDS)
        if unknown:
            raise ValueError(f"Not updatable on a request: {sorted(unknown)}")

        values = {name: _UPDATABLE_FIELDS[name](v) for name, v in fields.items()}
        values["version"] = ApprovalRequestModel.version + 1

        result = self.session.execute(
            update(ApprovalRequestModel)
            .where(
                ApprovalRequestModel.request_id == request_id,
                ApprovalRequestModel.version == expected_version,
                ApprovalRequestModel.status.not_in(_TERMINAL_VALUES),
            )
            .values(**values)
            .execution_options(synchronize_session=False)
        )

        if result.rowcount != 1:
            self._raise_write_conflict(request_id, expected_version)

        stored = self.get(request_id)
        logger.debug(
            "approval_request_updated",
            extra={
                "request_id": str(request_id),
                "version": stored.version,
                "status": stored.status.value,
                "current_step": stored.current_step,
            },
        )
        return stored

    def save(self, request: ApprovalRequest) -> ApprovalRequest:
        """Write the mutable fields of ``request``; its ``version`` is the expected one."""
        return self.update(
            request.request_id,
            request.version,
            status=request.status,
            current_step=request.current_step,
            approval_chain=request.approval_chain,
            history=request.history,
            updated_at=request.updated_at,
            escalated_at=request.escalated_at,
        )

    def _load(self, request_id: UUID) -> ApprovalRequestModel | None:
        return self.session.execute(
            select(ApprovalRequestModel)
            .where(ApprovalRequestModel.request_id == request_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def _raise_write_conflict(self, request_id: UUID, expected_version: int) -> None:
        current = self._load(request_id)
        if current is None:
            raise ApprovalNotFoundError(str(request_id))

        if RequestStatus(current.status) in TERMINAL_REQUEST_STATUSES:
            raise RequestClosedError(
                f"Request is already {current.status}",
                denial=DenialReason.REQUEST_CLOSED.value,
                request_id=str(request_id),
            )

        logger.warning(
            "approval_request_version_conflict",
            extra={
                "request_id": str(request_id),
                "expected_version": expected_version,
                "actual_version": current.version,
            },
        )
        raise OptimisticLockError(
            "ApprovalRequest", str(request_id), expected_version,
        )
