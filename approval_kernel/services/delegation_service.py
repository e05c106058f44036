"""
DelegationService -- temporary handoff of approval authority.

Responsibility:
    CRUD over delegations and ``resolve_delegate()``: given an approver, a
    request type and a date, find who (if anyone) currently acts for them.

Architecture position:
    Kernel > Services -- imperative shell.  Consulted by ApprovalService
    before the RBAC validator runs.

Invariants enforced:
    - ``start_date <= end_date`` and ``from != to`` (checked here and by DB
      constraints).
    - Both window ends are inclusive.
    - Precedence: when several active delegations from the same approver
      cover the date and type, the most recently created one wins.

Failure modes:
    - InvalidDelegationError on a bad window, self-delegation, or an empty
      or unknown request type list.
    - DelegationNotFoundError on an unknown id.
"""

from __future__ import annotations

from collections.abc import Iterable
from datetime import date, datetime
from uuid import UUID, uuid4

from sqlalchemy import select

from approval_kernel.domain.approval import (
    ALL_REQUEST_TYPES,
    Delegation,
    RequestType,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.exceptions import DelegationNotFoundError, InvalidDelegationError
from approval_kernel.logging_config import get_logger
from approval_kernel.models.delegation import DelegationModel
from approval_kernel.services.base import BaseService

logger = get_logger("services.delegation")


class DelegationService(BaseService[DelegationModel]):
    """Manage and resolve approval delegations."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def create_delegation(
        self,
        from_employee_id: str,
        from_employee_name: str,
        to_employee_id: str,
        to_employee_name: str,
        start_date: date | str,
        end_date: date | str,
        request_types: str | Iterable[RequestType | str] = ALL_REQUEST_TYPES,
        created_by: str = "",
    ) -> Delegation:
        """Create an active delegation.

        Dates may be ``date`` objects or ISO ``YYYY-MM-DD`` strings.
        """
        start = _parse_date(start_date, "start_date")
        end = _parse_date(end_date, "end_date")
        if start > end:
            raise InvalidDelegationError(
                f"start_date {start.isoformat()} is after end_date {end.isoformat()}"
            )
        if from_employee_id == to_employee_id:
            raise InvalidDelegationError("an approver cannot delegate to themselves")

        dto = Delegation(
            delegation_id=uuid4(),
            from_employee_id=from_employee_id,
            from_employee_name=from_employee_name,
            to_employee_id=to_employee_id,
            to_employee_name=to_employee_name,
            start_date=start,
            end_date=end,
            request_types=_parse_request_types(request_types),
            is_active=True,
            created_at=self._clock.now(),
            created_by=created_by or from_employee_id,
        )
        model = DelegationModel.from_dto(dto)
        self.session.add(model)
        self.session.flush()

        logger.info(
            "delegation_created",
            extra={
                "delegation_id": str(dto.delegation_id),
                "from_employee_id": from_employee_id,
                "to_employee_id": to_employee_id,
                "start_date": start.isoformat(),
                "end_date": end.isoformat(),
            },
        )
        return model.to_dto()

    def get_delegation(self, delegation_id: UUID) -> Delegation:
        return self._load(delegation_id).to_dto()

    def deactivate(self, delegation_id: UUID) -> Delegation:
        """Switch a delegation off. Deactivating twice is a no-op."""
        model = self._load(delegation_id)
        if model.is_active:
            model.is_active = False
            self.session.flush()
            logger.info(
                "delegation_deactivated",
                extra={"delegation_id": str(delegation_id)},
            )
        return model.to_dto()

    def list_by_from(self, from_employee_id: str) -> list[Delegation]:
        """Delegations granted by an approver, newest first."""
        return self._list(DelegationModel.from_employee_id == from_employee_id)

    def list_by_to(self, to_employee_id: str) -> list[Delegation]:
        """Delegations received by an employee, newest first."""
        return self._list(DelegationModel.to_employee_id == to_employee_id)

    def list_all(self) -> list[Delegation]:
        return self._list()

    def resolve_delegate(
        self,
        approver_employee_id: str,
        request_type: RequestType,
        on_date: date | None = None,
    ) -> Delegation | None:
        """Active delegation from ``approver_employee_id`` covering the date and type.

        ``on_date`` defaults to today on the injected clock.
        """
        if on_date is None:
            on_date = self._clock.today()
        elif isinstance(on_date, datetime):
            on_date = on_date.date()

        rows = self.session.execute(
            select(DelegationModel)
            .where(
                DelegationModel.from_employee_id == approver_employee_id,
                DelegationModel.is_active.is_(True),
                DelegationModel.start_date <= on_date,
                DelegationModel.end_date >= on_date,
            )
            .order_by(DelegationModel.created_at.desc())
        ).scalars().all()

        for row in rows:
            delegation = row.to_dto()
            if delegation.covers(request_type, on_date):
                return delegation
        return None

    def _load(self, delegation_id: UUID) -> DelegationModel:
        model = self.session.execute(
            select(DelegationModel).where(
                DelegationModel.delegation_id == delegation_id,
            )
        ).scalar_one_or_none()
        if model is None:
            raise DelegationNotFoundError(str(delegation_id))
        return model

    def _list(self, *criteria) -> list[Delegation]:
        rows = self.session.execute(
            select(DelegationModel)
            .where(*criteria)
            .order_by(DelegationModel.created_at.desc())
        ).scalars().all()
        return [r.to_dto() for r in rows]


def _parse_date(value: date | str, field_name: str) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise InvalidDelegationError(
            f"{field_name} must be an ISO date (YYYY-MM-DD), got {value!r}"
        ) from exc


def _parse_request_types(
    value: str | Iterable[RequestType | str],
) -> str | tuple[RequestType, ...]:
    if value == ALL_REQUEST_TYPES:
        return ALL_REQUEST_TYPES
    if isinstance(value, str):
        value = [value]
    try:
        types = tuple(dict.fromkeys(RequestType(t) for t in value))
    except ValueError as exc:
        raise InvalidDelegationError(str(exc)) from exc
    if not types:
        raise InvalidDelegationError("request_types must be 'all' or non-empty")
    return types
