"""
Tests for DelegationService.

Covers:
- create_delegation(): validation of dates, self-delegation, request types
- deactivate(): idempotent
- resolve_delegate(): window, type scope, inactive, most recent wins
- listings by grantor and by receiver
"""

from datetime import date
from uuid import uuid4

import pytest

from approval_kernel.domain.approval import ALL_REQUEST_TYPES, RequestType
from approval_kernel.exceptions import DelegationNotFoundError, InvalidDelegationError


def create(service, from_id="M1", to_id="D", start="2026-01-01", end="2026-01-31", **kwargs):
    return service.create_delegation(
        from_id, f"{from_id} Name", to_id, f"{to_id} Name", start, end, **kwargs,
    )


class TestCreateDelegation:

    def test_create_with_iso_dates(self, delegation_service, deterministic_clock):
        delegation = create(delegation_service)

        assert delegation.start_date == date(2026, 1, 1)
        assert delegation.end_date == date(2026, 1, 31)
        assert delegation.request_types == ALL_REQUEST_TYPES
        assert delegation.is_active
        assert delegation.created_by == "M1"
        assert delegation.created_at == deterministic_clock.now()

    def test_single_day_window(self, delegation_service):
        delegation = create(delegation_service, start="2026-01-05", end="2026-01-05")
        assert delegation.start_date == delegation.end_date

    def test_scoped_types(self, delegation_service):
        delegation = create(delegation_service, request_types=["leave", RequestType.LOAN])
        assert delegation.request_types == (RequestType.LEAVE, RequestType.LOAN)

    def test_created_by_admin(self, delegation_service):
        delegation = create(delegation_service, created_by="ADMIN")
        assert delegation.created_by == "ADMIN"

    def test_start_after_end(self, delegation_service):
        with pytest.raises(InvalidDelegationError):
            create(delegation_service, start="2026-02-01", end="2026-01-01")

    def test_self_delegation(self, delegation_service):
        with pytest.raises(InvalidDelegationError):
            create(delegation_service, from_id="M1", to_id="M1")

    def test_bad_date(self, delegation_service):
        with pytest.raises(InvalidDelegationError):
            create(delegation_service, start="01/02/2026")

    @pytest.mark.parametrize("types", [[], ["vacation"]])
    def test_bad_request_types(self, delegation_service, types):
        with pytest.raises(InvalidDelegationError):
            create(delegation_service, request_types=types)


class TestDeactivate:

    def test_deactivate_is_idempotent(self, delegation_service):
        delegation = create(delegation_service)

        assert not delegation_service.deactivate(delegation.delegation_id).is_active
        assert not delegation_service.deactivate(delegation.delegation_id).is_active
        assert not delegation_service.get_delegation(delegation.delegation_id).is_active

    def test_unknown(self, delegation_service):
        with pytest.raises(DelegationNotFoundError):
            delegation_service.deactivate(uuid4())


class TestResolveDelegate:

    def test_defaults_to_today(self, delegation_service):
        delegation = create(delegation_service)
        resolved = delegation_service.resolve_delegate("M1", RequestType.LEAVE)
        assert resolved.delegation_id == delegation.delegation_id

    def test_outside_window(self, delegation_service):
        create(delegation_service)
        assert delegation_service.resolve_delegate(
            "M1", RequestType.LEAVE, date(2026, 2, 1),
        ) is None

    def test_type_scope(self, delegation_service):
        create(delegation_service, request_types=["loan"])
        assert delegation_service.resolve_delegate("M1", RequestType.LEAVE) is None
        assert delegation_service.resolve_delegate("M1", RequestType.LOAN) is not None

    def test_inactive_ignored(self, delegation_service):
        delegation = create(delegation_service)
        delegation_service.deactivate(delegation.delegation_id)
        assert delegation_service.resolve_delegate("M1", RequestType.LEAVE) is None

    def test_most_recent_wins(self, delegation_service, deterministic_clock):
        create(delegation_service, to_id="D")
        deterministic_clock.advance(60)
        newer = create(delegation_service, to_id="X")

        resolved = delegation_service.resolve_delegate("M1", RequestType.LEAVE)
        assert resolved.delegation_id == newer.delegation_id
        assert resolved.to_employee_id == "X"

    def test_newer_scoped_delegation_does_not_hide_older(self, delegation_service, deterministic_clock):
        older = create(delegation_service, to_id="D")
        deterministic_clock.advance(60)
        create(delegation_service, to_id="X", request_types=["loan"])

        resolved = delegation_service.resolve_delegate("M1", RequestType.LEAVE)
        assert resolved.delegation_id == older.delegation_id

    def test_only_grantor_matches(self, delegation_service):
        create(delegation_service)
        assert delegation_service.resolve_delegate("D", RequestType.LEAVE) is None


class TestListings:

    def test_by_from_and_to(self, delegation_service, deterministic_clock):
        first = create(delegation_service, from_id="M1", to_id="D")
        deterministic_clock.advance(60)
        second = create(delegation_service, from_id="M2", to_id="D")

        assert [d.delegation_id for d in delegation_service.list_by_to("D")] == [
            second.delegation_id, first.delegation_id,
        ]
        assert [d.delegation_id for d in delegation_service.list_by_from("M1")] == [
            first.delegation_id,
        ]
        assert len(delegation_service.list_all()) == 2
