"""
Optimistic concurrency on approval requests.

A human action and the escalation batch can both read the same request and
write it back.  The version column turns the second write into an
OptimisticLockError instead of a lost update.

Covers:
- RequestStore.update(): version bump, stale version, terminal rows
- Approval and escalation computed from the same read
"""

from dataclasses import replace
from uuid import uuid4

import pytest

from approval_engines.transitions import apply_approval, apply_escalation
from approval_kernel.domain.approval import RequestStatus, StepStatus
from approval_kernel.exceptions import (
    ApprovalNotFoundError,
    OptimisticLockError,
    RequestClosedError,
)
from approval_kernel.services.request_store import RequestStore


class TestRequestStore:

    def test_update_bumps_version(self, session, create_leave):
        request = create_leave()
        store = RequestStore(session)

        stored = store.update(request.request_id, 1, current_step=1)
        assert stored.version == 2
        assert stored.current_step == 1

    def test_stale_version(self, session, create_leave):
        request = create_leave()
        store = RequestStore(session)
        store.update(request.request_id, 1, current_step=1)

        with pytest.raises(OptimisticLockError) as exc_info:
            store.update(request.request_id, 1, current_step=2)
        assert exc_info.value.expected_version == 1
        assert store.get(request.request_id).current_step == 1

    def test_terminal_row_never_changes(self, session, create_leave):
        request = create_leave()
        store = RequestStore(session)
        closed = store.update(request.request_id, 1, status=RequestStatus.CANCELLED)

        with pytest.raises(RequestClosedError):
            store.update(request.request_id, closed.version, status=RequestStatus.PENDING)

    def test_unknown_request(self, session):
        with pytest.raises(ApprovalNotFoundError):
            RequestStore(session).update(uuid4(), 1, current_step=1)

    def test_unknown_field(self, session, create_leave):
        request = create_leave()
        with pytest.raises(ValueError):
            RequestStore(session).update(request.request_id, 1, employee_id="X")

    def test_lost_update_prevented(self, session, create_leave, deterministic_clock):
        """Approval and escalation computed from the same read: only one lands."""
        request = create_leave()
        store = RequestStore(session)
        now = deterministic_clock.now()

        approved = apply_approval(request, "M1", "M1 Name", now)
        escalated = apply_escalation(request, now, 3)

        store.save(approved)
        with pytest.raises(OptimisticLockError):
            store.save(escalated)

        current = store.get(request.request_id)
        assert current.approval_chain[0].status == StepStatus.APPROVED
        assert len(current.history) == 2

    def test_save_uses_dto_version(self, session, create_leave):
        request = create_leave()
        store = RequestStore(session)

        with pytest.raises(OptimisticLockError):
            store.save(replace(request, version=7, current_step=1))
