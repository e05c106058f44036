"""
Tests for ApprovalService -- approval request lifecycle.

Covers:
- create_request(): chain snapshot, on-behalf rules, unknown employee,
  chain build failure, auto-approval, audit trail
- approve_request() / reject_request(): sequential approval through the
  whole chain, wrong approver, closed request
- cancel_request(): owner before first approval, privileged cancel
- admin_override(): approve and reject on any open step
- delegation: stamped delegate, live delegation, delegation disabled
- queries: get_request, listings, approver inbox
"""

from datetime import date

import pytest

from approval_engines.rbac import MSG_NOT_APPROVER
from approval_engines.transitions import ADMIN_APPROVAL_NOTE, AUTO_APPROVAL_NOTE
from approval_kernel.domain.approval import (
    SYSTEM_ACTOR_ID,
    ApprovalAction,
    RequestStatus,
    RequestType,
    StepStatus,
)
from approval_kernel.exceptions import (
    ApprovalChainBuildError,
    ApprovalNotFoundError,
    ApprovalPermissionError,
    EmployeeNotFoundError,
    RequestClosedError,
)
from tests.conftest import HR_ID, make_caller


def approver_ids(request):
    return [s.approver_employee_id for s in request.approval_chain]


# ---------------------------------------------------------------------------
# create_request
# ---------------------------------------------------------------------------


class TestCreateRequest:

    def test_builds_frozen_chain(self, create_leave, deterministic_clock):
        request = create_leave()

        assert approver_ids(request) == ["M1", "M2", HR_ID]
        assert request.status == RequestStatus.PENDING
        assert request.current_step == 0
        assert request.version == 1
        assert request.employee_name == "E Name"
        assert request.department_id == "D1"
        assert request.request_data == {"days": 5, "start_date": "2026-02-01"}
        assert request.created_at == deterministic_clock.now()
        assert request.created_by == "E"

    def test_created_history_entry(self, create_leave):
        request = create_leave()

        assert len(request.history) == 1
        entry = request.history[0]
        assert entry.action == ApprovalAction.CREATED
        assert entry.performed_by == "E"
        assert entry.new_status == RequestStatus.PENDING

    def test_audit_row_written(self, create_leave, auditor_service):
        request = create_leave(source_request_id="LEAVE-42")

        entries = auditor_service.get_by_request(request.request_id)
        assert [e.action for e in entries] == [ApprovalAction.CREATED]
        assert entries[0].metadata["chain_length"] == 3
        assert entries[0].metadata["approvers"] == ["M1", "M2", HR_ID]
        assert entries[0].metadata["source_request_id"] == "LEAVE-42"

    def test_employee_cannot_file_for_someone_else(self, create_leave):
        with pytest.raises(ApprovalPermissionError) as exc_info:
            create_leave(employee_id="X")
        assert exc_info.value.denial == "not_self"

    def test_hr_files_on_behalf(self, create_leave, hr_caller):
        request = create_leave(caller=hr_caller)

        assert request.employee_id == "E"
        assert request.created_by == HR_ID

    def test_unknown_employee(self, create_leave, hr_caller):
        with pytest.raises(EmployeeNotFoundError):
            create_leave(caller=hr_caller, employee_id="NOBODY")

    def test_no_manager_fails(self, create_leave, m2_caller):
        with pytest.raises(ApprovalChainBuildError) as exc_info:
            create_leave(caller=m2_caller, employee_id="M2")
        assert exc_info.value.errors

    def test_chain_snapshot_survives_org_change(self, create_leave, directory, approval_service):
        request = create_leave()
        directory._by_id.pop("M1")

        assert approver_ids(approval_service.get_request(request.request_id)) == [
            "M1", "M2", HR_ID,
        ]

    def test_logs_creation(self, create_leave, captured_logs):
        request = create_leave()

        records = [r for r in captured_logs() if r["message"] == "approval_request_created"]
        assert len(records) == 1
        assert records[0]["request_id"] == str(request.request_id)
        assert records[0]["chain_length"] == 3


class TestAutoApprove:

    @pytest.fixture(autouse=True)
    def _thresholds(self, settings_service):
        settings_service.update_settings(
            updated_by="ADMIN",
            auto_approve_thresholds=[
                {"request_type": "leave", "field": "days", "max_value": 1},
            ],
        )

    def test_inside_threshold(self, create_leave, auditor_service):
        request = create_leave(days=1)

        assert request.status == RequestStatus.APPROVED
        assert request.approval_chain == ()
        assert request.history[0].action == ApprovalAction.AUTO_APPROVED
        assert request.history[0].performed_by == SYSTEM_ACTOR_ID
        assert request.history[0].notes == AUTO_APPROVAL_NOTE

        entries = auditor_service.get_by_request(request.request_id)
        assert [e.action for e in entries] == [ApprovalAction.AUTO_APPROVED]

    def test_over_threshold(self, create_leave):
        request = create_leave(days=2)
        assert request.status == RequestStatus.PENDING
        assert len(request.approval_chain) == 3

    def test_other_type_not_affected(self, approval_service, employee_caller):
        request = approval_service.create_request(
            employee_caller, "E", RequestType.LOAN, {"days": 0, "amount": 500},
            hr_employee_id=HR_ID,
        )
        assert request.status == RequestStatus.PENDING


# ---------------------------------------------------------------------------
# approve / reject
# ---------------------------------------------------------------------------


class TestApproveReject:

    def test_full_chain(
        self, create_leave, approval_service, m1_caller, m2_caller, hr_caller,
        deterministic_clock, auditor_service,
    ):
        request = create_leave()

        deterministic_clock.advance(60)
        r1 = approval_service.approve_request(request.request_id, m1_caller, "fine")
        assert r1.status == RequestStatus.IN_PROGRESS
        assert r1.current_step == 1
        assert r1.version == 2

        deterministic_clock.advance(60)
        r2 = approval_service.approve_request(request.request_id, m2_caller)
        assert r2.status == RequestStatus.IN_PROGRESS
        assert r2.current_step == 2

        deterministic_clock.advance(60)
        r3 = approval_service.approve_request(request.request_id, hr_caller)
        assert r3.status == RequestStatus.APPROVED
        assert r3.current_step == 3
        assert all(s.status == StepStatus.APPROVED for s in r3.approval_chain)
        assert len(r3.history) == 4

        entries = auditor_service.get_by_request(request.request_id)
        assert [e.action for e in entries] == [
            ApprovalAction.CREATED,
            ApprovalAction.APPROVED,
            ApprovalAction.APPROVED,
            ApprovalAction.APPROVED,
        ]
        assert [e.step for e in entries[1:]] == [0, 1, 2]

    def test_wrong_approver(self, create_leave, approval_service, m2_caller):
        request = create_leave()

        with pytest.raises(ApprovalPermissionError) as exc_info:
            approval_service.approve_request(request.request_id, m2_caller)
        assert exc_info.value.reason == MSG_NOT_APPROVER
        assert exc_info.value.denial == "not_current_approver"

    def test_requester_cannot_approve(self, create_leave, approval_service, employee_caller):
        request = create_leave()
        with pytest.raises(ApprovalPermissionError):
            approval_service.approve_request(request.request_id, employee_caller)

    def test_reject_closes_request(self, create_leave, approval_service, m1_caller, m2_caller):
        request = create_leave()

        rejected = approval_service.reject_request(request.request_id, m1_caller, "no")
        assert rejected.status == RequestStatus.REJECTED
        assert rejected.approval_chain[0].status == StepStatus.REJECTED
        assert rejected.approval_chain[0].notes == "no"

        with pytest.raises(RequestClosedError):
            approval_service.approve_request(request.request_id, m2_caller)

    def test_approved_request_is_closed(self, create_leave, approval_service, admin_caller, m1_caller):
        request = create_leave()
        approval_service.admin_override(request.request_id, admin_caller, "approved")

        with pytest.raises(RequestClosedError) as exc_info:
            approval_service.reject_request(request.request_id, m1_caller)
        assert exc_info.value.denial == "request_closed"

    def test_unknown_request(self, approval_service, m1_caller):
        from uuid import uuid4

        with pytest.raises(ApprovalNotFoundError):
            approval_service.approve_request(uuid4(), m1_caller)

    def test_hr_acts_on_final_step_they_are_not_assigned_to(
        self, approval_service, employee_caller, m1_caller, settings_service,
    ):
        settings_service.update_settings(hr_always_final_level=False)
        request = approval_service.create_request(
            employee_caller, "E", RequestType.OVERTIME, {"hours": 3},
        )
        approval_service.approve_request(request.request_id, m1_caller)

        other_hr = make_caller("HR2", approval_manage=True)
        approved = approval_service.approve_request(request.request_id, other_hr)
        assert approved.status == RequestStatus.APPROVED


# ---------------------------------------------------------------------------
# cancel
# ---------------------------------------------------------------------------


class TestCancel:

    def test_owner_cancels_before_first_approval(self, create_leave, approval_service, employee_caller):
        request = create_leave()

        cancelled = approval_service.cancel_request(request.request_id, employee_caller, "not needed")
        assert cancelled.status == RequestStatus.CANCELLED
        assert cancelled.history[-1].notes == "not needed"

    def test_owner_cannot_cancel_after_first_approval(
        self, create_leave, approval_service, employee_caller, m1_caller,
    ):
        request = create_leave()
        approval_service.approve_request(request.request_id, m1_caller)

        with pytest.raises(ApprovalPermissionError) as exc_info:
            approval_service.cancel_request(request.request_id, employee_caller)
        assert exc_info.value.denial == "approval_started"

    def test_hr_cancels_in_progress(self, create_leave, approval_service, hr_caller, m1_caller):
        request = create_leave()
        approval_service.approve_request(request.request_id, m1_caller)

        cancelled = approval_service.cancel_request(request.request_id, hr_caller)
        assert cancelled.status == RequestStatus.CANCELLED

    def test_cancelled_is_final(self, create_leave, approval_service, employee_caller, admin_caller):
        request = create_leave()
        approval_service.cancel_request(request.request_id, employee_caller)

        with pytest.raises(RequestClosedError):
            approval_service.cancel_request(request.request_id, admin_caller)


# ---------------------------------------------------------------------------
# admin_override
# ---------------------------------------------------------------------------


class TestAdminOverride:

    def test_approve_everything(self, create_leave, approval_service, admin_caller, auditor_service):
        request = create_leave()

        approved = approval_service.admin_override(request.request_id, admin_caller, "approved")
        assert approved.status == RequestStatus.APPROVED
        assert approved.current_step == 3
        assert all(s.notes == ADMIN_APPROVAL_NOTE for s in approved.approval_chain)
        assert approved.history[-1].action == ApprovalAction.ADMIN_OVERRIDE

        actions = [e.action for e in auditor_service.get_by_action(ApprovalAction.ADMIN_OVERRIDE)]
        assert actions == [ApprovalAction.ADMIN_OVERRIDE]

    def test_reject(self, create_leave, approval_service, admin_caller):
        request = create_leave()

        rejected = approval_service.admin_override(
            request.request_id, admin_caller, ApprovalAction.REJECTED, "policy",
        )
        assert rejected.status == RequestStatus.REJECTED
        assert rejected.history[-1].action == ApprovalAction.ADMIN_OVERRIDE

    def test_invalid_decision(self, create_leave, approval_service, admin_caller):
        request = create_leave()
        with pytest.raises(ValueError):
            approval_service.admin_override(request.request_id, admin_caller, "cancelled")

    def test_non_admin_goes_through_step_checks(self, create_leave, approval_service, m2_caller):
        request = create_leave()
        with pytest.raises(ApprovalPermissionError):
            approval_service.admin_override(request.request_id, m2_caller, "approved")


# ---------------------------------------------------------------------------
# delegation
# ---------------------------------------------------------------------------


class TestDelegatedApproval:

    def delegate_m1_to_d(self, delegation_service, **kwargs):
        return delegation_service.create_delegation(
            "M1", "M1 Name", "D", "D Name",
            date(2026, 1, 1), date(2026, 1, 31), **kwargs,
        )

    def test_step_stamped_at_creation(self, create_leave, delegation_service):
        self.delegate_m1_to_d(delegation_service)
        request = create_leave()

        assert request.approval_chain[0].delegated_to == "D"
        assert request.approval_chain[0].delegated_to_name == "D Name"
        assert request.approval_chain[1].delegated_to is None

    def test_stamped_delegate_audited(self, create_leave, delegation_service, auditor_service):
        self.delegate_m1_to_d(delegation_service)
        request = create_leave()

        entries = auditor_service.get_by_action(ApprovalAction.DELEGATED)
        assert len(entries) == 1
        assert entries[0].request_id == request.request_id
        assert entries[0].performed_by == SYSTEM_ACTOR_ID
        assert entries[0].step == 0
        assert entries[0].metadata == {
            "approver_id": "M1",
            "delegated_to": "D",
            "delegated_to_name": "D Name",
        }

    def test_no_delegate_no_delegated_audit(self, create_leave, auditor_service):
        create_leave()
        assert auditor_service.get_by_action(ApprovalAction.DELEGATED) == []

    def test_delegate_approves(self, create_leave, approval_service, delegation_service, auditor_service):
        self.delegate_m1_to_d(delegation_service)
        request = create_leave()

        approved = approval_service.approve_request(request.request_id, make_caller("D"))
        assert approved.current_step == 1
        assert approved.history[-1].performed_by == "D"

        entry = auditor_service.get_by_action(ApprovalAction.APPROVED)[0]
        assert entry.metadata["delegate_of"] == "M1"

    def test_delegation_created_after_request(self, create_leave, approval_service, delegation_service):
        request = create_leave()
        self.delegate_m1_to_d(delegation_service)

        approved = approval_service.approve_request(request.request_id, make_caller("D"))
        assert approved.current_step == 1

    def test_original_approver_keeps_authority(self, create_leave, approval_service, delegation_service, m1_caller):
        self.delegate_m1_to_d(delegation_service)
        request = create_leave()

        approved = approval_service.approve_request(request.request_id, m1_caller)
        assert approved.current_step == 1

    def test_scoped_delegation_other_type(self, create_leave, approval_service, delegation_service):
        self.delegate_m1_to_d(delegation_service, request_types=[RequestType.LOAN])
        request = create_leave()

        with pytest.raises(ApprovalPermissionError):
            approval_service.approve_request(request.request_id, make_caller("D"))

    def test_callers_own_delegation_grants_nothing(self, create_leave, approval_service, delegation_service):
        """A delegation from D to M1 does not let D act for M1."""
        delegation_service.create_delegation(
            "D", "D Name", "M1", "M1 Name", date(2026, 1, 1), date(2026, 1, 31),
        )
        request = create_leave()

        with pytest.raises(ApprovalPermissionError):
            approval_service.approve_request(request.request_id, make_caller("D"))

    def test_delegation_disabled(self, create_leave, approval_service, delegation_service, settings_service):
        settings_service.update_settings(allow_delegation=False)
        self.delegate_m1_to_d(delegation_service)
        request = create_leave()

        assert request.approval_chain[0].delegated_to is None
        with pytest.raises(ApprovalPermissionError):
            approval_service.approve_request(request.request_id, make_caller("D"))

    def test_expired_delegation(self, create_leave, approval_service, delegation_service, deterministic_clock):
        delegation_service.create_delegation(
            "M1", "M1 Name", "D", "D Name", date(2025, 12, 1), date(2025, 12, 31),
        )
        request = create_leave()

        with pytest.raises(ApprovalPermissionError):
            approval_service.approve_request(request.request_id, make_caller("D"))


# ---------------------------------------------------------------------------
# queries
# ---------------------------------------------------------------------------


class TestQueries:

    def test_get_request_not_found(self, approval_service):
        from uuid import uuid4

        with pytest.raises(ApprovalNotFoundError):
            approval_service.get_request(uuid4())

    def test_listings_newest_first(self, approval_service, create_leave, deterministic_clock, hr_caller):
        first = create_leave()
        deterministic_clock.advance(60)
        second = approval_service.create_request(
            hr_caller, "X", RequestType.LOAN, {"amount": 1000}, hr_employee_id=HR_ID,
        )

        assert [r.request_id for r in approval_service.get_all_requests()] == [
            second.request_id, first.request_id,
        ]
        assert [r.request_id for r in approval_service.get_requests_by_employee("E")] == [
            first.request_id,
        ]
        assert [r.request_id for r in approval_service.get_requests_by_type(RequestType.LOAN)] == [
            second.request_id,
        ]
        assert len(approval_service.get_requests_by_status(RequestStatus.PENDING)) == 2

    def test_pending_approvals_follow_current_step(self, approval_service, create_leave, m1_caller):
        request = create_leave()

        assert [r.request_id for r in approval_service.get_pending_approvals("M1")] == [
            request.request_id,
        ]
        assert approval_service.get_pending_approvals("M2") == []

        approval_service.approve_request(request.request_id, m1_caller)
        assert approval_service.get_pending_approvals("M1") == []
        assert len(approval_service.get_pending_approvals("M2")) == 1

    def test_pending_approvals_type_filter(self, approval_service, create_leave):
        create_leave()
        assert approval_service.get_pending_approvals("M1", RequestType.LOAN) == []
        assert len(approval_service.get_pending_approvals("M1", RequestType.LEAVE)) == 1

    def test_pending_approvals_for_delegate(self, approval_service, create_leave, delegation_service):
        request = create_leave()
        delegation_service.create_delegation(
            "M1", "M1 Name", "D", "D Name", date(2026, 1, 1), date(2026, 1, 31),
        )

        assert [r.request_id for r in approval_service.get_pending_approvals("D")] == [
            request.request_id,
        ]

    def test_closed_requests_leave_inbox(self, approval_service, create_leave, employee_caller):
        request = create_leave()
        approval_service.cancel_request(request.request_id, employee_caller)
        assert approval_service.get_pending_approvals("M1") == []

    def test_preview_chain(self, approval_service):
        result = approval_service.preview_chain("E", hr_employee_id=HR_ID)
        assert [s.approver_employee_id for s in result.chain] == ["M1", "M2", HR_ID]
        assert approval_service.get_all_requests() == []
