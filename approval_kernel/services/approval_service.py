"""
approval_kernel.services.approval_service -- Approval request lifecycle.

Responsibility:
    Creates approval requests (building the frozen chain or auto-approving),
    records approve / reject / cancel / admin-override actions, and answers
    the request queries including the approver inbox.  Rule evaluation is
    delegated to the pure engines in ``approval_engines``.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/, selectors/
    and the pure ``approval_engines``.

Invariants enforced:
    - Every human action passes the RBAC validator, after delegation has
      been resolved for the current step's approver.
    - Lifecycle state machine checked before persisting a transition.
    - Every write goes through RequestStore.update() (optimistic version
      check, terminal rows never change).
    - Each action appends exactly one history entry and one audit row.
      Delegates stamped at creation are audited as ``delegated``.

Failure modes:
    - ApprovalPermissionError (RequestClosedError, SequenceViolationError)
      when the validator denies; ``reason`` is the validator's message.
    - EmployeeNotFoundError if the requester is unknown to the directory.
    - ApprovalChainBuildError if no usable chain can be built.
    - ApprovalNotFoundError if request_id is unknown.
    - OptimisticLockError if the request changed since it was read.
"""

from __future__ import annotations

from dataclasses import replace
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.orm import Session

from approval_engines.chain_builder import (
    build_approval_chain,
    preview_approval_chain,
    try_auto_approve,
    validate_chain,
)
from approval_engines.rbac import validate_action, validate_cancel, validate_create
from approval_engines.transitions import (
    AUTO_APPROVAL_NOTE,
    apply_approval,
    apply_cancellation,
    apply_rejection,
    is_valid_transition,
)
from approval_kernel.domain.approval import (
    SYSTEM_ACTOR_ID,
    SYSTEM_ACTOR_NAME,
    ApprovalAction,
    ApprovalChainStep,
    ApprovalRequest,
    ApprovalSettings,
    CallerContext,
    ChainBuildResult,
    DenialReason,
    HistoryEntry,
    RequestStatus,
    RequestType,
)
from approval_kernel.domain.clock import Clock, SystemClock
from approval_kernel.domain.employee import EmployeeDirectory
from approval_kernel.exceptions import (
    ApprovalChainBuildError,
    ApprovalNotFoundError,
    ApprovalPermissionError,
    EmployeeNotFoundError,
    InvalidRequestTransitionError,
    RequestClosedError,
    SequenceViolationError,
)
from approval_kernel.logging_config import LogContext, get_logger
from approval_kernel.selectors.request_selector import RequestSelector
from approval_kernel.services.audit_service import AuditService
from approval_kernel.services.delegation_service import DelegationService
from approval_kernel.services.request_store import RequestStore
from approval_kernel.services.settings_service import SettingsService

logger = get_logger("services.approval")

_DENIAL_ERRORS: dict[DenialReason, type[ApprovalPermissionError]] = {
    DenialReason.REQUEST_CLOSED: RequestClosedError,
    DenialReason.CHAIN_COMPLETE: RequestClosedError,
    DenialReason.SEQUENCE_VIOLATION: SequenceViolationError,
}


class ApprovalService:
    """Manages the approval request lifecycle."""

    def __init__(
        self,
        session: Session,
        directory: EmployeeDirectory,
        auditor: AuditService,
        clock: Clock | None = None,
        settings_service: SettingsService | None = None,
        delegation_service: DelegationService | None = None,
    ) -> None:
        self._session = session
        self._directory = directory
        self._auditor = auditor
        self._clock = clock or SystemClock()
        self._settings = settings_service or SettingsService(session, self._clock)
        self._delegations = delegation_service or DelegationService(
            session, self._clock,
        )
        self._store = RequestStore(session)
        self._selector = RequestSelector(session)

    # ------------------------------------------------------------------
    # Create
    # ------------------------------------------------------------------

    def create_request(
        self,
        caller: CallerContext,
        employee_id: str,
        request_type: RequestType,
        request_data: dict[str, Any],
        hr_employee_id: str | None = None,
        source_request_id: str | None = None,
        created_by: str | None = None,
    ) -> ApprovalRequest:
        """Create a request, auto-approving it when inside every threshold."""
        request_type = RequestType(request_type)

        denied = validate_create(caller, employee_id)
        if not denied.allowed:
            raise _permission_error(denied.error, denied.reason, None, caller)

        employee = self._directory.get_by_id(employee_id)
        if employee is None:
            raise EmployeeNotFoundError(employee_id)

        settings = self._settings.get_settings()
        now = self._clock.now()
        request_id = uuid4()
        base = ApprovalRequest(
            request_id=request_id,
            request_type=request_type,
            employee_id=employee.employee_id,
            employee_name=employee.employee_name,
            department_id=employee.department_id,
            request_data=dict(request_data),
            source_request_id=source_request_id,
            created_by=created_by or caller.employee_id,
            created_at=now,
            updated_at=now,
        )

        with LogContext.bind(request_id=str(request_id), actor_id=caller.employee_id):
            if try_auto_approve(request_type, request_data, settings) is not None:
                return self._create_auto_approved(base, now)

            chain = self._build_chain(employee_id, settings, hr_employee_id)
            if settings.allow_delegation:
                chain = self._stamp_delegates(chain, request_type)

            entry = HistoryEntry(
                step=0,
                action=ApprovalAction.CREATED,
                performed_by=caller.employee_id,
                performed_by_name=caller.employee_name,
                timestamp=now,
                notes="",
                previous_status=RequestStatus.PENDING,
                new_status=RequestStatus.PENDING,
            )
            stored = self._store.create(replace(
                base,
                approval_chain=chain,
                current_step=0,
                status=RequestStatus.PENDING,
                history=(entry,),
            ))

            self._auditor.log(
                stored, ApprovalAction.CREATED,
                caller.employee_id, caller.employee_name,
                metadata={
                    "chain_length": len(chain),
                    "approvers": [s.approver_employee_id for s in chain],
                    "source_request_id": source_request_id,
                },
            )
            for index, step in enumerate(chain):
                if step.delegated_to is not None:
                    self._auditor.log(
                        stored, ApprovalAction.DELEGATED,
                        SYSTEM_ACTOR_ID, SYSTEM_ACTOR_NAME,
                        step=index,
                        metadata={
                            "approver_id": step.approver_employee_id,
                            "delegated_to": step.delegated_to,
                            "delegated_to_name": step.delegated_to_name,
                        },
                    )

            logger.info(
                "approval_request_created",
                extra={
                    "request_id": str(request_id),
                    "request_type": request_type.value,
                    "employee_id": employee_id,
                    "chain_length": len(chain),
                },
            )
            return stored

    def preview_chain(
        self,
        employee_id: str,
        hr_employee_id: str | None = None,
    ) -> ChainBuildResult:
        """Chain the requester would get right now. Nothing is persisted."""
        employee = self._directory.get_by_id(employee_id)
        if employee is None:
            raise EmployeeNotFoundError(employee_id)
        return preview_approval_chain(
            employee,
            self._directory.list(),
            self._settings.get_settings(),
            hr_employee_id,
        )

    # ------------------------------------------------------------------
    # Actions
    # ------------------------------------------------------------------

    def approve_request(
        self,
        request_id: UUID,
        caller: CallerContext,
        notes: str = "",
    ) -> ApprovalRequest:
        """Approve the current step (or everything, for an admin)."""
        request = self._store.get(request_id)
        settings = self._settings.get_settings()
        delegate_of = self._resolve_delegate_of(caller, request, settings)

        result = validate_action(caller, request, delegate_of)
        if not result.allowed:
            raise _permission_error(result.error, result.reason, request_id, caller)

        updated = apply_approval(
            request, caller.employee_id, caller.employee_name,
            self._clock.now(), notes, result.is_admin_override,
        )
        return self._commit_action(
            request, updated, caller,
            metadata={
                "notes": notes,
                "delegate_of": delegate_of,
                "is_admin_override": result.is_admin_override,
            },
        )

    def reject_request(
        self,
        request_id: UUID,
        caller: CallerContext,
        notes: str = "",
    ) -> ApprovalRequest:
        """Reject at the current step; the whole request is rejected."""
        request = self._store.get(request_id)
        settings = self._settings.get_settings()
        delegate_of = self._resolve_delegate_of(caller, request, settings)

        result = validate_action(caller, request, delegate_of)
        if not result.allowed:
            raise _permission_error(result.error, result.reason, request_id, caller)

        updated = apply_rejection(
            request, caller.employee_id, caller.employee_name,
            self._clock.now(), notes, result.is_admin_override,
        )
        return self._commit_action(
            request, updated, caller,
            metadata={
                "notes": notes,
                "delegate_of": delegate_of,
                "is_admin_override": result.is_admin_override,
            },
        )

    def cancel_request(
        self,
        request_id: UUID,
        caller: CallerContext,
        reason: str = "",
    ) -> ApprovalRequest:
        request = self._store.get(request_id)

        result = validate_cancel(caller, request)
        if not result.allowed:
            raise _permission_error(result.error, result.reason, request_id, caller)

        updated = apply_cancellation(
            request, caller.employee_id, caller.employee_name,
            self._clock.now(), reason,
        )
        return self._commit_action(
            request, updated, caller, metadata={"reason": reason},
        )

    def admin_override(
        self,
        request_id: UUID,
        caller: CallerContext,
        decision: ApprovalAction | str,
        notes: str = "",
    ) -> ApprovalRequest:
        """Approve or reject on an administrator's authority.

        ``decision`` is ``approved`` or ``rejected``.  The validator decides
        whether the caller really holds override rights; a non-admin caller
        goes through the normal step checks.
        """
        decision = ApprovalAction(decision)
        if decision == ApprovalAction.APPROVED:
            return self.approve_request(request_id, caller, notes)
        if decision == ApprovalAction.REJECTED:
            return self.reject_request(request_id, caller, notes)
        raise ValueError(
            f"Admin override decision must be 'approved' or 'rejected', "
            f"got {decision.value!r}"
        )

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_request(self, request_id: UUID) -> ApprovalRequest:
        request = self._selector.get(request_id)
        if request is None:
            raise ApprovalNotFoundError(str(request_id))
        return request

    def get_requests_by_employee(self, employee_id: str) -> list[ApprovalRequest]:
        return self._selector.list_by_employee(employee_id)

    def get_requests_by_type(self, request_type: RequestType) -> list[ApprovalRequest]:
        return self._selector.list_by_type(request_type)

    def get_requests_by_status(self, status: RequestStatus) -> list[ApprovalRequest]:
        return self._selector.list_by_status(status)

    def get_all_requests(self) -> list[ApprovalRequest]:
        return self._selector.list_all()

    def get_pending_approvals(
        self,
        approver_employee_id: str,
        request_type: RequestType | None = None,
    ) -> list[ApprovalRequest]:
        """Inbox: open or escalated requests whose current step is this approver's.

        A step counts when the approver is assigned to it, is stamped as its
        delegate, or holds a delegation from its approver that is active today.
        """
        today = self._clock.today()
        acting_for: dict[str, list] = {}
        for delegation in self._delegations.list_by_to(approver_employee_id):
            acting_for.setdefault(delegation.from_employee_id, []).append(delegation)

        inbox = []
        for request in self._selector.list_actionable(request_type):
            step = request.current_step_item
            if step is None:
                continue
            if approver_employee_id in (step.approver_employee_id, step.delegated_to):
                inbox.append(request)
                continue
            if any(
                d.covers(request.request_type, today)
                for d in acting_for.get(step.approver_employee_id, ())
            ):
                inbox.append(request)
        return inbox

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _create_auto_approved(self, base: ApprovalRequest, now) -> ApprovalRequest:
        entry = HistoryEntry(
            step=0,
            action=ApprovalAction.AUTO_APPROVED,
            performed_by=SYSTEM_ACTOR_ID,
            performed_by_name=SYSTEM_ACTOR_NAME,
            timestamp=now,
            notes=AUTO_APPROVAL_NOTE,
            previous_status=RequestStatus.PENDING,
            new_status=RequestStatus.APPROVED,
        )
        stored = self._store.create(replace(
            base,
            approval_chain=(),
            current_step=0,
            status=RequestStatus.APPROVED,
            history=(entry,),
        ))

        self._auditor.log(
            stored, ApprovalAction.AUTO_APPROVED,
            SYSTEM_ACTOR_ID, SYSTEM_ACTOR_NAME,
            metadata={
                "reason": "within auto-approve threshold",
                "request_data": base.request_data,
            },
        )

        logger.info(
            "approval_request_auto_approved",
            extra={
                "request_id": str(stored.request_id),
                "request_type": stored.request_type.value,
                "employee_id": stored.employee_id,
            },
        )
        return stored

    def _build_chain(
        self,
        employee_id: str,
        settings: ApprovalSettings,
        hr_employee_id: str | None,
    ) -> tuple[ApprovalChainStep, ...]:
        employee = self._directory.get_by_id(employee_id)
        result = build_approval_chain(
            employee, self._directory.list(), settings, hr_employee_id,
        )
        if not result.chain:
            raise ApprovalChainBuildError(employee_id, list(result.errors))

        problems = validate_chain(result.chain, settings)
        if problems:
            raise ApprovalChainBuildError(employee_id, problems)

        if result.errors:
            logger.warning(
                "approval_chain_built_with_errors",
                extra={"employee_id": employee_id, "errors": list(result.errors)},
            )
        return result.chain

    def _stamp_delegates(
        self,
        chain: tuple[ApprovalChainStep, ...],
        request_type: RequestType,
    ) -> tuple[ApprovalChainStep, ...]:
        """Record today's delegate on each step whose approver has one."""
        today = self._clock.today()
        stamped = []
        for step in chain:
            delegation = self._delegations.resolve_delegate(
                step.approver_employee_id, request_type, today,
            )
            if delegation is not None:
                step = replace(
                    step,
                    delegated_to=delegation.to_employee_id,
                    delegated_to_name=delegation.to_employee_name,
                )
            stamped.append(step)
        return tuple(stamped)

    def _resolve_delegate_of(
        self,
        caller: CallerContext,
        request: ApprovalRequest,
        settings: ApprovalSettings,
    ) -> str | None:
        """Approver id the caller acts for on the current step, if any.

        Resolution is always against the step approver, never the caller.
        """
        if not settings.allow_delegation:
            return None

        step = request.current_step_item
        if step is None or step.approver_employee_id == caller.employee_id:
            return None

        if step.delegated_to == caller.employee_id:
            return step.approver_employee_id

        delegation = self._delegations.resolve_delegate(
            step.approver_employee_id, request.request_type, self._clock.today(),
        )
        if delegation is not None and delegation.to_employee_id == caller.employee_id:
            return step.approver_employee_id
        return None

    def _commit_action(
        self,
        before: ApprovalRequest,
        after: ApprovalRequest,
        caller: CallerContext,
        metadata: dict[str, Any],
    ) -> ApprovalRequest:
        """Check the transition, persist it, and audit the new history entry."""
        if not is_valid_transition(before.status, after.status):
            raise InvalidRequestTransitionError(
                before.status.value, after.status.value,
            )

        stored = self._store.save(after)
        entry = stored.history[-1]

        self._auditor.log(
            stored, entry.action,
            caller.employee_id, caller.employee_name,
            step=before.current_step,
            metadata={**metadata, "new_status": stored.status.value},
        )

        logger.info(
            f"approval_request_{entry.action.value}",
            extra={
                "request_id": str(stored.request_id),
                "actor_id": caller.employee_id,
                "step": before.current_step,
                "previous_status": before.status.value,
                "new_status": stored.status.value,
            },
        )
        return stored


def _permission_error(
    message: str | None,
    reason: DenialReason | None,
    request_id: UUID | None,
    caller: CallerContext,
) -> ApprovalPermissionError:
    error_cls = _DENIAL_ERRORS.get(reason, ApprovalPermissionError)
    return error_cls(
        message or "Permission denied",
        denial=reason.value if reason is not None else None,
        request_id=str(request_id) if request_id is not None else None,
        actor_id=caller.employee_id,
    )
