"""
approval_engines.rbac -- Role-based gate functions for approval operations.

Responsibility:
    Decide whether a caller may create, act on, or cancel a request:
        - Employee: create own requests only
        - Manager: act on the step assigned to them (or delegated to them)
        - HR: create for anyone, act on the final step, cancel open requests
        - Admin: override any open request
    Also evaluates auto-approve thresholds.

Architecture position:
    Engines -- pure calculation layer, zero I/O.  The caller resolves
    delegation beforehand and passes ``delegate_of_employee_id``.
    The validators authorize; they never authenticate.

Invariants enforced:
    - Terminal requests (approved/rejected/cancelled) accept no action and
      no cancellation, for every role.
    - Sequential enforcement: step n is actionable only once every step
      before it is approved or skipped.  Admin override bypasses it.
    - The permission map is resolved once into ``ApprovalRole`` and every
      rule dispatches on that enum.

Failure modes:
    - Denials are returned as results with ``allowed=False``, a verbatim
      end-user ``error`` and a ``DenialReason``.  Nothing raises.
"""

from __future__ import annotations

from collections.abc import Mapping
from decimal import Decimal, InvalidOperation
from typing import Any

from approval_kernel.domain.approval import (
    COMPLETED_STEP_STATUSES,
    OPEN_REQUEST_STATUSES,
    TERMINAL_REQUEST_STATUSES,
    ActionValidationResult,
    ApprovalRequest,
    ApprovalRole,
    ApprovalSettings,
    CallerContext,
    DenialReason,
    RequestType,
    ValidationResult,
)

PERM_OVERRIDE = "approval.override"
PERM_MANAGE = "approval.manage"
PERM_VIEW = "approval.view"

MSG_CREATE_ON_BEHALF = "You cannot create a request on behalf of another employee"
MSG_REQUEST_CLOSED = "The request is closed and no further action can be taken"
MSG_CHAIN_COMPLETE = "All approval levels have already been completed"
MSG_NOT_APPROVER = "You are not authorized to approve at this level"
MSG_SEQUENCE = (
    "Approval levels cannot be skipped; the earlier level must approve first"
)
MSG_CANCEL_CLOSED = "A closed request cannot be cancelled"
MSG_CANCEL_NOT_OWNER = "Only the requester can cancel this request"
MSG_CANCEL_STARTED = "The request cannot be cancelled once approval has started"

_PRIVILEGED_ROLES = frozenset({ApprovalRole.ADMIN, ApprovalRole.HR})


def resolve_approval_role(permissions: Mapping[str, bool]) -> ApprovalRole:
    """Derive the caller's highest approval role: admin > hr > manager > employee."""
    if permissions.get(PERM_OVERRIDE) is True:
        return ApprovalRole.ADMIN
    if permissions.get(PERM_MANAGE) is True:
        return ApprovalRole.HR
    if permissions.get(PERM_VIEW) is True:
        return ApprovalRole.MANAGER
    return ApprovalRole.EMPLOYEE


def validate_create(caller: CallerContext, target_employee_id: str) -> ValidationResult:
    """HR and admin may file for anyone; everyone else only for themselves."""
    role = resolve_approval_role(caller.permissions)

    if role in _PRIVILEGED_ROLES:
        return ValidationResult(allowed=True)

    if caller.employee_id != target_employee_id:
        return ValidationResult(
            allowed=False,
            error=MSG_CREATE_ON_BEHALF,
            reason=DenialReason.NOT_SELF,
        )

    return ValidationResult(allowed=True)


def validate_action(
    caller: CallerContext,
    request: ApprovalRequest,
    delegate_of_employee_id: str | None = None,
) -> ActionValidationResult:
    """Validate that a caller can approve or reject the request now.

    Checks, in order:
        1. Request is not terminal.
        2. Admin -> allowed as an override (skips 3-5).
        3. There is a current step left to act on.
        4. Caller is the step approver, that approver's delegate, or HR on
           the final step.
        5. Every earlier step is approved or skipped.
    """
    if request.status in TERMINAL_REQUEST_STATUSES:
        return ActionValidationResult(
            allowed=False,
            error=MSG_REQUEST_CLOSED,
            reason=DenialReason.REQUEST_CLOSED,
        )

    role = resolve_approval_role(caller.permissions)
    if role == ApprovalRole.ADMIN:
        return ActionValidationResult(allowed=True, is_admin_override=True)

    chain = request.approval_chain
    current_step = request.current_step
    if current_step >= len(chain):
        return ActionValidationResult(
            allowed=False,
            error=MSG_CHAIN_COMPLETE,
            reason=DenialReason.CHAIN_COMPLETE,
        )

    step = chain[current_step]
    is_direct_approver = step.approver_employee_id == caller.employee_id
    is_delegate = (
        delegate_of_employee_id is not None
        and delegate_of_employee_id == step.approver_employee_id
    )
    is_hr_on_final_step = (
        role == ApprovalRole.HR and current_step == len(chain) - 1
    )

    if not (is_direct_approver or is_delegate or is_hr_on_final_step):
        return ActionValidationResult(
            allowed=False,
            error=MSG_NOT_APPROVER,
            reason=DenialReason.NOT_CURRENT_APPROVER,
        )

    if any(s.status not in COMPLETED_STEP_STATUSES for s in chain[:current_step]):
        return ActionValidationResult(
            allowed=False,
            error=MSG_SEQUENCE,
            reason=DenialReason.SEQUENCE_VIOLATION,
        )

    return ActionValidationResult(allowed=True, is_admin_override=False)


def validate_cancel(caller: CallerContext, request: ApprovalRequest) -> ValidationResult:
    """Terminal -> never; admin/HR -> any open request; requester -> own, before step 1."""
    if request.status in TERMINAL_REQUEST_STATUSES:
        return ValidationResult(
            allowed=False,
            error=MSG_CANCEL_CLOSED,
            reason=DenialReason.REQUEST_CLOSED,
        )

    role = resolve_approval_role(caller.permissions)
    if role in _PRIVILEGED_ROLES:
        return ValidationResult(allowed=True)

    if caller.employee_id != request.employee_id:
        return ValidationResult(
            allowed=False,
            error=MSG_CANCEL_NOT_OWNER,
            reason=DenialReason.NOT_REQUESTER,
        )

    if request.current_step > 0:
        return ValidationResult(
            allowed=False,
            error=MSG_CANCEL_STARTED,
            reason=DenialReason.APPROVAL_STARTED,
        )

    return ValidationResult(allowed=True)


def check_auto_approve(
    request_type: RequestType,
    request_data: Mapping[str, Any],
    settings: ApprovalSettings,
) -> bool:
    """True only if every threshold for ``request_type`` is satisfied.

    No thresholds for the type -> False.  A threshold is satisfied when the
    field is present, numeric (booleans excluded) and ``<= max_value``.
    """
    thresholds = [
        t for t in settings.auto_approve_thresholds
        if t.request_type == request_type
    ]
    if not thresholds:
        return False

    for threshold in thresholds:
        value = _as_decimal(request_data.get(threshold.field))
        if value is None or value > threshold.max_value:
            return False
    return True


def can_view_all_requests(permissions: Mapping[str, bool]) -> bool:
    """Admin and HR see every request; others see own + subordinates."""
    return resolve_approval_role(permissions) in _PRIVILEGED_ROLES


def can_act_on_request(
    caller_employee_id: str,
    request: ApprovalRequest,
    delegate_of_employee_id: str | None = None,
) -> bool:
    """Whether to show action buttons for the caller. Not a security boundary."""
    if request.status not in OPEN_REQUEST_STATUSES:
        return False

    step = request.current_step_item
    if step is None:
        return False

    return (
        step.approver_employee_id == caller_employee_id
        or (
            delegate_of_employee_id is not None
            and delegate_of_employee_id == step.approver_employee_id
        )
    )


def _as_decimal(value: Any) -> Decimal | None:
    """Coerce int/float/Decimal to Decimal; anything else is not numeric."""
    if isinstance(value, bool) or not isinstance(value, (int, float, Decimal)):
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        return None
    if not result.is_finite():
        return None
    return result
