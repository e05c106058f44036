"""
approval_engines.transitions -- Pure state changes on an approval request.

Responsibility:
    Produce the next immutable ``ApprovalRequest`` for each lifecycle
    action (approve, admin override, reject, cancel, escalate), including
    the step update, the derived request status and the history entry.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Time is passed in; persistence and permission checks happen in the
    service layer.

Invariants enforced:
    - Every transition appends exactly one ``HistoryEntry``.
    - ``current_step`` never decreases.
    - Escalation is idempotent: a request whose current step is not
      pending (or whose chain is exhausted) yields ``None``.
"""

from __future__ import annotations

from dataclasses import replace
from datetime import datetime

from approval_kernel.domain.approval import (
    COMPLETED_STEP_STATUSES,
    REQUEST_TRANSITIONS,
    SYSTEM_ACTOR_ID,
    SYSTEM_ACTOR_NAME,
    ApprovalAction,
    ApprovalChainStep,
    ApprovalRequest,
    HistoryEntry,
    RequestStatus,
    StepStatus,
)


ADMIN_APPROVAL_NOTE = "Administrative approval / موافقة إدارية"
AUTO_APPROVAL_NOTE = "Auto-approved within threshold / تمت الموافقة التلقائية"


def escalation_note(escalation_days: int) -> str:
    """Bilingual note stamped on a step skipped by escalation."""
    return (
        f"Auto-escalated after {escalation_days} days without action / "
        f"تم تصعيد الطلب تلقائياً بعد {escalation_days} أيام بدون إجراء"
    )


def derive_status_from_chain(chain: tuple[ApprovalChainStep, ...]) -> RequestStatus:
    """Overall request status implied by the step statuses.

    Empty -> approved; any rejected -> rejected; all approved/skipped ->
    approved; any approved -> in_progress; otherwise pending.
    """
    if not chain:
        return RequestStatus.APPROVED
    if any(s.status == StepStatus.REJECTED for s in chain):
        return RequestStatus.REJECTED
    if all(s.status in COMPLETED_STEP_STATUSES for s in chain):
        return RequestStatus.APPROVED
    if any(s.status == StepStatus.APPROVED for s in chain):
        return RequestStatus.IN_PROGRESS
    return RequestStatus.PENDING


def is_valid_transition(from_status: RequestStatus, to_status: RequestStatus) -> bool:
    return to_status in REQUEST_TRANSITIONS.get(from_status, frozenset())


def make_history_entry(
    request: ApprovalRequest,
    action: ApprovalAction,
    performed_by: str,
    performed_by_name: str,
    timestamp: datetime,
    new_status: RequestStatus,
    notes: str = "",
) -> HistoryEntry:
    return HistoryEntry(
        step=request.current_step,
        action=action,
        performed_by=performed_by,
        performed_by_name=performed_by_name,
        timestamp=timestamp,
        notes=notes,
        previous_status=request.status,
        new_status=new_status,
    )


def apply_approval(
    request: ApprovalRequest,
    actor_id: str,
    actor_name: str,
    now: datetime,
    notes: str = "",
    is_admin_override: bool = False,
) -> ApprovalRequest:
    """Approve the current step, or every remaining step on admin override."""
    chain = list(request.approval_chain)

    if is_admin_override:
        step_note = notes or ADMIN_APPROVAL_NOTE
        chain = [
            replace(s, status=StepStatus.APPROVED, action_date=now, notes=step_note)
            if s.status == StepStatus.PENDING else s
            for s in chain
        ]
        next_step = len(chain)
        action = ApprovalAction.ADMIN_OVERRIDE
    else:
        step = chain[request.current_step]
        chain[request.current_step] = replace(
            step, status=StepStatus.APPROVED, action_date=now, notes=notes,
        )
        next_step = request.current_step + 1
        action = ApprovalAction.APPROVED

    new_chain = tuple(chain)
    new_status = derive_status_from_chain(new_chain)
    entry = make_history_entry(
        request, action, actor_id, actor_name, now, new_status, notes,
    )
    return replace(
        request,
        approval_chain=new_chain,
        current_step=next_step,
        status=new_status,
        history=request.history + (entry,),
        updated_at=now,
    )


def apply_rejection(
    request: ApprovalRequest,
    actor_id: str,
    actor_name: str,
    now: datetime,
    notes: str = "",
    is_admin_override: bool = False,
) -> ApprovalRequest:
    """Reject at the current step; the whole request becomes rejected."""
    chain = list(request.approval_chain)
    if request.current_step < len(chain):
        chain[request.current_step] = replace(
            chain[request.current_step],
            status=StepStatus.REJECTED,
            action_date=now,
            notes=notes,
        )

    action = (
        ApprovalAction.ADMIN_OVERRIDE if is_admin_override
        else ApprovalAction.REJECTED
    )
    entry = make_history_entry(
        request, action, actor_id, actor_name, now,
        RequestStatus.REJECTED, notes,
    )
    return replace(
        request,
        approval_chain=tuple(chain),
        status=RequestStatus.REJECTED,
        history=request.history + (entry,),
        updated_at=now,
    )


def apply_cancellation(
    request: ApprovalRequest,
    actor_id: str,
    actor_name: str,
    now: datetime,
    reason: str = "",
) -> ApprovalRequest:
    entry = make_history_entry(
        request, ApprovalAction.CANCELLED, actor_id, actor_name, now,
        RequestStatus.CANCELLED, reason,
    )
    return replace(
        request,
        status=RequestStatus.CANCELLED,
        history=request.history + (entry,),
        updated_at=now,
    )


def apply_escalation(
    request: ApprovalRequest,
    now: datetime,
    escalation_days: int,
) -> ApprovalRequest | None:
    """Skip the stalled current step.

    A following step becomes current and the request moves to
    ``in_progress``.  On the last step the request becomes ``escalated``
    with ``current_step`` unchanged.

    Returns:
        The escalated request, or None if there is nothing to escalate.
    """
    step = request.current_step_item
    if step is None or step.status != StepStatus.PENDING:
        return None

    note = escalation_note(escalation_days)
    chain = list(request.approval_chain)
    chain[request.current_step] = replace(
        step, status=StepStatus.SKIPPED, action_date=now, notes=note,
    )

    if request.is_last_step:
        next_step = request.current_step
        new_status = RequestStatus.ESCALATED
        escalated_at = now
    else:
        next_step = request.current_step + 1
        new_status = RequestStatus.IN_PROGRESS
        escalated_at = request.escalated_at

    entry = make_history_entry(
        request, ApprovalAction.ESCALATED, SYSTEM_ACTOR_ID, SYSTEM_ACTOR_NAME,
        now, new_status, note,
    )
    return replace(
        request,
        approval_chain=tuple(chain),
        current_step=next_step,
        status=new_status,
        history=request.history + (entry,),
        updated_at=now,
        escalated_at=escalated_at,
    )
