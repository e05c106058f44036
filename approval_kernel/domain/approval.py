"""
Approval domain types (``approval_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for the hierarchical approval engine.  Defines the
request lifecycle state machine, chain step snapshots, history and audit
records, delegation windows, settings, caller context, and the result
types returned by the pure validators.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``models/``, ``services/``, or outer layers.

Invariants enforced
-------------------
* Lifecycle state machine -- ``REQUEST_TRANSITIONS`` defines the only valid
  status transitions.  Terminal states have no outgoing edges.
* Chain snapshot -- ``ApprovalChainStep`` copies approver identity at build
  time; later hierarchy changes never reach an existing request.
* Append-only history -- ``ApprovalRequest.history`` is a tuple; every
  state change produces a new request with exactly one extra entry.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Literal
from uuid import UUID


SYSTEM_ACTOR_ID = "system"
SYSTEM_ACTOR_NAME = "System / النظام"


# =========================================================================
# Enumerations
# =========================================================================


class RequestType(str, Enum):
    """HR request types that flow through the approval engine."""

    LEAVE = "leave"
    OVERTIME = "overtime"
    LOAN = "loan"


class RequestStatus(str, Enum):
    """Approval request lifecycle states."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    ESCALATED = "escalated"


REQUEST_TRANSITIONS: dict[RequestStatus, frozenset[RequestStatus]] = {
    RequestStatus.PENDING: frozenset({
        RequestStatus.IN_PROGRESS,
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.CANCELLED,
        RequestStatus.ESCALATED,
    }),
    RequestStatus.IN_PROGRESS: frozenset({
        RequestStatus.IN_PROGRESS,
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.CANCELLED,
        RequestStatus.ESCALATED,
    }),
    RequestStatus.ESCALATED: frozenset({
        RequestStatus.APPROVED,
        RequestStatus.REJECTED,
        RequestStatus.CANCELLED,
    }),
    RequestStatus.APPROVED: frozenset(),
    RequestStatus.REJECTED: frozenset(),
    RequestStatus.CANCELLED: frozenset(),
}

TERMINAL_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.APPROVED,
    RequestStatus.REJECTED,
    RequestStatus.CANCELLED,
})

# Statuses the escalation batch scans.
OPEN_REQUEST_STATUSES: frozenset[RequestStatus] = frozenset({
    RequestStatus.PENDING,
    RequestStatus.IN_PROGRESS,
})

# Statuses shown in an approver's inbox.
ACTIONABLE_REQUEST_STATUSES: frozenset[RequestStatus] = OPEN_REQUEST_STATUSES | {
    RequestStatus.ESCALATED,
}


class StepStatus(str, Enum):
    """Status of a single approver slot in the chain."""

    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SKIPPED = "skipped"


# Steps in these statuses no longer block later steps.
COMPLETED_STEP_STATUSES: frozenset[StepStatus] = frozenset({
    StepStatus.APPROVED,
    StepStatus.SKIPPED,
})


class ApprovalAction(str, Enum):
    """Actions recorded in request history and the audit log."""

    CREATED = "created"
    APPROVED = "approved"
    REJECTED = "rejected"
    CANCELLED = "cancelled"
    ESCALATED = "escalated"
    DELEGATED = "delegated"
    AUTO_APPROVED = "auto_approved"
    ADMIN_OVERRIDE = "admin_override"


class ApprovalRole(str, Enum):
    """Closed set of approval roles resolved from a permission map."""

    EMPLOYEE = "employee"
    MANAGER = "manager"
    HR = "hr"
    ADMIN = "admin"


class DenialReason(str, Enum):
    """Machine-readable reason attached to a denied validation."""

    REQUEST_CLOSED = "request_closed"
    CHAIN_COMPLETE = "chain_complete"
    NOT_CURRENT_APPROVER = "not_current_approver"
    SEQUENCE_VIOLATION = "sequence_violation"
    NOT_REQUESTER = "not_requester"
    APPROVAL_STARTED = "approval_started"
    NOT_SELF = "not_self"


# =========================================================================
# Org / Settings inputs
# =========================================================================


@dataclass(frozen=True)
class EmployeeInfo:
    """Read-only employee record from the external directory."""

    employee_id: str
    employee_name: str
    job_level: int
    job_title: str = ""
    department_id: str = ""
    department_name: str = ""
    manager_id: str | None = None


@dataclass(frozen=True)
class AutoApproveThreshold:
    """Numeric ceiling on one request-data field for one request type.

    Example: leave requests with ``days <= 1`` skip the chain.
    """

    request_type: RequestType
    field: str
    max_value: Decimal


@dataclass(frozen=True)
class ApprovalSettings:
    """Org-wide approval settings (singleton document).

    ``escalation_days == 0`` disables escalation.  ``reserve_hr_slot`` keeps
    one slot of ``max_approval_levels`` free for the HR step so truncation
    can never drop it.
    """

    max_approval_levels: int = 4
    hr_always_final_level: bool = True
    escalation_days: int = 3
    allow_delegation: bool = True
    auto_approve_thresholds: tuple[AutoApproveThreshold, ...] = ()
    reserve_hr_slot: bool = False


def validate_settings(settings: ApprovalSettings) -> ApprovalSettings:
    """Range-check a settings document; returns it unchanged when valid.

    Raises:
        InvalidSettingsError: on the first out-of-range field.
    """
    from approval_kernel.exceptions import InvalidSettingsError

    levels = settings.max_approval_levels
    if isinstance(levels, bool) or not isinstance(levels, int) or levels < 1:
        raise InvalidSettingsError(
            "max_approval_levels", f"must be an integer >= 1, got {levels!r}",
        )

    days = settings.escalation_days
    if isinstance(days, bool) or not isinstance(days, int) or days < 0:
        raise InvalidSettingsError(
            "escalation_days", f"must be an integer >= 0, got {days!r}",
        )

    for threshold in settings.auto_approve_thresholds:
        if not threshold.field:
            raise InvalidSettingsError(
                "auto_approve_thresholds", "threshold field name is empty",
            )
        if threshold.max_value < 0:
            raise InvalidSettingsError(
                "auto_approve_thresholds",
                f"max_value for {threshold.request_type.value}.{threshold.field} "
                f"must be >= 0, got {threshold.max_value}",
            )

    return settings


# =========================================================================
# Chain, History, Request
# =========================================================================


@dataclass(frozen=True)
class ApprovalChainStep:
    """Snapshot of a single approver slot.

    Approver identity fields are copied from the directory at build time.
    Only ``status``, ``action_date`` and ``notes`` change afterwards.
    """

    approver_employee_id: str
    approver_name: str
    approver_job_title: str
    level: int
    department_id: str
    department_name: str
    status: StepStatus = StepStatus.PENDING
    action_date: datetime | None = None
    notes: str = ""
    delegated_to: str | None = None
    delegated_to_name: str | None = None


@dataclass(frozen=True)
class HistoryEntry:
    """One append-only history record embedded in a request."""

    step: int
    action: ApprovalAction
    performed_by: str
    performed_by_name: str
    timestamp: datetime
    notes: str
    previous_status: RequestStatus
    new_status: RequestStatus


@dataclass(frozen=True)
class ApprovalRequest:
    """Immutable snapshot of an approval request.

    ``version`` is the optimistic-concurrency token read with the request;
    writes must present it back to the store.
    """

    request_id: UUID
    request_type: RequestType
    employee_id: str
    employee_name: str
    department_id: str
    request_data: dict[str, Any] = field(default_factory=dict)
    approval_chain: tuple[ApprovalChainStep, ...] = ()
    current_step: int = 0
    status: RequestStatus = RequestStatus.PENDING
    history: tuple[HistoryEntry, ...] = ()
    source_request_id: str | None = None
    created_by: str = ""
    created_at: datetime | None = None
    updated_at: datetime | None = None
    escalated_at: datetime | None = None
    version: int = 1

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_REQUEST_STATUSES

    @property
    def current_step_item(self) -> ApprovalChainStep | None:
        """The step awaiting action, or None once the chain is exhausted."""
        if 0 <= self.current_step < len(self.approval_chain):
            return self.approval_chain[self.current_step]
        return None

    @property
    def is_last_step(self) -> bool:
        return self.current_step == len(self.approval_chain) - 1


# =========================================================================
# Delegation and Audit
# =========================================================================


ALL_REQUEST_TYPES: Literal["all"] = "all"


@dataclass(frozen=True)
class Delegation:
    """Time-bounded handoff of one approver's authority to another.

    ``start_date`` and ``end_date`` are both inclusive.
    """

    delegation_id: UUID
    from_employee_id: str
    from_employee_name: str
    to_employee_id: str
    to_employee_name: str
    start_date: date
    end_date: date
    request_types: Literal["all"] | tuple[RequestType, ...] = ALL_REQUEST_TYPES
    is_active: bool = True
    created_at: datetime | None = None
    created_by: str = ""

    def covers(self, request_type: RequestType, on_date: date) -> bool:
        """True if this delegation applies to ``request_type`` on ``on_date``."""
        if not self.is_active:
            return False
        if on_date < self.start_date or on_date > self.end_date:
            return False
        if self.request_types == ALL_REQUEST_TYPES:
            return True
        return RequestType(request_type) in self.request_types


@dataclass(frozen=True)
class AuditLogEntry:
    """Append-only audit record for one action on a request."""

    entry_id: UUID
    request_id: UUID
    request_type: RequestType
    employee_id: str
    action: ApprovalAction
    performed_by: str
    performed_by_name: str
    step: int | None
    metadata: dict[str, Any]
    timestamp: datetime


# =========================================================================
# Caller context and validation results
# =========================================================================


@dataclass(frozen=True)
class CallerContext:
    """Pre-authenticated caller supplied by the session layer."""

    employee_id: str
    employee_name: str
    permissions: Mapping[str, bool] = field(default_factory=dict)


@dataclass(frozen=True)
class ValidationResult:
    """Outcome of a create/cancel permission check."""

    allowed: bool
    error: str | None = None
    reason: DenialReason | None = None


@dataclass(frozen=True)
class ActionValidationResult:
    """Outcome of an approve/reject permission check."""

    allowed: bool
    is_admin_override: bool = False
    error: str | None = None
    reason: DenialReason | None = None


@dataclass(frozen=True)
class ChainBuildResult:
    """Chain produced by the builder plus any non-fatal error messages.

    An empty chain with no errors means "auto-approved, no steps".
    """

    chain: tuple[ApprovalChainStep, ...] = ()
    errors: tuple[str, ...] = ()


@dataclass(frozen=True)
class EscalationResult:
    """Summary of one escalation batch run."""

    processed: int = 0
    escalated: int = 0
    errors: tuple[str, ...] = ()
