"""
Pure domain layer.

Value objects and protocols with NO dependencies on:
- ORM (SQLAlchemy)
- Database
- Wall-clock time (injected via Clock)
- I/O

All domain objects are immutable.
"""

from approval_kernel.domain.approval import (
    ACTIONABLE_REQUEST_STATUSES,
    ALL_REQUEST_TYPES,
    COMPLETED_STEP_STATUSES,
    OPEN_REQUEST_STATUSES,
    REQUEST_TRANSITIONS,
    SYSTEM_ACTOR_ID,
    SYSTEM_ACTOR_NAME,
    TERMINAL_REQUEST_STATUSES,
    ActionValidationResult,
    ApprovalAction,
    ApprovalChainStep,
    ApprovalRequest,
    ApprovalRole,
    ApprovalSettings,
    AuditLogEntry,
    AutoApproveThreshold,
    CallerContext,
    ChainBuildResult,
    Delegation,
    DenialReason,
    EmployeeInfo,
    EscalationResult,
    HistoryEntry,
    RequestStatus,
    RequestType,
    StepStatus,
    ValidationResult,
    validate_settings,
)
from approval_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from approval_kernel.domain.employee import EmployeeDirectory, StaticEmployeeDirectory

__all__ = [
    # State machine
    "REQUEST_TRANSITIONS",
    "TERMINAL_REQUEST_STATUSES",
    "OPEN_REQUEST_STATUSES",
    "ACTIONABLE_REQUEST_STATUSES",
    "ALL_REQUEST_TYPES",
    "COMPLETED_STEP_STATUSES",
    "RequestStatus",
    "StepStatus",
    "RequestType",
    "ApprovalAction",
    "ApprovalRole",
    "DenialReason",
    # Records
    "EmployeeInfo",
    "ApprovalSettings",
    "AutoApproveThreshold",
    "ApprovalChainStep",
    "HistoryEntry",
    "ApprovalRequest",
    "Delegation",
    "AuditLogEntry",
    "CallerContext",
    # Results
    "ValidationResult",
    "ActionValidationResult",
    "ChainBuildResult",
    "EscalationResult",
    "validate_settings",
    # Seams
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "EmployeeDirectory",
    "StaticEmployeeDirectory",
    "SYSTEM_ACTOR_ID",
    "SYSTEM_ACTOR_NAME",
]
