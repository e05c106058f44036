"""
Typed Exception Hierarchy for the Approval Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers (HTTP handlers, cron jobs) need to tell a permission denial from a
concurrent-write conflict without parsing message text.  Every error here:
  1. Has a TYPED exception class (catch by type, not message)
  2. Has a CODE class attribute (machine-readable, API-safe)
  3. Carries structured DATA as attributes

The pure validators in ``approval_engines.rbac`` never raise -- they return
``ValidationResult`` objects.  The service layer turns a denied result into
one of the permission exceptions below, keeping the validator's message
verbatim in ``reason``.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ApprovalKernelError (base)
    |
    +-- RequestError
    |   +-- ApprovalNotFoundError
    |   +-- EmployeeNotFoundError
    |   +-- ApprovalChainBuildError
    |   +-- InvalidRequestTransitionError
    |
    +-- PermissionDeniedError
    |   +-- ApprovalPermissionError
    |       +-- RequestClosedError
    |       +-- SequenceViolationError
    |
    +-- DelegationError
    |   +-- DelegationNotFoundError
    |   +-- InvalidDelegationError
    |
    +-- ConcurrencyError
    |   +-- OptimisticLockError
    |
    +-- ImmutabilityError
    |   +-- ImmutabilityViolationError
    |
    +-- ConfigurationError
        +-- InvalidSettingsError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                      | When Raised
--------------|---------------------------|------------------------------------
Request       | APPROVAL_NOT_FOUND        | Request ID doesn't exist
              | EMPLOYEE_NOT_FOUND        | Requester missing from directory
              | CHAIN_BUILD_FAILED        | No usable approval chain
              | INVALID_TRANSITION        | Status change not in the state machine
--------------|---------------------------|------------------------------------
Permission    | APPROVAL_PERMISSION_DENIED| Caller may not act on the request
              | REQUEST_CLOSED            | Request is approved/rejected/cancelled
              | SEQUENCE_VIOLATION        | An earlier step is still open
--------------|---------------------------|------------------------------------
Delegation    | DELEGATION_NOT_FOUND      | Delegation ID doesn't exist
              | INVALID_DELEGATION        | Bad date range or self-delegation
--------------|---------------------------|------------------------------------
Concurrency   | OPTIMISTIC_LOCK_CONFLICT  | Request changed since it was read
--------------|---------------------------|------------------------------------
Immutability  | IMMUTABILITY_VIOLATION    | Modifying an audit log row
--------------|---------------------------|------------------------------------
Configuration | INVALID_SETTINGS          | Settings value out of range

===============================================================================
HANDLING PATTERNS
===============================================================================

1. SURFACE DENIALS VERBATIM:

    try:
        service.approve_request(request_id, caller)
    except ApprovalPermissionError as e:
        return {"error": e.code, "message": e.reason}

2. RETRY ON CONCURRENCY CONFLICTS (re-read, re-validate, re-apply):

    except OptimisticLockError:
        request = service.get_request(request_id)
        ...
"""


class ApprovalKernelError(Exception):
    """
    Base exception for all approval kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "APPROVAL_KERNEL_ERROR"


# Request-related exceptions


class RequestError(ApprovalKernelError):
    """Base exception for approval request errors."""

    code: str = "REQUEST_ERROR"


class ApprovalNotFoundError(RequestError):
    """Approval request not found."""

    code: str = "APPROVAL_NOT_FOUND"

    def __init__(self, request_id: str):
        self.request_id = request_id
        super().__init__(f"Approval request not found: {request_id}")


class EmployeeNotFoundError(RequestError):
    """Employee missing from the directory."""

    code: str = "EMPLOYEE_NOT_FOUND"

    def __init__(self, employee_id: str):
        self.employee_id = employee_id
        super().__init__(f"Employee not found: {employee_id}")


class ApprovalChainBuildError(RequestError):
    """
    No usable approval chain could be built for the requester.

    ``errors`` holds the builder's human-readable messages unchanged.
    """

    code: str = "CHAIN_BUILD_FAILED"

    def __init__(self, employee_id: str, errors: list[str]):
        self.employee_id = employee_id
        self.errors = list(errors)
        detail = " | ".join(self.errors) or "failed to build approval chain"
        super().__init__(
            f"Cannot build approval chain for {employee_id}: {detail}"
        )


class InvalidRequestTransitionError(RequestError):
    """Requested status change is not allowed by the lifecycle state machine."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid approval request transition: {from_status} -> {to_status}"
        )


# Permission-related exceptions


class PermissionDeniedError(ApprovalKernelError):
    """Base exception for authorization failures."""

    code: str = "PERMISSION_DENIED"


class ApprovalPermissionError(PermissionDeniedError):
    """
    The caller may not perform this operation.

    ``reason`` is the end-user message produced by the validator and
    ``denial`` its machine-readable DenialReason value.
    """

    code: str = "APPROVAL_PERMISSION_DENIED"

    def __init__(
        self,
        reason: str,
        denial: str | None = None,
        request_id: str | None = None,
        actor_id: str | None = None,
    ):
        self.reason = reason
        self.denial = denial
        self.request_id = request_id
        self.actor_id = actor_id
        super().__init__(reason)


class RequestClosedError(ApprovalPermissionError):
    """Request is in a terminal status. Never retryable."""

    code: str = "REQUEST_CLOSED"


class SequenceViolationError(ApprovalPermissionError):
    """An earlier approval step has not been approved or skipped yet."""

    code: str = "SEQUENCE_VIOLATION"


# Delegation-related exceptions


class DelegationError(ApprovalKernelError):
    """Base exception for delegation errors."""

    code: str = "DELEGATION_ERROR"


class DelegationNotFoundError(DelegationError):
    """Delegation not found."""

    code: str = "DELEGATION_NOT_FOUND"

    def __init__(self, delegation_id: str):
        self.delegation_id = delegation_id
        super().__init__(f"Delegation not found: {delegation_id}")


class InvalidDelegationError(DelegationError):
    """Delegation data is inconsistent."""

    code: str = "INVALID_DELEGATION"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid delegation: {reason}")


# Concurrency-related exceptions


class ConcurrencyError(ApprovalKernelError):
    """Base exception for concurrency-related errors."""

    code: str = "CONCURRENCY_ERROR"


class OptimisticLockError(ConcurrencyError):
    """
    Optimistic locking conflict detected.

    The request was modified (by a human action or the escalation batch)
    after the caller read it.  Re-read and re-validate before retrying.
    """

    code: str = "OPTIMISTIC_LOCK_CONFLICT"

    def __init__(self, entity_type: str, entity_id: str, expected_version: int):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.expected_version = expected_version
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            f"expected version {expected_version}, "
            "entity was modified by another transaction"
        )


# Immutability-related exceptions


class ImmutabilityError(ApprovalKernelError):
    """Base exception for immutability-related errors."""

    code: str = "IMMUTABILITY_ERROR"


class ImmutabilityViolationError(ImmutabilityError):
    """Attempted to modify or delete an append-only record."""

    code: str = "IMMUTABILITY_VIOLATION"

    def __init__(self, entity_type: str, entity_id: str, reason: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        self.reason = reason
        super().__init__(
            f"Immutability violation on {entity_type} {entity_id}: {reason}"
        )


# Configuration-related exceptions


class ConfigurationError(ApprovalKernelError):
    """Base exception for configuration errors."""

    code: str = "CONFIGURATION_ERROR"


class InvalidSettingsError(ConfigurationError):
    """An approval settings value is out of range or malformed."""

    code: str = "INVALID_SETTINGS"

    def __init__(self, field: str, reason: str):
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid approval setting '{field}': {reason}")
