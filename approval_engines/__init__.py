"""
Module: approval_engines
Responsibility:
    Package entrypoint that re-exports the public symbols of the pure
    approval engines.  This is the canonical import surface for the
    service layer.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ (and sibling engine modules).

Invariants enforced:
    - Purity: engines NEVER call ``datetime.now()`` or ``date.today()``.
      Timestamps are passed in by the caller.
    - Determinism: identical inputs always produce identical outputs.

Usage:
    from approval_engines import build_approval_chain, validate_action
    from approval_engines.transitions import apply_escalation
"""

from approval_engines.chain_builder import (
    build_approval_chain,
    collect_manager_chain,
    preview_approval_chain,
    to_chain_step,
    try_auto_approve,
    validate_chain,
)
from approval_engines.rbac import (
    can_act_on_request,
    can_view_all_requests,
    check_auto_approve,
    resolve_approval_role,
    validate_action,
    validate_cancel,
    validate_create,
)
from approval_engines.transitions import (
    apply_approval,
    apply_cancellation,
    apply_escalation,
    apply_rejection,
    derive_status_from_chain,
    escalation_note,
    is_valid_transition,
    make_history_entry,
)

__all__ = [
    # Chain builder
    "build_approval_chain",
    "collect_manager_chain",
    "preview_approval_chain",
    "to_chain_step",
    "try_auto_approve",
    "validate_chain",
    # RBAC
    "can_act_on_request",
    "can_view_all_requests",
    "check_auto_approve",
    "resolve_approval_role",
    "validate_action",
    "validate_cancel",
    "validate_create",
    # Transitions
    "apply_approval",
    "apply_cancellation",
    "apply_escalation",
    "apply_rejection",
    "derive_status_from_chain",
    "escalation_note",
    "is_valid_transition",
    "make_history_entry",
]
