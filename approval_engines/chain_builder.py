"""
approval_engines.chain_builder -- Snapshot-based approval chain construction.

Responsibility:
    Derive the ordered list of approver slots for a request from the
    requester's manager hierarchy and the org-wide settings.  The chain is a
    frozen copy: once stored on a request, later hierarchy changes never
    reach it.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import approval_kernel/domain/ types.

Invariants enforced:
    - Cycle safety: the upward walk keeps a visited-manager set and a hard
      iteration cap, so a managerId loop (A -> B -> A) terminates.
    - Ordering: steps ascend by job level (first-line manager first).
    - Cap: ``len(chain) <= settings.max_approval_levels``.
    - No self-approval: only managers strictly above the requester's level
      become candidates, and HR is never appended for its own request.

Failure modes:
    - Returns ``ChainBuildResult(chain=(), errors=[...])`` when the requester
      has no manager or no candidate is found.  Never raises.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from typing import Any

from approval_engines.rbac import check_auto_approve
from approval_kernel.domain.approval import (
    ApprovalChainStep,
    ApprovalSettings,
    ChainBuildResult,
    EmployeeInfo,
    RequestType,
    StepStatus,
)

ERR_NO_MANAGER = "Employee has no direct manager; cannot build an approval chain"
ERR_NO_CANDIDATES = "No managers found above the employee in the reporting line"
ERR_HR_NOT_FOUND = "Configured HR approver was not found in the employee directory"
ERR_CHAIN_EMPTY = "Approval chain is empty"
ERR_DUPLICATE_APPROVER = "Approval chain contains a duplicate approver"


def collect_manager_chain(
    employee: EmployeeInfo,
    all_employees: Sequence[EmployeeInfo],
    max_levels: int,
) -> list[EmployeeInfo]:
    """Walk ``manager_id`` upward and return approver candidates.

    Only managers whose ``job_level`` is strictly greater than the
    requester's are accepted, which filters out flat or lateral "manager"
    records.  The walk stops after ``max_levels`` candidates, on a repeated
    manager id, on an unknown id, or after visiting every known employee.

    Returns:
        Candidates sorted ascending by ``job_level`` (stable).
    """
    by_id = {e.employee_id: e for e in all_employees}
    candidates: list[EmployeeInfo] = []
    visited: set[str] = set()
    current = employee

    for _ in range(len(by_id) + 1):
        manager_id = current.manager_id
        if not manager_id or manager_id in visited or len(candidates) >= max_levels:
            break
        visited.add(manager_id)

        manager = by_id.get(manager_id)
        if manager is None:
            break

        if manager.job_level > employee.job_level:
            candidates.append(manager)

        current = manager

    candidates.sort(key=lambda e: e.job_level)
    return candidates


def to_chain_step(employee: EmployeeInfo) -> ApprovalChainStep:
    """Freeze an employee record into a pending chain step."""
    return ApprovalChainStep(
        approver_employee_id=employee.employee_id,
        approver_name=employee.employee_name,
        approver_job_title=employee.job_title,
        level=employee.job_level,
        department_id=employee.department_id,
        department_name=employee.department_name,
        status=StepStatus.PENDING,
    )


def build_approval_chain(
    employee: EmployeeInfo,
    all_employees: Sequence[EmployeeInfo],
    settings: ApprovalSettings,
    hr_employee_id: str | None = None,
) -> ChainBuildResult:
    """Build the full approval chain for a request.

    With ``hr_always_final_level`` the HR employee is appended after the
    managers unless already present.  The chain is then truncated to
    ``max_approval_levels`` keeping the closest approvers; without
    ``reserve_hr_slot`` that truncation can drop the HR step.

    Args:
        employee: The requester.
        all_employees: Directory snapshot used to resolve managers and HR.
        settings: Org-wide approval settings.
        hr_employee_id: Employee id of the HR approver, if any.

    Returns:
        ChainBuildResult with the frozen chain and any error messages.
    """
    if not employee.manager_id:
        return ChainBuildResult(chain=(), errors=(ERR_NO_MANAGER,))

    managers = collect_manager_chain(
        employee, all_employees, settings.max_approval_levels,
    )
    if not managers:
        return ChainBuildResult(chain=(), errors=(ERR_NO_CANDIDATES,))

    errors: list[str] = []
    chain = [to_chain_step(m) for m in managers]

    hr_step: ApprovalChainStep | None = None
    if settings.hr_always_final_level and hr_employee_id:
        already_in_chain = any(
            step.approver_employee_id == hr_employee_id for step in chain
        )
        if not already_in_chain and hr_employee_id != employee.employee_id:
            hr_employee = next(
                (e for e in all_employees if e.employee_id == hr_employee_id),
                None,
            )
            if hr_employee is None:
                errors.append(ERR_HR_NOT_FOUND)
            else:
                hr_step = to_chain_step(hr_employee)

    if hr_step is not None:
        if settings.reserve_hr_slot:
            chain = chain[: max(settings.max_approval_levels - 1, 0)]
        chain.append(hr_step)

    chain = chain[: settings.max_approval_levels]
    return ChainBuildResult(chain=tuple(chain), errors=tuple(errors))


def preview_approval_chain(
    employee: EmployeeInfo,
    all_employees: Sequence[EmployeeInfo],
    settings: ApprovalSettings,
    hr_employee_id: str | None = None,
) -> ChainBuildResult:
    """Build a chain for display in a request form. Never persisted."""
    return build_approval_chain(employee, all_employees, settings, hr_employee_id)


def try_auto_approve(
    request_type: RequestType,
    request_data: Mapping[str, Any],
    settings: ApprovalSettings,
) -> ChainBuildResult | None:
    """Return an empty chain if the request is inside every auto-approve threshold.

    ``None`` means the normal chain must be built.
    """
    if not check_auto_approve(request_type, request_data, settings):
        return None
    return ChainBuildResult(chain=(), errors=())


def validate_chain(
    chain: Sequence[ApprovalChainStep],
    settings: ApprovalSettings,
) -> list[str]:
    """Post-hoc sanity check of a built chain. Empty list means valid."""
    errors: list[str] = []

    if not chain:
        errors.append(ERR_CHAIN_EMPTY)

    if len(chain) > settings.max_approval_levels:
        errors.append(
            f"Approval chain exceeds the maximum of "
            f"{settings.max_approval_levels} levels"
        )

    approver_ids = [step.approver_employee_id for step in chain]
    if len(set(approver_ids)) != len(approver_ids):
        errors.append(ERR_DUPLICATE_APPROVER)

    return errors
