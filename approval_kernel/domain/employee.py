"""
Employee directory seam (``approval_kernel.domain.employee``).

The employee directory is owned by the HR module, not by this kernel.
The chain builder only needs two reads, expressed here as a Protocol.
``StaticEmployeeDirectory`` adapts an in-memory roster (an export, a
fixture, or a list fetched once per request) to that Protocol.
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Protocol

from approval_kernel.domain.approval import EmployeeInfo


class EmployeeDirectory(Protocol):
    """Pluggable interface for employee lookups."""

    def get_by_id(self, employee_id: str) -> EmployeeInfo | None:
        """Return the employee, or None if unknown."""
        ...

    def list(self) -> list[EmployeeInfo]:
        """Return every employee known to the directory."""
        ...


class StaticEmployeeDirectory:
    """EmployeeDirectory over a fixed roster. Later duplicates win."""

    def __init__(self, employees: Iterable[EmployeeInfo]):
        self._by_id: dict[str, EmployeeInfo] = {}
        for employee in employees:
            self._by_id[employee.employee_id] = employee

    def get_by_id(self, employee_id: str) -> EmployeeInfo | None:
        return self._by_id.get(employee_id)

    def list(self) -> list[EmployeeInfo]:
        return list(self._by_id.values())

    def __len__(self) -> int:
        return len(self._by_id)
