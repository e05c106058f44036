"""Services for the approval kernel (write side)."""

from approval_kernel.services.approval_service import ApprovalService
from approval_kernel.services.audit_service import AuditService
from approval_kernel.services.delegation_service import DelegationService
from approval_kernel.services.escalation_service import EscalationService
from approval_kernel.services.request_store import RequestStore
from approval_kernel.services.settings_service import SettingsService

__all__ = [
    "ApprovalService",
    "AuditService",
    "DelegationService",
    "EscalationService",
    "RequestStore",
    "SettingsService",
]
