"""ORM models for the approval kernel."""

from approval_kernel.models.approval import ApprovalRequestModel
from approval_kernel.models.audit_log import ApprovalAuditLogModel
from approval_kernel.models.delegation import DelegationModel
from approval_kernel.models.settings import GLOBAL_SETTINGS_KEY, ApprovalSettingsModel

__all__ = [
    "ApprovalRequestModel",
    "ApprovalAuditLogModel",
    "DelegationModel",
    "ApprovalSettingsModel",
    "GLOBAL_SETTINGS_KEY",
]
