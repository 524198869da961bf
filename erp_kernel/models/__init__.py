"""ORM models for the ERP kernel."""

from erp_kernel.models.approval import ApprovalDocumentModel, ApprovalStepModel
from erp_kernel.models.audit_log import AuditAction, AuditLog
from erp_kernel.models.identity import (
    Permission,
    Role,
    RolePermission,
    User,
    UserPermission,
    UserRole,
)
from erp_kernel.models.notification import Notification, NotificationType

__all__ = [
    "ApprovalDocumentModel",
    "ApprovalStepModel",
    "AuditAction",
    "AuditLog",
    "Notification",
    "NotificationType",
    "Permission",
    "Role",
    "RolePermission",
    "User",
    "UserPermission",
    "UserRole",
]
