"""Kernel services: numbering, approval lifecycle, roles, audit side effects."""

from erp_kernel.services.approval_service import ApprovalService, EmployeeDirectory
from erp_kernel.services.audit_service import AuditTrail
from erp_kernel.services.notification_service import NotificationService
from erp_kernel.services.role_service import Principal, RoleService, RoleView
from erp_kernel.services.sequence_service import (
    DocumentNumberService,
    DocumentSequenceCounter,
    format_document_number,
    year_month_of,
)
from erp_kernel.services.side_effects import (
    ActorContext,
    DispatchMode,
    SideEffectDispatcher,
)

__all__ = [
    "ActorContext",
    "ApprovalService",
    "AuditTrail",
    "DispatchMode",
    "DocumentNumberService",
    "DocumentSequenceCounter",
    "EmployeeDirectory",
    "NotificationService",
    "Principal",
    "RoleService",
    "RoleView",
    "SideEffectDispatcher",
    "format_document_number",
    "year_month_of",
]
