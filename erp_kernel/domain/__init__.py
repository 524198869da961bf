"""
Pure domain layer.

Value objects and decision functions with NO dependencies on the ORM,
the database, or I/O (the system clock aside).
"""

from erp_kernel.domain.approval import (
    DOCUMENT_TRANSITIONS,
    STEP_TRANSITIONS,
    ApprovalDecision,
    ApprovalDocumentView,
    ApprovalListQuery,
    ApprovalStepView,
    ApprovalType,
    BatchResult,
    DocumentStatus,
    SequentialApprovalPolicy,
    StatusAggregationPolicy,
    StepSpec,
    StepStatus,
    Urgency,
    derive_document_status,
)
from erp_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from erp_kernel.domain.pagination import (
    PageMeta,
    PageParams,
    build_meta,
    get_pagination_params,
)
from erp_kernel.domain.rbac import (
    Action,
    Module,
    PermissionEvaluator,
    PermissionGrant,
    action_for_method,
    check_client_permission,
    get_module_from_path,
    has_permission,
)

__all__ = [
    "DOCUMENT_TRANSITIONS",
    "STEP_TRANSITIONS",
    "Action",
    "ApprovalDecision",
    "ApprovalDocumentView",
    "ApprovalListQuery",
    "ApprovalStepView",
    "ApprovalType",
    "BatchResult",
    "Clock",
    "DeterministicClock",
    "DocumentStatus",
    "Module",
    "PageMeta",
    "PageParams",
    "PermissionEvaluator",
    "PermissionGrant",
    "SequentialApprovalPolicy",
    "StatusAggregationPolicy",
    "StepSpec",
    "StepStatus",
    "SystemClock",
    "Urgency",
    "action_for_method",
    "build_meta",
    "check_client_permission",
    "derive_document_status",
    "get_module_from_path",
    "get_pagination_params",
    "has_permission",
]
