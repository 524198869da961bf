"""Per-application wiring shared by the handlers."""

from __future__ import annotations

from dataclasses import dataclass, field

from flask import current_app, g
from sqlalchemy.orm import Session, sessionmaker

from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.rbac import DEFAULT_EVALUATOR, SUPER_ADMIN_ROLES, PermissionEvaluator
from erp_kernel.services.audit_service import AuditTrail
from erp_kernel.services.side_effects import SideEffectDispatcher

EXTENSION_KEY = "erp"


@dataclass
class ErpRuntime:
    session_factory: sessionmaker[Session]
    dispatcher: SideEffectDispatcher
    audit: AuditTrail
    evaluator: PermissionEvaluator = DEFAULT_EVALUATOR
    admin_roles: frozenset[str] = SUPER_ADMIN_ROLES
    clock: Clock = field(default_factory=SystemClock)
    default_page_size: int = 20
    max_page_size: int = 100
    slow_request_ms: int = 500


def get_runtime() -> ErpRuntime:
    return current_app.extensions[EXTENSION_KEY]


def get_db() -> Session:
    """Request-scoped session; closed (and rolled back if uncommitted) at teardown."""
    if "db_session" not in g:
        g.db_session = get_runtime().session_factory()
    return g.db_session


def close_db(exc: BaseException | None = None) -> None:
    session = g.pop("db_session", None)
    if session is not None:
        if exc is not None:
            session.rollback()
        session.close()


def employee_service():
    from erp_modules.hr.service import EmployeeService

    return EmployeeService(get_db())


def approval_service():
    from erp_kernel.services.approval_service import ApprovalService

    runtime = get_runtime()
    db = get_db()
    return ApprovalService(
        db,
        employee_service(),
        side_effects=runtime.dispatcher,
        audit=runtime.audit,
        clock=runtime.clock,
    )


def leave_service():
    from erp_modules.hr.service import LeaveService

    runtime = get_runtime()
    return LeaveService(
        get_db(),
        side_effects=runtime.dispatcher,
        clock=runtime.clock,
        audit=runtime.audit,
    )
