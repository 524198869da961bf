"""HR leave routes (``/api/v1/hr``)."""

from __future__ import annotations

from uuid import UUID

from flask import Blueprint, request

from erp_api.auth import ensure_permission, require_auth
from erp_api.responses import success_response
from erp_api.runtime import get_db, get_runtime, leave_service
from erp_api.validation import parse_batch, parse_create_leave, parse_leave_action
from erp_kernel.domain.pagination import get_pagination_params
from erp_kernel.domain.rbac import Action, Module
from erp_kernel.exceptions import RequestValidationError
from erp_modules.hr.models import LeaveStatus

hr_bp = Blueprint("hr", __name__, url_prefix="/api/v1/hr")

_LEAVE_ACTION_PERMISSIONS = {
    "approve": Action.APPROVE,
    "reject": Action.APPROVE,
    "cancel": Action.UPDATE,
}


@hr_bp.get("/leave")
def list_leaves():
    ensure_permission(Module.HR.value, Action.READ)
    runtime = get_runtime()
    params = get_pagination_params(
        request.args,
        default_page_size=runtime.default_page_size,
        max_page_size=runtime.max_page_size,
    )

    details = []
    employee_id = None
    if request.args.get("employeeId"):
        try:
            employee_id = UUID(request.args["employeeId"])
        except ValueError:
            details.append({"field": "employeeId", "message": "must be a valid id"})
    status = None
    if request.args.get("status"):
        try:
            status = LeaveStatus(request.args["status"])
        except ValueError:
            details.append({"field": "status", "message": "unknown leave status"})
    if details:
        raise RequestValidationError(details)

    items, meta = leave_service().list_leaves(
        employee_id=employee_id,
        status=status,
        page=params.page,
        page_size=params.page_size,
    )
    return success_response([leave.to_dict() for leave in items], meta)


@hr_bp.post("/leave")
def request_leave():
    ensure_permission(Module.HR.value, Action.CREATE)
    fields = parse_create_leave(request.get_json(silent=True))
    leave = leave_service().request_leave(**fields)
    get_db().commit()
    return success_response(leave.to_dict(), status=201)


@hr_bp.put("/leave")
@require_auth
def act_on_leave():
    leave_id, action = parse_leave_action(request.get_json(silent=True))
    ensure_permission(Module.HR.value, _LEAVE_ACTION_PERMISSIONS[action])
    service = leave_service()
    if action == "approve":
        leave = service.approve(leave_id)
    elif action == "reject":
        leave = service.reject(leave_id)
    else:
        leave = service.cancel(leave_id)
    get_db().commit()
    return success_response(leave.to_dict())


@hr_bp.post("/leave/batch")
def batch():
    ensure_permission(Module.HR.value, Action.APPROVE)
    ids, action, _comment = parse_batch(request.get_json(silent=True))
    result = leave_service().batch_process(ids, action)
    get_db().commit()
    return success_response(result.to_dict())
