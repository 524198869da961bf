"""Admin console routes (``/api/v1/admin``): roles, permission catalog, audit log.  Super admins only."""

from __future__ import annotations

from flask import Blueprint, Request, request

from erp_api.audit import with_audit_log
from erp_api.auth import require_admin
from erp_api.responses import success_response
from erp_api.runtime import get_db, get_runtime
from erp_api.validation import parse_role
from erp_kernel.domain.pagination import get_pagination_params
from erp_kernel.exceptions import RequestValidationError
from erp_kernel.models.audit_log import AuditAction
from erp_kernel.services.audit_service import AuditLogReader
from erp_kernel.services.role_service import RoleService

admin_bp = Blueprint("admin", __name__, url_prefix="/api/v1/admin")

ROLES_TABLE = "roles"


def _role_before_change(req: Request):
    return RoleService(get_db()).get_role(req.view_args["role_id"]).to_dict()


@admin_bp.get("/roles")
@require_admin
def list_roles():
    return success_response([r.to_dict() for r in RoleService(get_db()).list_roles()])


@admin_bp.post("/roles")
@require_admin
@with_audit_log(ROLES_TABLE)
def create_role():
    fields = parse_role(request.get_json(silent=True))
    role = RoleService(get_db()).create_role(**fields)
    get_db().commit()
    return success_response(role.to_dict(), status=201)


@admin_bp.get("/roles/<role_id>")
@require_admin
def get_role(role_id: str):
    return success_response(RoleService(get_db()).get_role(role_id).to_dict())


@admin_bp.put("/roles/<role_id>")
@require_admin
@with_audit_log(ROLES_TABLE, get_old_value=_role_before_change)
def update_role(role_id: str):
    fields = parse_role(request.get_json(silent=True), partial=True)
    role = RoleService(get_db()).update_role(role_id, **fields)
    get_db().commit()
    return success_response(role.to_dict())


@admin_bp.delete("/roles/<role_id>")
@require_admin
@with_audit_log(ROLES_TABLE, get_old_value=_role_before_change)
def delete_role(role_id: str):
    RoleService(get_db()).delete_role(role_id)
    get_db().commit()
    return success_response({"id": role_id})


@admin_bp.get("/permissions")
@require_admin
def list_permissions():
    return success_response([p.to_dict() for p in RoleService(get_db()).list_permissions()])


@admin_bp.get("/logs")
@require_admin
def list_audit_logs():
    runtime = get_runtime()
    params = get_pagination_params(
        request.args,
        default_page_size=runtime.default_page_size,
        max_page_size=runtime.max_page_size,
    )
    action = request.args.get("action") or None
    if action is not None and action not in AuditAction.__members__:
        raise RequestValidationError([{"field": "action", "message": "unknown audit action"}])

    items, meta = AuditLogReader(get_db()).list_logs(
        table_name=request.args.get("tableName") or None,
        action=action,
        page=params.page,
        page_size=params.page_size,
    )
    return success_response(items, meta)
