"""Approval document routes (``/api/v1/approval``)."""

from __future__ import annotations

from uuid import UUID

from flask import Blueprint, request

from erp_api.auth import ensure_permission, require_auth, require_permission
from erp_api.responses import success_response
from erp_api.runtime import approval_service, employee_service, get_db, get_runtime
from erp_api.validation import parse_batch, parse_create_document, parse_document_action
from erp_kernel.domain.approval import ApprovalDecision, ApprovalListQuery, DocumentStatus
from erp_kernel.domain.pagination import get_pagination_params
from erp_kernel.domain.rbac import Action, Module
from erp_kernel.exceptions import RequestValidationError

approval_bp = Blueprint("approval", __name__, url_prefix="/api/v1/approval")

_DOCUMENT_ACTION_PERMISSIONS = {
    "submit": Action.UPDATE,
    "cancel": Action.UPDATE,
    "approve": Action.APPROVE,
    "reject": Action.APPROVE,
}


def _flag(name: str) -> bool:
    return request.args.get(name) == "true" or request.args.get("filter") == name


@approval_bp.get("/documents")
def list_documents():
    principal = ensure_permission(Module.APPROVAL.value, Action.READ)
    runtime = get_runtime()
    params = get_pagination_params(
        request.args,
        default_page_size=runtime.default_page_size,
        max_page_size=runtime.max_page_size,
    )

    status = None
    if request.args.get("status"):
        try:
            status = DocumentStatus(request.args["status"])
        except ValueError:
            raise RequestValidationError(
                [{"field": "status", "message": "unknown document status"}]
            ) from None

    drafter_id = None
    if request.args.get("drafterId"):
        try:
            drafter_id = UUID(request.args["drafterId"])
        except ValueError:
            raise RequestValidationError(
                [{"field": "drafterId", "message": "must be a valid id"}]
            ) from None

    my_drafts = _flag("myDrafts")
    my_approvals = _flag("myApprovals")
    actor_employee_id = principal.employee_id
    if (my_drafts or my_approvals) and actor_employee_id is None:
        actor_employee_id = employee_service().employee_id_for_user(principal.user_id)

    items, meta = approval_service().list_documents(ApprovalListQuery(
        status=status,
        drafter_id=drafter_id,
        actor_employee_id=actor_employee_id,
        my_drafts=my_drafts,
        my_approvals=my_approvals,
        page=params.page,
        page_size=params.page_size,
    ))
    return success_response([d.to_dict() for d in items], meta)


@approval_bp.post("/documents")
def create_document():
    principal = ensure_permission(Module.APPROVAL.value, Action.CREATE)
    fields = parse_create_document(request.get_json(silent=True))
    document = approval_service().create_document(principal.user_id, **fields)
    get_db().commit()
    return success_response(document.to_dict(), status=201)


@approval_bp.get("/documents/<document_id>")
@require_permission(Module.APPROVAL.value, Action.READ)
def get_document(document_id: str):
    return success_response(approval_service().get_document(document_id).to_dict())


@approval_bp.put("/documents/<document_id>")
@require_auth
def act_on_document(document_id: str):
    action, comment = parse_document_action(request.get_json(silent=True))
    principal = ensure_permission(Module.APPROVAL.value, _DOCUMENT_ACTION_PERMISSIONS[action])
    service = approval_service()

    if action == "submit":
        document = service.submit(document_id, principal.user_id)
    elif action == "cancel":
        document = service.cancel(document_id, principal.user_id)
    else:
        document = service.decide(
            document_id, principal.user_id, ApprovalDecision(action), comment,
        )
    get_db().commit()
    return success_response(document.to_dict())


@approval_bp.post("/batch")
def batch():
    principal = ensure_permission(Module.APPROVAL.value, Action.APPROVE)
    ids, action, comment = parse_batch(request.get_json(silent=True))
    result = approval_service().batch_process(ids, action, principal.user_id, comment)
    get_db().commit()
    return success_response(result.to_dict())
