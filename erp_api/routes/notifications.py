"""Notification inbox routes (``/api/v1/notifications``)."""

from __future__ import annotations

from flask import Blueprint, request

from erp_api.auth import get_principal, require_auth
from erp_api.responses import success_response
from erp_api.runtime import get_db
from erp_api.validation import parse_notification_action
from erp_kernel.domain.pagination import parse_int
from erp_kernel.services.notification_service import NotificationService

notifications_bp = Blueprint("notifications", __name__, url_prefix="/api/v1/notifications")

DEFAULT_LIMIT = 20
MAX_LIMIT = 50


@notifications_bp.get("")
@require_auth
def list_notifications():
    principal = get_principal()
    limit = parse_int(request.args.get("pageSize"))
    limit = DEFAULT_LIMIT if limit is None or limit < 1 else min(limit, MAX_LIMIT)
    unread_only = request.args.get("unreadOnly") == "true"

    service = NotificationService(get_db())
    items = service.list_for_user(principal.user_id, unread_only=unread_only, limit=limit)
    return success_response(
        [n.to_dict() for n in items],
        {"pageSize": limit, "unreadCount": service.unread_count(principal.user_id)},
    )


@notifications_bp.put("")
@require_auth
def update_notifications():
    principal = get_principal()
    action, notification_id = parse_notification_action(request.get_json(silent=True))
    service = NotificationService(get_db())

    if action == "read":
        data = service.mark_read(principal.user_id, notification_id).to_dict()
    elif action == "readAll":
        data = {"updated": service.mark_all_read(principal.user_id)}
    else:
        data = {"deleted": service.delete_read(principal.user_id)}
    get_db().commit()
    return success_response(data)
