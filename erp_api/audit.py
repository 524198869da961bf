"""
HTTP audit wrapper.

``with_audit_log`` records one audit row per 2xx mutating request,
whatever the shape of its payload.
The write goes through the side-effect dispatcher, so it never delays or
fails the response.
"""

from __future__ import annotations

import io
from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import Request, make_response, request

from erp_api.runtime import get_runtime
from erp_kernel.logging_config import get_logger
from erp_kernel.models.audit_log import AuditAction

logger = get_logger("api.audit")

_METHOD_ACTIONS = {
    "POST": AuditAction.CREATE,
    "PUT": AuditAction.UPDATE,
    "PATCH": AuditAction.UPDATE,
    "DELETE": AuditAction.DELETE,
}

DEFAULT_IP = "0.0.0.0"


def client_ip(req: Request) -> str:
    """First X-Forwarded-For hop, then X-Real-IP, then the peer address."""
    forwarded = req.headers.get("X-Forwarded-For")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    real_ip = req.headers.get("X-Real-IP")
    if real_ip:
        return real_ip.strip()
    return req.remote_addr or DEFAULT_IP


def _request_copy(req: Request) -> Request:
    """A fresh Request over the buffered body; the original stays readable."""
    body = req.get_data(cache=True)
    environ = dict(req.environ)
    environ["wsgi.input"] = io.BytesIO(body)
    environ["CONTENT_LENGTH"] = str(len(body))
    copy = Request(environ)
    copy.view_args = dict(req.view_args or {})
    return copy


def with_audit_log(
    table_name: str,
    action: AuditAction | str | None = None,
    get_record_id: Callable[[Request, Any], Any] | None = None,
    get_old_value: Callable[[Request], Any] | None = None,
) -> Callable:
    """Audit a handler.

    The action defaults from the HTTP method; GET without an explicit
    action is not audited.
    """

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            audit_action = AuditAction(action) if action else _METHOD_ACTIONS.get(request.method)
            if audit_action is None:
                return fn(*args, **kwargs)

            old_value = None
            if get_old_value is not None and audit_action in (AuditAction.UPDATE, AuditAction.DELETE):
                try:
                    old_value = get_old_value(_request_copy(request))
                except Exception:
                    logger.debug(
                        "audit_old_value_failed",
                        extra={"table_name": table_name},
                        exc_info=True,
                    )

            response = make_response(fn(*args, **kwargs))
            if 200 <= response.status_code < 300:
                _record(response, audit_action, table_name, old_value, get_record_id)
            return response

        return wrapper

    return decorator


def _record(response, audit_action, table_name, old_value, get_record_id) -> None:
    """Every 2xx is audited; the record id is filled in only when the payload names one."""
    body = response.get_json(silent=True)
    data = body.get("data") if isinstance(body, dict) and body.get("success") is True else None

    record_id = None
    if get_record_id is not None and data is not None:
        try:
            record_id = get_record_id(request, data)
        except Exception:
            logger.debug("audit_record_id_failed", extra={"table_name": table_name}, exc_info=True)
    elif isinstance(data, dict):
        record_id = data.get("id")
    record_id = str(record_id) if record_id is not None else None

    runtime = get_runtime()
    runtime.dispatcher.submit(
        runtime.audit.write_audit_log,
        audit_action,
        table_name,
        record_id=record_id,
        old_value=old_value,
        new_value={"id": record_id} if record_id is not None else None,
        ip_address=client_ip(request),
    )
