"""
Response envelope and error mapping.

Every handler returns ``{"success": true, "data": ..., "meta"?: ...}`` or
``{"success": false, "error": {"code", "message", "details"?}}``.
"""

from __future__ import annotations

from typing import Any

from flask import Response, jsonify
from sqlalchemy.exc import IntegrityError

from erp_kernel.domain.pagination import PageMeta
from erp_kernel.exceptions import ErpError, RequestValidationError
from erp_kernel.logging_config import get_logger

logger = get_logger("api.errors")

INTERNAL_ERROR_MESSAGE = "An internal server error occurred"
DUPLICATE_MESSAGE = "A record with the same value already exists"


def success_response(
    data: Any = None,
    meta: PageMeta | dict[str, Any] | None = None,
    status: int = 200,
) -> tuple[Response, int]:
    body: dict[str, Any] = {"success": True, "data": data}
    if meta is not None:
        body["meta"] = meta.to_dict() if isinstance(meta, PageMeta) else meta
    return jsonify(body), status


def error_response(
    message: str,
    code: str,
    status: int = 400,
    details: Any = None,
) -> tuple[Response, int]:
    error: dict[str, Any] = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return jsonify({"success": False, "error": error}), status


def handle_api_error(exc: Exception) -> tuple[Response, int]:
    """Map any exception raised by a handler onto the error envelope."""
    if isinstance(exc, RequestValidationError):
        return error_response(str(exc), exc.code, exc.http_status, exc.details)

    if isinstance(exc, ErpError):
        if exc.http_status >= 500:
            logger.error("api_error", extra={"error_code": exc.code}, exc_info=exc)
        return error_response(str(exc), exc.code, exc.http_status)

    if isinstance(exc, IntegrityError):
        logger.warning(
            "api_integrity_error",
            extra={"detail": str(exc.orig) if exc.orig is not None else str(exc)},
        )
        return error_response(DUPLICATE_MESSAGE, "DUPLICATE", 409)

    logger.error(
        "api_unhandled_error",
        extra={"error_type": type(exc).__name__},
        exc_info=exc,
    )
    return error_response(INTERNAL_ERROR_MESSAGE, "INTERNAL_ERROR", 500)
