"""
Request authentication and permission gates.

The external auth provider stores the resolved principal in the Flask
signed session under ``"principal"``.  These helpers read it back and
enforce module/action permissions server-side.
"""

from __future__ import annotations

from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g, request, session

from erp_api.runtime import get_runtime
from erp_kernel.domain.rbac import Action
from erp_kernel.exceptions import (
    AdminRequiredError,
    PermissionDeniedError,
    UnauthorizedError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.services.role_service import Principal

logger = get_logger("api.auth")

SESSION_KEY = "principal"


def current_principal() -> Principal | None:
    if "principal" in g:
        return g.principal
    data = session.get(SESSION_KEY)
    principal = None
    if data:
        try:
            principal = Principal.from_session(data)
        except (KeyError, TypeError, ValueError):
            logger.warning("session_principal_invalid")
    g.principal = principal
    return principal


def get_principal() -> Principal:
    """The authenticated principal.

    Raises:
        UnauthorizedError: No principal in the session.
    """
    principal = current_principal()
    if principal is None:
        raise UnauthorizedError()
    return principal


def ensure_permission(module: str, action: Action | str) -> Principal:
    principal = get_principal()
    action_value = action.value if isinstance(action, Action) else action
    if not get_runtime().evaluator.has_permission(
        principal.grants, principal.roles, module, action_value,
    ):
        logger.warning(
            "permission_denied",
            extra={
                "user_id": str(principal.user_id),
                "module": module,
                "action": action_value,
                "path": request.path,
            },
        )
        raise PermissionDeniedError(str(principal.user_id), module, action_value)
    return principal


def ensure_admin() -> Principal:
    principal = get_principal()
    if not any(role in get_runtime().admin_roles for role in principal.roles):
        logger.warning(
            "admin_required",
            extra={"user_id": str(principal.user_id), "path": request.path},
        )
        raise AdminRequiredError(str(principal.user_id))
    return principal


def require_auth(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        get_principal()
        return fn(*args, **kwargs)

    return wrapper


def require_permission(module: str, action: Action | str) -> Callable:
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            ensure_permission(module, action)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def require_admin(fn: Callable[..., Any]) -> Callable[..., Any]:
    @wraps(fn)
    def wrapper(*args, **kwargs):
        ensure_admin()
        return fn(*args, **kwargs)

    return wrapper
