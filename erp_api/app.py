"""
Flask application factory.

``create_app`` wires configuration, the database session factory, the
side-effect dispatcher and the audit trail into an ``ErpRuntime`` stored
on the app, registers the blueprints, and installs request tracking and
the error envelope.
"""

from __future__ import annotations

import atexit
import time
import uuid

from flask import Flask, g, request
from sqlalchemy.orm import Session, sessionmaker
from werkzeug.exceptions import HTTPException

from erp_api.auth import current_principal
from erp_api.responses import error_response, handle_api_error
from erp_api.routes import ALL_BLUEPRINTS
from erp_api.runtime import EXTENSION_KEY, ErpRuntime, close_db
from erp_config import get_active_config
from erp_config.bridges import (
    apply_logging,
    build_permission_evaluator,
    build_side_effect_dispatcher,
    init_database,
)
from erp_config.schema import ErpConfig
from erp_kernel.db.engine import get_session_factory
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.rbac import PermissionEvaluator
from erp_kernel.logging_config import LogContext, get_logger
from erp_kernel.services.audit_service import AuditTrail
from erp_kernel.services.side_effects import ActorContext, SideEffectDispatcher

logger = get_logger("api.app")

REQUEST_ID_HEADER = "X-Request-Id"
RESPONSE_TIME_HEADER = "X-Response-Time"


def create_app(
    config: ErpConfig | None = None,
    *,
    session_factory: sessionmaker[Session] | None = None,
    dispatcher: SideEffectDispatcher | None = None,
    clock: Clock | None = None,
    evaluator: PermissionEvaluator | None = None,
) -> Flask:
    """Build the HTTP application.

    Without ``session_factory`` the engine is initialised from
    ``config.database``; tests pass their own factory and dispatcher.
    A dispatcher built here is shut down at interpreter exit; one passed
    in belongs to the caller.
    """
    config = config or get_active_config()
    if session_factory is None:
        apply_logging(config)
        init_database(config)
        session_factory = get_session_factory()
    if dispatcher is None:
        dispatcher = build_side_effect_dispatcher(config)
        # Drain queued audit and notification writes before the interpreter exits.
        atexit.register(dispatcher.shutdown)

    app = Flask(__name__)
    app.config["SECRET_KEY"] = config.api.secret_key

    app.extensions[EXTENSION_KEY] = ErpRuntime(
        session_factory=session_factory,
        dispatcher=dispatcher,
        audit=AuditTrail(session_factory),
        evaluator=evaluator or build_permission_evaluator(config),
        admin_roles=frozenset(config.rbac.admin_route_roles),
        clock=clock or SystemClock(),
        default_page_size=config.pagination.default_page_size,
        max_page_size=config.pagination.max_page_size,
        slow_request_ms=config.api.slow_request_ms,
    )

    for blueprint in ALL_BLUEPRINTS:
        app.register_blueprint(blueprint)

    _install_request_tracking(app)
    _install_error_handlers(app)

    logger.info(
        "erp_app_created",
        extra={"config_id": config.config_id, "blueprints": len(ALL_BLUEPRINTS)},
    )
    return app


def _install_request_tracking(app: Flask) -> None:
    @app.before_request
    def _start_request():
        g.started_at = time.perf_counter()
        g.request_id = request.headers.get(REQUEST_ID_HEADER) or str(uuid.uuid4())
        LogContext.set(request_id=g.request_id)
        principal = current_principal()
        g.actor_token = ActorContext.set(principal.user_id if principal else None)

    @app.after_request
    def _finish_request(response):
        started_at = g.get("started_at")
        elapsed_ms = (time.perf_counter() - started_at) * 1000 if started_at else 0.0
        response.headers[REQUEST_ID_HEADER] = g.get("request_id", "")
        response.headers[RESPONSE_TIME_HEADER] = f"{elapsed_ms:.0f}ms"

        runtime = app.extensions[EXTENSION_KEY]
        if elapsed_ms > runtime.slow_request_ms:
            logger.warning(
                "slow_request",
                extra={
                    "method": request.method,
                    "path": request.path,
                    "status_code": response.status_code,
                    "duration_ms": round(elapsed_ms, 1),
                },
            )
        return response

    @app.teardown_request
    def _end_request(exc):
        close_db(exc)
        token = g.pop("actor_token", None)
        if token is not None:
            ActorContext.reset(token)
        LogContext.clear()


def _install_error_handlers(app: Flask) -> None:
    @app.errorhandler(Exception)
    def _handle(exc: Exception):
        if isinstance(exc, HTTPException):
            code = (exc.name or "HTTP_ERROR").upper().replace(" ", "_")
            return error_response(exc.description or exc.name, code, exc.code or 500)
        return handle_api_error(exc)
