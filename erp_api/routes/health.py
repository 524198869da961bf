"""Liveness and database reachability."""

from __future__ import annotations

from flask import Blueprint
from sqlalchemy import text

from erp_api.responses import success_response
from erp_api.runtime import get_db

health_bp = Blueprint("health", __name__, url_prefix="/api/v1")


@health_bp.get("/health")
def health():
    get_db().execute(text("SELECT 1"))
    return success_response({"status": "ok"})
