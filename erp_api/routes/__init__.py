"""Flask blueprints, one per module."""

from erp_api.routes.admin import admin_bp
from erp_api.routes.approval import approval_bp
from erp_api.routes.health import health_bp
from erp_api.routes.hr import hr_bp
from erp_api.routes.notifications import notifications_bp

ALL_BLUEPRINTS = (health_bp, approval_bp, hr_bp, notifications_bp, admin_bp)

__all__ = [
    "ALL_BLUEPRINTS",
    "admin_bp",
    "approval_bp",
    "health_bp",
    "hr_bp",
    "notifications_bp",
]
