"""
erp_kernel.domain.rbac -- Role/permission evaluation.

Responsibility:
    Decide whether a principal (role names + explicit module/action
    grants) may perform an action on a business module, and map API
    paths and HTTP methods to the module/action they require.

Architecture position:
    Kernel > Domain.  Pure functions and frozen value objects, ZERO I/O.
    The HTTP layer calls ``has_permission`` as the security boundary for
    every handler.  ``check_client_permission`` is the same evaluation
    re-exported for UI affordance gating; it hides buttons, it does not
    protect data.

Invariants:
    - Evaluation order is fixed, first match wins:
        1. any super-admin role            -> allow
        2. department head + read/approve  -> allow
        3. exact (module, action) grant    -> allow
        otherwise                          -> deny
    - Grants match on exact string equality; no wildcards, no hierarchy.
    - No caching: every call recomputes from the caller-supplied lists.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum


class Action(str, Enum):
    """Permission verbs."""

    READ = "read"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    EXPORT = "export"
    IMPORT = "import"
    APPROVE = "approve"


class Module(str, Enum):
    """Business-domain permission scopes."""

    ACCOUNTING = "accounting"
    HR = "hr"
    INVENTORY = "inventory"
    SALES = "sales"
    APPROVAL = "approval"
    BOARD = "board"
    PROJECTS = "projects"
    ADMIN = "admin"


SYSTEM_ADMIN_ROLE = "SYSTEM_ADMIN"
LOCALIZED_ADMIN_ROLE = "관리자"
DEPARTMENT_HEAD_ROLE = "부서장"

SUPER_ADMIN_ROLES: frozenset[str] = frozenset({SYSTEM_ADMIN_ROLE, LOCALIZED_ADMIN_ROLE})
DEPARTMENT_HEAD_ACTIONS: frozenset[Action] = frozenset({Action.READ, Action.APPROVE})

API_PREFIX = "/api/v1"

# Ordered; first matching prefix wins.
ROUTE_MODULE_MAP: tuple[tuple[str, str], ...] = (
    ("/accounting", Module.ACCOUNTING.value),
    ("/hr", Module.HR.value),
    ("/inventory", Module.INVENTORY.value),
    ("/sales", Module.SALES.value),
    ("/approval", Module.APPROVAL.value),
    ("/board", Module.BOARD.value),
    ("/projects", Module.PROJECTS.value),
    ("/admin", Module.ADMIN.value),
)

METHOD_ACTION_MAP: dict[str, Action] = {
    "GET": Action.READ,
    "POST": Action.CREATE,
    "PUT": Action.UPDATE,
    "PATCH": Action.UPDATE,
    "DELETE": Action.DELETE,
}


@dataclass(frozen=True)
class PermissionGrant:
    """An explicit (module, action) grant."""

    module: str
    action: str

    @classmethod
    def from_mapping(cls, data: Mapping[str, str]) -> PermissionGrant:
        return cls(module=str(data["module"]), action=str(data["action"]))

    def to_dict(self) -> dict[str, str]:
        return {"module": self.module, "action": self.action}


def _action_value(action: Action | str) -> str:
    return action.value if isinstance(action, Action) else str(action)


@dataclass(frozen=True)
class PermissionEvaluator:
    """Permission decision function with configurable role markers.

    The defaults reproduce the built-in markers; ``erp_config.bridges``
    builds a configured instance for deployments that rename them.
    """

    super_admin_roles: frozenset[str] = SUPER_ADMIN_ROLES
    department_head_roles: frozenset[str] = frozenset({DEPARTMENT_HEAD_ROLE})
    department_head_actions: frozenset[str] = field(
        default_factory=lambda: frozenset(a.value for a in DEPARTMENT_HEAD_ACTIONS)
    )
    route_module_map: tuple[tuple[str, str], ...] = ROUTE_MODULE_MAP
    api_prefix: str = API_PREFIX

    def is_super_admin(self, roles: Iterable[str]) -> bool:
        return any(role in self.super_admin_roles for role in roles)

    def has_permission(
        self,
        grants: Iterable[PermissionGrant | Mapping[str, str]],
        roles: Iterable[str],
        module: str,
        action: Action | str,
    ) -> bool:
        roles = tuple(roles)
        action_value = _action_value(action)

        if self.is_super_admin(roles):
            return True

        if (
            any(role in self.department_head_roles for role in roles)
            and action_value in self.department_head_actions
        ):
            return True

        for grant in grants:
            if isinstance(grant, Mapping):
                grant = PermissionGrant.from_mapping(grant)
            if grant.module == module and grant.action == action_value:
                return True
        return False

    def module_from_path(self, pathname: str) -> str | None:
        cleaned = pathname
        if cleaned.startswith(self.api_prefix):
            cleaned = cleaned[len(self.api_prefix):]
        for prefix, module in self.route_module_map:
            if cleaned.startswith(prefix):
                return module
        return None


DEFAULT_EVALUATOR = PermissionEvaluator()


def has_permission(
    grants: Iterable[PermissionGrant | Mapping[str, str]],
    roles: Iterable[str],
    module: str,
    action: Action | str,
) -> bool:
    """Return True iff the principal may perform ``action`` on ``module``."""
    return DEFAULT_EVALUATOR.has_permission(grants, roles, module, action)


def check_client_permission(
    grants: Iterable[PermissionGrant | Mapping[str, str]],
    roles: Iterable[str],
    module: str,
    action: Action | str,
) -> bool:
    """UI-side permission check.

    Identical evaluation to ``has_permission``.  A False result should hide
    the affordance; it never replaces the server-side gate.
    """
    return has_permission(grants, roles, module, action)


def get_module_from_path(pathname: str) -> str | None:
    """Map an API path to its permission module, or None if module-less.

    ``/api/v1/hr/employees/123`` -> ``"hr"``; ``/api/v1/dashboard/stats`` -> None.
    """
    return DEFAULT_EVALUATOR.module_from_path(pathname)


def action_for_method(method: str) -> Action:
    """HTTP method -> implied action (unknown methods read)."""
    return METHOD_ACTION_MAP.get(method.upper(), Action.READ)


def is_super_admin(roles: Iterable[str]) -> bool:
    return DEFAULT_EVALUATOR.is_super_admin(roles)
