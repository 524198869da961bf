"""
RoleService -- role administration and principal resolution.

Responsibility:
    Creates, updates and deletes roles and their permission sets, keeps
    the (module, action) permission catalog populated, and resolves a
    user into the principal the HTTP layer evaluates permissions against.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/.

Invariants enforced:
    - Role names are unique (checked here and by the DB constraint).
    - System roles are never modified or deleted.
    - A role held by any user is never deleted.
    - A role's permission set is replaced as a whole, in one flush.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass, field
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from erp_kernel.domain.rbac import Action, Module, PermissionGrant
from erp_kernel.exceptions import (
    DuplicateRoleError,
    RoleInUseError,
    RoleNotFoundError,
    SystemRoleProtectedError,
    UnauthorizedError,
    ValidationError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.identity import (
    Permission,
    Role,
    RolePermission,
    User,
    UserRole,
)

logger = get_logger("services.role")


@dataclass(frozen=True)
class Principal:
    """What an authenticated request acts as."""

    user_id: UUID
    roles: tuple[str, ...] = ()
    grants: tuple[PermissionGrant, ...] = ()
    employee_id: UUID | None = None
    name: str | None = None

    def to_session(self) -> dict[str, Any]:
        return {
            "user_id": str(self.user_id),
            "name": self.name,
            "roles": list(self.roles),
            "permissions": [g.to_dict() for g in self.grants],
            "employee_id": str(self.employee_id) if self.employee_id else None,
        }

    @classmethod
    def from_session(cls, data: dict[str, Any]) -> Principal:
        employee_id = data.get("employee_id")
        return cls(
            user_id=UUID(str(data["user_id"])),
            name=data.get("name"),
            roles=tuple(data.get("roles") or ()),
            grants=tuple(PermissionGrant.from_mapping(p) for p in data.get("permissions") or ()),
            employee_id=UUID(str(employee_id)) if employee_id else None,
        )


@dataclass(frozen=True)
class RoleView:
    role_id: UUID
    name: str
    description: str | None
    is_system: bool
    permissions: tuple[PermissionGrant, ...] = field(default=())
    user_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.role_id),
            "name": self.name,
            "description": self.description,
            "isSystem": self.is_system,
            "permissions": [p.to_dict() for p in self.permissions],
            "userCount": self.user_count,
        }


class RoleService:
    def __init__(
        self,
        session: Session,
        employee_lookup: Callable[[UUID], UUID | None] | None = None,
    ):
        self._session = session
        self._employee_lookup = employee_lookup

    # ------------------------------------------------------------------
    # Principal
    # ------------------------------------------------------------------

    def resolve_principal(self, user_id: UUID) -> Principal:
        """
        Collect the user's role names and effective grants.

        Grants are the union of role permissions and explicit user
        permissions, deduplicated, in (module, action) order.

        Raises:
            UnauthorizedError: Unknown or inactive user.
        """
        user = self._session.get(User, user_id)
        if user is None or not user.is_active:
            raise UnauthorizedError("Unknown or inactive user")

        roles = sorted(ur.role.name for ur in user.roles)
        grants: set[PermissionGrant] = set()
        for ur in user.roles:
            for rp in ur.role.permissions:
                grants.add(PermissionGrant(rp.permission.module, rp.permission.action))
        for up in user.permissions:
            grants.add(PermissionGrant(up.permission.module, up.permission.action))

        employee_id = self._employee_lookup(user.id) if self._employee_lookup else None
        return Principal(
            user_id=user.id,
            name=user.name,
            roles=tuple(roles),
            grants=tuple(sorted(grants, key=lambda g: (g.module, g.action))),
            employee_id=employee_id,
        )

    # ------------------------------------------------------------------
    # Catalog
    # ------------------------------------------------------------------

    def ensure_permission_catalog(
        self,
        modules: Iterable[str] = tuple(m.value for m in Module),
        actions: Iterable[str] = tuple(a.value for a in Action),
    ) -> int:
        """Create every missing (module, action) pair.  Returns how many were added."""
        existing = {
            (p.module, p.action)
            for p in self._session.execute(select(Permission)).scalars()
        }
        actions = tuple(actions)
        added = 0
        for module in modules:
            for action in actions:
                if (module, action) not in existing:
                    self._session.add(Permission(module=module, action=action))
                    existing.add((module, action))
                    added += 1
        self._session.flush()
        if added:
            logger.info("permission_catalog_extended", extra={"added": added})
        return added

    def list_permissions(self) -> list[Permission]:
        """The grantable catalog, ordered by module then action."""
        return list(
            self._session.execute(
                select(Permission).order_by(Permission.module, Permission.action)
            ).scalars()
        )

    # ------------------------------------------------------------------
    # Roles
    # ------------------------------------------------------------------

    def list_roles(self) -> list[RoleView]:
        roles = self._session.execute(select(Role).order_by(Role.name)).scalars().all()
        return [self._view(r) for r in roles]

    def get_role(self, role_id: UUID) -> RoleView:
        return self._view(self._load(role_id))

    def create_role(
        self,
        name: str,
        description: str | None = None,
        permission_ids: Sequence[UUID] = (),
    ) -> RoleView:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Role name is required")
        self._ensure_name_free(name)

        role = Role(name=name, description=description, is_system=False)
        role.permissions = [
            RolePermission(permission_id=p.id) for p in self._load_permissions(permission_ids)
        ]
        self._session.add(role)
        self._session.flush()

        logger.info("role_created", extra={"role_id": role.id, "role_name": name})
        return self._view(role)

    def update_role(
        self,
        role_id: UUID,
        name: str | None = None,
        description: str | None = None,
        permission_ids: Sequence[UUID] | None = None,
    ) -> RoleView:
        role = self._load(role_id)
        if role.is_system:
            raise SystemRoleProtectedError(role.name, "modified")

        if name is not None:
            name = name.strip()
            if not name:
                raise ValidationError("Role name is required")
            if name != role.name:
                self._ensure_name_free(name)
                role.name = name
        if description is not None:
            role.description = description
        if permission_ids is not None:
            permissions = self._load_permissions(permission_ids)
            role.permissions.clear()
            self._session.flush()
            role.permissions.extend(RolePermission(permission_id=p.id) for p in permissions)

        self._session.flush()
        logger.info("role_updated", extra={"role_id": role.id, "role_name": role.name})
        return self._view(role)

    def delete_role(self, role_id: UUID) -> None:
        role = self._load(role_id)
        if role.is_system:
            raise SystemRoleProtectedError(role.name, "deleted")

        user_count = self._user_count(role.id)
        if user_count:
            raise RoleInUseError(role.name, user_count)

        self._session.delete(role)
        self._session.flush()
        logger.info("role_deleted", extra={"role_id": role_id, "role_name": role.name})

    def assign_role(self, user_id: UUID, role_id: UUID) -> None:
        role = self._load(role_id)
        exists = self._session.execute(
            select(UserRole.id).where(UserRole.user_id == user_id, UserRole.role_id == role.id)
        ).first()
        if exists is None:
            self._session.add(UserRole(user_id=user_id, role_id=role.id))
            self._session.flush()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, role_id: UUID | str) -> Role:
        try:
            key = role_id if isinstance(role_id, UUID) else UUID(str(role_id))
        except ValueError:
            raise RoleNotFoundError(str(role_id)) from None
        role = self._session.get(Role, key)
        if role is None:
            raise RoleNotFoundError(str(role_id))
        return role

    def _ensure_name_free(self, name: str) -> None:
        taken = self._session.execute(select(Role.id).where(Role.name == name)).first()
        if taken is not None:
            raise DuplicateRoleError(name)

    def _load_permissions(self, permission_ids: Sequence[UUID | str]) -> list[Permission]:
        keys = []
        for raw in dict.fromkeys(permission_ids):
            try:
                keys.append(raw if isinstance(raw, UUID) else UUID(str(raw)))
            except ValueError:
                raise ValidationError(f"Invalid permission id: {raw}") from None
        if not keys:
            return []
        found = self._session.execute(
            select(Permission).where(Permission.id.in_(keys))
        ).scalars().all()
        missing = set(keys) - {p.id for p in found}
        if missing:
            raise ValidationError(
                f"Unknown permission id(s): {', '.join(sorted(str(m) for m in missing))}"
            )
        return list(found)

    def _user_count(self, role_id: UUID) -> int:
        return self._session.execute(
            select(func.count(UserRole.id)).where(UserRole.role_id == role_id)
        ).scalar_one()

    def _view(self, role: Role) -> RoleView:
        return RoleView(
            role_id=role.id,
            name=role.name,
            description=role.description,
            is_system=role.is_system,
            permissions=tuple(sorted(
                (PermissionGrant(rp.permission.module, rp.permission.action) for rp in role.permissions),
                key=lambda g: (g.module, g.action),
            )),
            user_count=self._user_count(role.id),
        )
