"""
Module: erp_kernel.models.identity
Responsibility: ORM persistence for users, roles, permissions and the
    association rows that grant them.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Role names are unique.
    - A (module, action) permission pair exists at most once.
    - A user holds a role at most once; a role carries a permission at
      most once; a user has an explicit grant at most once.
"""

from __future__ import annotations

from typing import Any
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import TrackedBase, UUIDString


class User(TrackedBase):
    """Authenticated account.  Credentials live with the external provider."""

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    roles: Mapped[list[UserRole]] = relationship(
        "UserRole",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )
    permissions: Mapped[list[UserPermission]] = relationship(
        "UserPermission",
        back_populates="user",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<User {self.email}>"


class Role(TrackedBase):
    """Named bundle of permissions.  System roles are immutable."""

    __tablename__ = "roles"

    name: Mapped[str] = mapped_column(String(50), nullable=False, unique=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    is_system: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    permissions: Mapped[list[RolePermission]] = relationship(
        "RolePermission",
        back_populates="role",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<Role {self.name}{' (system)' if self.is_system else ''}>"


class Permission(TrackedBase):
    """A (module, action) pair that can be granted."""

    __tablename__ = "permissions"

    __table_args__ = (
        UniqueConstraint("module", "action", name="uq_permissions_module_action"),
    )

    module: Mapped[str] = mapped_column(String(50), nullable=False)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    description: Mapped[str | None] = mapped_column(String(200), nullable=True)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "module": self.module,
            "action": self.action,
            "description": self.description,
        }

    def __repr__(self) -> str:
        return f"<Permission {self.module}.{self.action}>"


class UserRole(TrackedBase):
    __tablename__ = "user_roles"

    __table_args__ = (
        UniqueConstraint("user_id", "role_id", name="uq_user_roles_user_role"),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    role_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("roles.id"), nullable=False,
    )

    user: Mapped[User] = relationship("User", back_populates="roles")
    role: Mapped[Role] = relationship("Role", lazy="joined")


class RolePermission(TrackedBase):
    __tablename__ = "role_permissions"

    __table_args__ = (
        UniqueConstraint(
            "role_id", "permission_id", name="uq_role_permissions_role_permission",
        ),
    )

    role_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("roles.id", ondelete="CASCADE"), nullable=False,
    )
    permission_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("permissions.id"), nullable=False,
    )

    role: Mapped[Role] = relationship("Role", back_populates="permissions")
    permission: Mapped[Permission] = relationship("Permission", lazy="joined")


class UserPermission(TrackedBase):
    """Explicit grant to a single user, on top of role grants."""

    __tablename__ = "user_permissions"

    __table_args__ = (
        UniqueConstraint(
            "user_id", "permission_id", name="uq_user_permissions_user_permission",
        ),
    )

    user_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("users.id", ondelete="CASCADE"), nullable=False,
    )
    permission_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("permissions.id"), nullable=False,
    )

    user: Mapped[User] = relationship("User", back_populates="permissions")
    permission: Mapped[Permission] = relationship("Permission", lazy="joined")
