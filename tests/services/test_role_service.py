"""Role administration and principal resolution."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from erp_kernel.domain.rbac import PermissionGrant
from erp_kernel.exceptions import (
    DuplicateRoleError,
    RoleInUseError,
    RoleNotFoundError,
    SystemRoleProtectedError,
    UnauthorizedError,
    ValidationError,
)
from erp_kernel.models.identity import Permission
from erp_kernel.services.role_service import Principal, RoleService


@pytest.fixture
def roles(session):
    service = RoleService(session)
    service.ensure_permission_catalog()
    return service


def _permission_ids(session, *pairs):
    return [
        session.execute(
            select(Permission.id).where(Permission.module == module, Permission.action == action)
        ).scalar_one()
        for module, action in pairs
    ]


class TestCatalog:
    def test_idempotent(self, session):
        service = RoleService(session)
        added = service.ensure_permission_catalog(["hr", "sales"], ["read", "create"])
        assert added == 4
        assert service.ensure_permission_catalog(["hr", "sales"], ["read", "create"]) == 0


class TestRoleLifecycle:
    def test_create_with_permissions(self, session, roles):
        role = roles.create_role("HR clerk", "leave desk", _permission_ids(session, ("hr", "read"), ("hr", "create")))

        assert role.name == "HR clerk"
        assert role.permissions == (PermissionGrant("hr", "create"), PermissionGrant("hr", "read"))
        assert role.user_count == 0
        assert role.to_dict()["isSystem"] is False

    def test_duplicate_name(self, roles):
        roles.create_role("Auditor")
        with pytest.raises(DuplicateRoleError):
            roles.create_role("Auditor")

    def test_unknown_permission(self, roles):
        with pytest.raises(ValidationError):
            roles.create_role("Ghost", permission_ids=[uuid4()])

    def test_update_replaces_permissions(self, session, roles):
        role = roles.create_role("Buyer", permission_ids=_permission_ids(session, ("sales", "read")))
        updated = roles.update_role(
            role.role_id,
            name="Senior buyer",
            permission_ids=_permission_ids(session, ("inventory", "read"), ("inventory", "update")),
        )
        assert updated.name == "Senior buyer"
        assert {p.module for p in updated.permissions} == {"inventory"}
        assert roles.get_role(role.role_id).permissions == updated.permissions

    def test_update_keeps_permissions_when_omitted(self, session, roles):
        role = roles.create_role("Viewer", permission_ids=_permission_ids(session, ("board", "read")))
        updated = roles.update_role(role.role_id, description="read only")
        assert updated.permissions == role.permissions
        assert updated.description == "read only"

    def test_rename_to_existing(self, roles):
        roles.create_role("A")
        b = roles.create_role("B")
        with pytest.raises(DuplicateRoleError):
            roles.update_role(b.role_id, name="A")

    def test_system_role_protected(self, make_role, roles):
        system = make_role("SYSTEM_ADMIN", is_system=True)
        with pytest.raises(SystemRoleProtectedError):
            roles.update_role(system.id, description="x")
        with pytest.raises(SystemRoleProtectedError):
            roles.delete_role(system.id)

    def test_role_in_use(self, roles, make_user):
        role = roles.create_role("Clerk")
        roles.assign_role(make_user().id, role.role_id)
        assert roles.get_role(role.role_id).user_count == 1
        with pytest.raises(RoleInUseError):
            roles.delete_role(role.role_id)

    def test_delete(self, roles):
        role = roles.create_role("Temp")
        roles.delete_role(role.role_id)
        with pytest.raises(RoleNotFoundError):
            roles.get_role(role.role_id)

    def test_list_sorted(self, roles):
        roles.create_role("Zeta")
        roles.create_role("Alpha")
        assert [r.name for r in roles.list_roles()] == ["Alpha", "Zeta"]


class TestResolvePrincipal:
    def test_union_of_role_and_explicit_grants(self, session, make_role, make_user):
        make_role("Sales rep", permissions=[("sales", "read"), ("sales", "create")])
        user = make_user(roles=["Sales rep", "부서장"], grants=[("sales", "read"), ("hr", "read")])

        principal = RoleService(session).resolve_principal(user.id)

        assert principal.roles == ("Sales rep", "부서장")
        assert principal.grants == (
            PermissionGrant("hr", "read"),
            PermissionGrant("sales", "create"),
            PermissionGrant("sales", "read"),
        )

    def test_employee_lookup(self, session, make_person, employee_service):
        person = make_person()
        principal = RoleService(session, employee_service.employee_id_for_user).resolve_principal(person.user_id)
        assert principal.employee_id == person.employee_id

    def test_inactive_user(self, session, make_user):
        with pytest.raises(UnauthorizedError):
            RoleService(session).resolve_principal(make_user(is_active=False).id)

    def test_session_round_trip(self):
        principal = Principal(
            user_id=uuid4(),
            roles=("관리자",),
            grants=(PermissionGrant("hr", "read"),),
            employee_id=uuid4(),
            name="Kim",
        )
        assert Principal.from_session(principal.to_session()) == principal
