"""Admin console routes: roles, the permission catalog, the audit log."""

import uuid
from datetime import datetime, timedelta, timezone

import pytest
from sqlalchemy import select

from erp_kernel.models.audit_log import AuditLog


@pytest.fixture
def admin(client, login):
    return login(uuid.uuid4(), roles=["SYSTEM_ADMIN"])


@pytest.fixture
def permission_ids(session, make_role):
    holder = make_role("holder", permissions=[("hr", "read"), ("hr", "approve")])
    session.commit()
    return [str(rp.permission_id) for rp in holder.permissions]


def _audit_rows(session_factory, record_id):
    with session_factory() as s:
        return s.execute(
            select(AuditLog).where(AuditLog.table_name == "roles", AuditLog.record_id == record_id)
        ).scalars().all()


def _create(client, name="Payroll clerk", **extra):
    response = client.post("/api/v1/admin/roles", json={"name": name, **extra})
    assert response.status_code == 201, response.get_json()
    return response.get_json()["data"]


class TestAccess:
    def test_non_admin_forbidden(self, client, login, captured_logs):
        login(uuid.uuid4(), grants=[("admin", "read")])
        response = client.get("/api/v1/admin/roles")
        assert response.status_code == 403
        assert any(r["message"] == "admin_required" for r in captured_logs())

    def test_korean_admin_role(self, client, login):
        login(uuid.uuid4(), roles=["관리자"])
        assert client.get("/api/v1/admin/roles").status_code == 200


class TestRoles:
    def test_create_is_audited(self, client, admin, permission_ids, session_factory):
        role = _create(client, description="Runs payroll", permissionIds=permission_ids)
        assert role["isSystem"] is False
        assert sorted(p["action"] for p in role["permissions"]) == ["approve", "read"]

        rows = _audit_rows(session_factory, role["id"])
        assert [r.action for r in rows] == ["CREATE"]
        assert rows[0].user_id == admin.user_id
        assert rows[0].new_value == {"id": role["id"]}

    def test_update_records_previous_value(self, client, admin, session_factory):
        role = _create(client)
        response = client.put(f"/api/v1/admin/roles/{role['id']}", json={"name": "Payroll lead"})
        assert response.get_json()["data"]["name"] == "Payroll lead"

        update = [r for r in _audit_rows(session_factory, role["id"]) if r.action == "UPDATE"]
        assert update[0].old_value["name"] == "Payroll clerk"

    def test_audit_ip_from_forwarded_header(self, client, admin, session_factory):
        response = client.post(
            "/api/v1/admin/roles",
            json={"name": "Forwarded"},
            headers={"X-Forwarded-For": "203.0.113.7, 10.0.0.1"},
        )
        rows = _audit_rows(session_factory, response.get_json()["data"]["id"])
        assert rows[0].ip_address == "203.0.113.7"

    def test_duplicate_name(self, client, admin):
        _create(client)
        response = client.post("/api/v1/admin/roles", json={"name": "Payroll clerk"})
        assert response.status_code == 409
        assert response.get_json()["error"]["code"] == "DUPLICATE"

    def test_failed_request_not_audited(self, client, admin, session_factory):
        _create(client)
        client.post("/api/v1/admin/roles", json={"name": "Payroll clerk"})
        with session_factory() as s:
            assert len(s.execute(select(AuditLog)).scalars().all()) == 1

    def test_unknown_permission(self, client, admin):
        response = client.post(
            "/api/v1/admin/roles", json={"name": "x", "permissionIds": [str(uuid.uuid4())]},
        )
        assert response.status_code == 400

    def test_system_role_protected(self, client, admin, session, make_role):
        system = make_role("SYSTEM_ADMIN", is_system=True)
        session.commit()
        response = client.delete(f"/api/v1/admin/roles/{system.id}")
        assert response.status_code == 403
        assert client.put(f"/api/v1/admin/roles/{system.id}", json={"name": "root"}).status_code == 403

    def test_delete(self, client, admin, session_factory):
        role = _create(client)
        response = client.delete(f"/api/v1/admin/roles/{role['id']}")
        assert response.get_json()["data"] == {"id": role["id"]}
        assert client.get(f"/api/v1/admin/roles/{role['id']}").status_code == 404

        deleted = [r for r in _audit_rows(session_factory, role["id"]) if r.action == "DELETE"]
        assert deleted[0].old_value["name"] == "Payroll clerk"

    def test_list_sorted(self, client, admin):
        for name in ("b-role", "a-role"):
            _create(client, name)
        names = [r["name"] for r in client.get("/api/v1/admin/roles").get_json()["data"]]
        assert names == sorted(names)


class TestPermissionCatalog:
    def test_lists_catalog_sorted(self, client, admin, session, make_role):
        make_role("clerk", permissions=[("sales", "read"), ("hr", "update"), ("hr", "approve")])
        session.commit()

        response = client.get("/api/v1/admin/permissions")

        pairs = [(p["module"], p["action"]) for p in response.get_json()["data"]]
        assert pairs == [("hr", "approve"), ("hr", "update"), ("sales", "read")]

    def test_ids_are_usable_in_role_requests(self, client, admin, session, make_role):
        make_role("clerk", permissions=[("hr", "read")])
        session.commit()
        [permission] = client.get("/api/v1/admin/permissions").get_json()["data"]

        role = _create(client, "Reader", permissionIds=[permission["id"]])
        assert role["permissions"] == [{"module": "hr", "action": "read"}]

    def test_requires_admin(self, client, login):
        login(uuid.uuid4(), grants=[("admin", "read")])
        assert client.get("/api/v1/admin/permissions").status_code == 403


class TestAuditLogListing:
    @pytest.fixture
    def logs(self, session, make_user):
        auditor = make_user(name="감사자")
        start = datetime(2024, 6, 1, tzinfo=timezone.utc)
        rows = [
            ("roles", "CREATE", auditor.id),
            ("leaves", "APPROVE", None),
            ("roles", "UPDATE", auditor.id),
            ("roles", "DELETE", None),
        ]
        for minute, (table, action, user_id) in enumerate(rows):
            session.add(AuditLog(
                table_name=table, action=action, user_id=user_id,
                record_id=f"r{minute}", created_at=start + timedelta(minutes=minute),
            ))
        session.commit()
        return auditor

    def test_newest_first_with_meta(self, client, admin, logs):
        body = client.get("/api/v1/admin/logs?pageSize=3").get_json()

        assert [r["recordId"] for r in body["data"]] == ["r3", "r2", "r1"]
        assert body["meta"] == {"page": 1, "pageSize": 3, "totalCount": 4, "totalPages": 2}

    def test_filters_and_user_details(self, client, admin, logs):
        data = client.get("/api/v1/admin/logs?tableName=roles&action=UPDATE").get_json()["data"]

        assert len(data) == 1
        assert data[0]["userName"] == "감사자"
        assert data[0]["userId"] == str(logs.id)

    def test_unknown_action_rejected(self, client, admin):
        response = client.get("/api/v1/admin/logs?action=DROP")
        assert response.status_code == 400
        assert response.get_json()["error"]["details"][0]["field"] == "action"

    def test_requires_admin(self, client, login):
        login(uuid.uuid4(), roles=["부서장"])
        assert client.get("/api/v1/admin/logs").status_code == 403
