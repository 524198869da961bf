"""Envelope, request tracking, authentication gates and error mapping."""

import atexit
import uuid

import pytest
from flask import request
from sqlalchemy.exc import IntegrityError

from erp_api.app import create_app
from erp_api.audit import client_ip
from erp_api.responses import handle_api_error
from erp_config.schema import ErpConfig, SideEffectConfig
from erp_kernel.services.side_effects import DispatchMode


class TestEnvelope:
    def test_health(self, client):
        response = client.get("/api/v1/health")
        assert response.status_code == 200
        assert response.get_json() == {"success": True, "data": {"status": "ok"}}

    def test_unknown_route_uses_error_envelope(self, client):
        response = client.get("/api/v1/nowhere")
        body = response.get_json()
        assert response.status_code == 404
        assert body["success"] is False
        assert body["error"]["code"] == "NOT_FOUND"

    def test_method_not_allowed(self, client):
        response = client.delete("/api/v1/health")
        assert response.status_code == 405
        assert response.get_json()["error"]["code"] == "METHOD_NOT_ALLOWED"


class TestRequestTracking:
    def test_request_id_echoed(self, client):
        response = client.get("/api/v1/health", headers={"X-Request-Id": "req-123"})
        assert response.headers["X-Request-Id"] == "req-123"

    def test_request_id_generated(self, client):
        response = client.get("/api/v1/health")
        uuid.UUID(response.headers["X-Request-Id"])
        assert response.headers["X-Response-Time"].endswith("ms")

    def test_slow_request_logged(self, app, client, captured_logs):
        app.extensions["erp"].slow_request_ms = 0
        client.get("/api/v1/health")
        slow = [r for r in captured_logs() if r["message"] == "slow_request"]
        assert slow and slow[0]["path"] == "/api/v1/health"
        assert slow[0]["status_code"] == 200


class TestAuthentication:
    def test_missing_principal_is_401(self, client):
        response = client.get("/api/v1/approval/documents")
        assert response.status_code == 401
        assert response.get_json()["error"]["code"] == "UNAUTHORIZED"

    def test_missing_principal_checked_before_body(self, client):
        response = client.put("/api/v1/hr/leave", json={})
        assert response.status_code == 401

    def test_missing_grant_is_403_and_logged(self, client, login, captured_logs):
        user_id = uuid.uuid4()
        login(user_id, grants=[("hr", "read")])
        response = client.get("/api/v1/approval/documents")
        assert response.status_code == 403
        assert response.get_json()["error"]["code"] == "FORBIDDEN"

        denied = [r for r in captured_logs() if r["message"] == "permission_denied"]
        assert denied[0]["module"] == "approval"
        assert denied[0]["action"] == "read"
        assert denied[0]["user_id"] == str(user_id)

    def test_corrupt_session_is_unauthenticated(self, client):
        with client.session_transaction() as sess:
            sess["principal"] = {"roles": []}
        assert client.get("/api/v1/notifications").status_code == 401


class TestValidation:
    def test_field_details(self, client, login):
        login(uuid.uuid4(), grants=[("approval", "create")])
        response = client.post("/api/v1/approval/documents", json={"draftDate": "June"})
        body = response.get_json()
        assert response.status_code == 400
        assert body["error"]["code"] == "VALIDATION_ERROR"
        fields = {d["field"] for d in body["error"]["details"]}
        assert {"title", "draftDate", "steps"} <= fields

    def test_non_object_body(self, client, login):
        login(uuid.uuid4(), grants=[("hr", "create")])
        response = client.post("/api/v1/hr/leave", json=[1, 2])
        assert response.get_json()["error"]["details"] == [
            {"field": "body", "message": "JSON object required"}
        ]

    def test_bad_query_filter(self, client, login):
        login(uuid.uuid4(), grants=[("approval", "read")])
        response = client.get("/api/v1/approval/documents?status=LOST")
        assert response.status_code == 400
        assert response.get_json()["error"]["details"][0]["field"] == "status"


class TestErrorMapping:
    def test_integrity_error_is_duplicate(self, app):
        with app.test_request_context():
            response, status = handle_api_error(
                IntegrityError("INSERT", {}, Exception("UNIQUE constraint failed"))
            )
        assert status == 409
        assert response.get_json()["error"] == {
            "code": "DUPLICATE",
            "message": "A record with the same value already exists",
        }

    def test_unexpected_error_hides_detail(self, app, captured_logs):
        with app.test_request_context():
            response, status = handle_api_error(RuntimeError("password=hunter2"))
        assert status == 500
        assert "hunter2" not in response.get_data(as_text=True)
        assert any(r["message"] == "api_unhandled_error" for r in captured_logs())


class TestClientIp:
    def _ip(self, app, headers=None, remote_addr="10.0.0.9"):
        with app.test_request_context(headers=headers or {}, environ_base={"REMOTE_ADDR": remote_addr}):
            return client_ip(request)

    def test_forwarded_for_first_hop(self, app):
        assert self._ip(app, {"X-Forwarded-For": "203.0.113.7, 10.0.0.1"}) == "203.0.113.7"

    def test_real_ip(self, app):
        assert self._ip(app, {"X-Real-IP": " 198.51.100.4 "}) == "198.51.100.4"

    def test_peer_address(self, app):
        assert self._ip(app) == "10.0.0.9"



class TestDispatcherLifecycle:
    @pytest.fixture
    def exit_hooks(self, monkeypatch):
        hooks = []
        monkeypatch.setattr(atexit, "register", hooks.append)
        return hooks

    def test_built_dispatcher_is_drained_at_exit(self, session_factory, exit_hooks):
        config = ErpConfig(config_id="threaded", side_effects=SideEffectConfig(mode="thread"))
        app = create_app(config, session_factory=session_factory)

        dispatcher = app.extensions["erp"].dispatcher
        assert dispatcher.mode is DispatchMode.THREAD
        assert exit_hooks == [dispatcher.shutdown]
        dispatcher.shutdown()

    def test_injected_dispatcher_belongs_to_caller(self, session_factory, dispatcher, exit_hooks):
        create_app(ErpConfig(config_id="injected"), session_factory=session_factory, dispatcher=dispatcher)
        assert exit_hooks == []
