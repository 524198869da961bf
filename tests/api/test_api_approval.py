"""Approval document workflow over HTTP."""

import pytest
from sqlalchemy import select

from erp_kernel.domain.pagination import MAX_PAGE
from erp_kernel.models.audit_log import AuditLog
from erp_kernel.models.notification import Notification

DRAFTER_GRANTS = [("approval", "read"), ("approval", "create"), ("approval", "update")]
APPROVER_GRANTS = [("approval", "read"), ("approval", "approve")]


@pytest.fixture
def people(session, make_person):
    drafter = make_person("drafter")
    first = make_person("first-approver")
    second = make_person("second-approver")
    session.commit()
    return drafter, first, second


def _create(client, login, drafter, *approvers, title="Laptop purchase"):
    login(drafter.user_id, grants=DRAFTER_GRANTS)
    response = client.post("/api/v1/approval/documents", json={
        "title": title,
        "draftDate": "2024-06-15",
        "content": {"amount": "1200.00"},
        "steps": [{"approverId": str(a.employee_id)} for a in approvers],
    })
    assert response.status_code == 201, response.get_json()
    return response.get_json()["data"]


def _act(client, document_id, action, comment=None):
    body = {"action": action}
    if comment is not None:
        body["comment"] = comment
    return client.put(f"/api/v1/approval/documents/{document_id}", json=body)


class TestDocumentLifecycle:
    def test_create_numbers_document(self, client, login, people):
        drafter, first, second = people
        document = _create(client, login, drafter, first, second)
        assert document["documentNo"] == "APR-202406-00001"
        assert document["status"] == "DRAFT"
        assert document["totalSteps"] == 2
        assert document["currentStep"] == 0
        assert [s["approverId"] for s in document["steps"]] == [
            str(first.employee_id), str(second.employee_id),
        ]

    def test_sequential_approval(self, client, login, people, session_factory):
        drafter, first, second = people
        document = _create(client, login, drafter, first, second)

        submitted = _act(client, document["id"], "submit").get_json()["data"]
        assert (submitted["status"], submitted["currentStep"]) == ("IN_PROGRESS", 1)

        login(second.user_id, grants=APPROVER_GRANTS)
        response = _act(client, document["id"], "approve")
        assert response.status_code == 403

        login(first.user_id, grants=APPROVER_GRANTS)
        halfway = _act(client, document["id"], "approve", "ok").get_json()["data"]
        assert (halfway["status"], halfway["currentStep"]) == ("IN_PROGRESS", 2)

        login(second.user_id, grants=APPROVER_GRANTS)
        done = _act(client, document["id"], "approve").get_json()["data"]
        assert done["status"] == "APPROVED"
        assert [s["status"] for s in done["steps"]] == ["APPROVED", "APPROVED"]
        assert done["steps"][0]["comment"] == "ok"

        with session_factory() as s:
            actions = s.execute(
                select(AuditLog.action)
                .where(AuditLog.record_id == document["id"])
                .order_by(AuditLog.action)
            ).scalars().all()
            titles = s.execute(
                select(Notification.title).where(Notification.user_id == drafter.user_id)
            ).scalars().all()
        assert "CREATE" in actions and "APPROVE" in actions
        assert titles == ["Approval approved"]

    def test_reject_is_terminal(self, client, login, people):
        drafter, first, _ = people
        document = _create(client, login, drafter, first)
        _act(client, document["id"], "submit")

        login(first.user_id, grants=APPROVER_GRANTS)
        assert _act(client, document["id"], "reject", "no budget").get_json()["data"]["status"] == "REJECTED"

        response = _act(client, document["id"], "approve")
        assert response.status_code in (400, 403, 409)
        assert response.get_json()["success"] is False

    def test_only_drafter_submits(self, client, login, people):
        drafter, first, _ = people
        document = _create(client, login, drafter, first)
        login(first.user_id, grants=DRAFTER_GRANTS)
        response = _act(client, document["id"], "submit")
        assert response.status_code == 403

    def test_approve_requires_approve_permission(self, client, login, people):
        drafter, first, _ = people
        document = _create(client, login, drafter, first)
        _act(client, document["id"], "submit")
        login(first.user_id, grants=DRAFTER_GRANTS)
        assert _act(client, document["id"], "approve").status_code == 403

    def test_department_head_needs_no_grant(self, client, login, people):
        drafter, first, _ = people
        document = _create(client, login, drafter, first)
        _act(client, document["id"], "submit")
        login(first.user_id, roles=["부서장"])
        assert _act(client, document["id"], "approve").get_json()["data"]["status"] == "APPROVED"

    def test_unknown_document(self, client, login, people):
        login(people[0].user_id, grants=DRAFTER_GRANTS)
        response = client.get("/api/v1/approval/documents/00000000-0000-0000-0000-000000000000")
        assert response.status_code == 404


class TestListing:
    def test_my_approvals_and_drafts(self, client, login, people):
        drafter, first, second = people
        waiting = _create(client, login, drafter, first, title="waiting")
        _create(client, login, drafter, second, title="still draft")
        _act(client, waiting["id"], "submit")

        login(first.user_id, grants=APPROVER_GRANTS, employee_id=first.employee_id)
        mine = client.get("/api/v1/approval/documents?myApprovals=true").get_json()
        assert [d["title"] for d in mine["data"]] == ["waiting"]

        login(drafter.user_id, grants=DRAFTER_GRANTS)
        drafts = client.get("/api/v1/approval/documents?filter=myDrafts").get_json()
        assert drafts["meta"]["totalCount"] == 2

    def test_user_without_employee_sees_nothing(self, client, login, people, make_user, session):
        _create(client, login, people[0], people[1])
        outsider = make_user("outsider")
        session.commit()
        login(outsider.id, grants=APPROVER_GRANTS)
        body = client.get("/api/v1/approval/documents?myDrafts=true").get_json()
        assert body["data"] == []
        assert body["meta"]["totalCount"] == 0

    def test_pagination_meta(self, client, login, people):
        drafter, first, _ = people
        for n in range(3):
            _create(client, login, drafter, first, title=f"doc {n}")
        body = client.get("/api/v1/approval/documents?page=2&pageSize=2").get_json()
        assert len(body["data"]) == 1
        assert body["meta"] == {"page": 2, "pageSize": 2, "totalCount": 3, "totalPages": 2}

    def test_absurd_page_is_an_empty_page(self, client, login, people):
        drafter, first, _ = people
        _create(client, login, drafter, first)
        response = client.get("/api/v1/approval/documents?page=99999999999999999999")
        assert response.status_code == 200
        assert response.get_json()["data"] == []
        assert response.get_json()["meta"]["page"] == MAX_PAGE


class TestBatch:
    def test_mixed_batch(self, client, login, people):
        drafter, first, second = people
        mine = _create(client, login, drafter, first, title="mine")
        not_mine = _create(client, login, drafter, second, title="not mine")
        for document in (mine, not_mine):
            _act(client, document["id"], "submit")

        login(first.user_id, grants=APPROVER_GRANTS)
        response = client.post("/api/v1/approval/batch", json={
            "ids": [mine["id"], not_mine["id"], "bogus"],
            "action": "approve",
        })
        result = response.get_json()["data"]
        assert result["successCount"] == 1
        assert result["failCount"] == 2
        assert result["errors"][1] == "bogus: not found"

        assert client.get(f"/api/v1/approval/documents/{mine['id']}").get_json()["data"]["status"] == "APPROVED"
        assert client.get(f"/api/v1/approval/documents/{not_mine['id']}").get_json()["data"]["status"] == "IN_PROGRESS"

    @pytest.mark.parametrize("body", [
        {"ids": [], "action": "approve"},
        {"ids": ["x"], "action": "delete"},
    ])
    def test_unusable_batch(self, client, login, people, body):
        login(people[1].user_id, grants=APPROVER_GRANTS)
        response = client.post("/api/v1/approval/batch", json=body)
        assert response.status_code == 400
        assert response.get_json()["error"]["code"] == "BAD_REQUEST"
