"""AuditTrail writes and the notification inbox."""

from uuid import uuid4

import pytest
from sqlalchemy import select

from erp_kernel.exceptions import NotificationNotFoundError
from erp_kernel.models.audit_log import AuditAction, AuditLog
from erp_kernel.models.notification import Notification, NotificationType
from erp_kernel.services.audit_service import AuditTrail
from erp_kernel.services.notification_service import NotificationService
from erp_kernel.services.side_effects import ActorContext


class TestWriteAuditLog:
    def test_row_written_in_own_session(self, session, audit_trail):
        record_id = uuid4()
        audit_trail.write_audit_log(
            AuditAction.UPDATE, "roles",
            record_id=record_id,
            old_value={"name": "old"},
            new_value={"id": record_id},
            ip_address="10.0.0.1",
        )

        row = session.execute(select(AuditLog)).scalar_one()
        assert row.action == "UPDATE"
        assert row.table_name == "roles"
        assert row.record_id == str(record_id)
        assert row.old_value == {"name": "old"}
        assert row.new_value == {"id": str(record_id)}
        assert row.ip_address == "10.0.0.1"

    def test_actor_from_context(self, session, audit_trail):
        actor = uuid4()
        token = ActorContext.set(actor)
        try:
            audit_trail.write_audit_log("EXPORT", "leaves")
        finally:
            ActorContext.reset(token)
        assert session.execute(select(AuditLog.user_id)).scalar_one() == actor

    def test_explicit_user_wins(self, session, audit_trail):
        explicit = uuid4()
        token = ActorContext.set(uuid4())
        try:
            audit_trail.write_audit_log("LOGIN", "users", user_id=explicit)
        finally:
            ActorContext.reset(token)
        assert session.execute(select(AuditLog.user_id)).scalar_one() == explicit

    def test_failures_are_swallowed(self, session, audit_trail, captured_logs):
        audit_trail.write_audit_log("NOT_AN_ACTION", "roles")

        assert session.execute(select(AuditLog)).scalars().all() == []
        assert any(r["message"] == "audit_log_write_failed" for r in captured_logs())

    def test_broken_session_factory(self, captured_logs):
        def factory():
            raise RuntimeError("database unavailable")

        AuditTrail(factory).create_notification(uuid4(), "SYSTEM", "t", "m")
        assert any(r["message"] == "notification_create_failed" for r in captured_logs())


class TestNotificationInbox:
    @pytest.fixture
    def user_id(self, audit_trail):
        user_id = uuid4()
        for i in range(3):
            audit_trail.create_notification(user_id, NotificationType.NOTICE, f"t{i}", "m")
        audit_trail.create_notification(uuid4(), NotificationType.NOTICE, "other", "m")
        return user_id

    def test_list_and_count(self, session, user_id):
        inbox = NotificationService(session)
        assert len(inbox.list_for_user(user_id)) == 3
        assert len(inbox.list_for_user(user_id, limit=2)) == 2
        assert inbox.unread_count(user_id) == 3

    def test_mark_read(self, session, user_id):
        inbox = NotificationService(session)
        first = inbox.list_for_user(user_id)[0]
        inbox.mark_read(user_id, first.id)

        assert inbox.unread_count(user_id) == 2
        assert first.id not in {n.id for n in inbox.list_for_user(user_id, unread_only=True)}

    def test_cannot_read_someone_elses(self, session, user_id):
        inbox = NotificationService(session)
        first = inbox.list_for_user(user_id)[0]
        with pytest.raises(NotificationNotFoundError):
            inbox.mark_read(uuid4(), first.id)

    def test_mark_all_and_delete_read(self, session, user_id):
        inbox = NotificationService(session)
        assert inbox.mark_all_read(user_id) == 3
        assert inbox.unread_count(user_id) == 0
        assert inbox.delete_read(user_id) == 3
        assert session.execute(
            select(Notification).where(Notification.user_id == user_id)
        ).scalars().all() == []
