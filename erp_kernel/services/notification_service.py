"""
NotificationService -- a user's notification inbox.

Reads and read-marks notifications for one user at a time.  Notifications
are created by AuditTrail; this service never creates them.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy import delete, func, select, update
from sqlalchemy.orm import Session

from erp_kernel.exceptions import NotificationNotFoundError
from erp_kernel.logging_config import get_logger
from erp_kernel.models.notification import Notification

logger = get_logger("services.notification")


class NotificationService:
    def __init__(self, session: Session):
        self._session = session

    def list_for_user(
        self, user_id: UUID, unread_only: bool = False, limit: int = 20,
    ) -> list[Notification]:
        """Newest first, at most ``limit`` rows."""
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.is_read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc(), Notification.id).limit(limit)
        return list(self._session.execute(stmt).scalars())

    def unread_count(self, user_id: UUID) -> int:
        return self._session.execute(
            select(func.count(Notification.id)).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(False),
            )
        ).scalar_one()

    def mark_read(self, user_id: UUID, notification_id: UUID) -> Notification:
        """Mark one notification read.

        Raises:
            NotificationNotFoundError: If it does not exist or belongs to
                another user.
        """
        notification = self._session.get(Notification, notification_id)
        if notification is None or notification.user_id != user_id:
            raise NotificationNotFoundError(str(notification_id))
        notification.is_read = True
        self._session.flush()
        return notification

    def mark_all_read(self, user_id: UUID) -> int:
        """Returns the number of notifications that changed."""
        result = self._session.execute(
            update(Notification)
            .where(Notification.user_id == user_id, Notification.is_read.is_(False))
            .values(is_read=True)
        )
        logger.info(
            "notifications_marked_read",
            extra={"user_id": user_id, "count": result.rowcount},
        )
        return result.rowcount

    def delete_read(self, user_id: UUID) -> int:
        """Delete the user's already-read notifications; returns how many."""
        result = self._session.execute(
            delete(Notification).where(
                Notification.user_id == user_id,
                Notification.is_read.is_(True),
            )
        )
        return result.rowcount
