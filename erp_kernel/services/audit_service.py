"""
AuditTrail -- best-effort audit log and notification writers.

Responsibility:
    Persist audit log rows and in-app notifications in their own session
    and transaction, independent of the business transaction that
    triggered them.
    AuditLogReader is the paginated read side used by the admin console.

Architecture position:
    Kernel > Services.  Normally invoked through SideEffectDispatcher so
    writes happen only after the business transaction commits.

Invariants enforced:
    - Never raises.  Every failure is logged and swallowed; a missing
      audit row must never fail or delay the business operation.
    - The acting user defaults to ``ActorContext`` when not passed.
"""

from __future__ import annotations

import json
from collections.abc import Callable
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from erp_kernel.domain.pagination import PageMeta, build_meta
from erp_kernel.logging_config import get_logger
from erp_kernel.models.audit_log import AuditAction, AuditLog
from erp_kernel.models.identity import User
from erp_kernel.models.notification import Notification, NotificationType
from erp_kernel.services.side_effects import ActorContext

logger = get_logger("services.audit")


def _json_safe(value: Any) -> Any:
    if value is None:
        return None
    return json.loads(json.dumps(value, default=str))


class AuditTrail:
    """
    Writes audit rows and notifications in short-lived sessions.

    Usage:
        trail = AuditTrail(get_session_factory())
        dispatcher.defer(session, trail.write_audit_log,
                         AuditAction.APPROVE, "leaves", record_id=str(leave.id))
    """

    def __init__(
        self,
        session_factory: sessionmaker[Session] | Callable[[], Session],
        actor_resolver: Callable[[], UUID | None] = ActorContext.current_user_id,
    ):
        self._session_factory = session_factory
        self._actor_resolver = actor_resolver

    def write_audit_log(
        self,
        action: AuditAction | str,
        table_name: str,
        record_id: str | None = None,
        old_value: Any = None,
        new_value: Any = None,
        ip_address: str | None = None,
        user_id: UUID | None = None,
    ) -> None:
        try:
            action_value = AuditAction(action).value
            actor = user_id if user_id is not None else self._actor_resolver()
            session = self._session_factory()
            try:
                session.add(AuditLog(
                    user_id=actor,
                    action=action_value,
                    table_name=table_name,
                    record_id=str(record_id) if record_id is not None else None,
                    old_value=_json_safe(old_value),
                    new_value=_json_safe(new_value),
                    ip_address=ip_address,
                ))
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
            logger.debug(
                "audit_log_written",
                extra={
                    "action": action_value,
                    "table_name": table_name,
                    "record_id": record_id,
                },
            )
        except Exception:
            logger.error(
                "audit_log_write_failed",
                extra={"action": str(action), "table_name": table_name, "record_id": record_id},
                exc_info=True,
            )

    def create_notification(
        self,
        user_id: UUID,
        type: NotificationType | str,
        title: str,
        message: str,
        related_url: str | None = None,
    ) -> None:
        try:
            type_value = NotificationType(type).value
            session = self._session_factory()
            try:
                session.add(Notification(
                    user_id=user_id,
                    type=type_value,
                    title=title,
                    message=message,
                    related_url=related_url,
                    is_read=False,
                ))
                session.commit()
            except Exception:
                session.rollback()
                raise
            finally:
                session.close()
            logger.debug(
                "notification_created",
                extra={"user_id": user_id, "type": type_value},
            )
        except Exception:
            logger.error(
                "notification_create_failed",
                extra={"user_id": user_id, "type": str(type)},
                exc_info=True,
            )


class AuditLogReader:
    """Read side of the audit log for the admin console.  Newest first."""

    def __init__(self, session: Session):
        self._session = session

    def list_logs(
        self,
        table_name: str | None = None,
        action: AuditAction | str | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[dict[str, Any]], PageMeta]:
        stmt = select(AuditLog)
        if table_name:
            stmt = stmt.where(AuditLog.table_name == table_name)
        if action is not None:
            stmt = stmt.where(AuditLog.action == AuditAction(action).value)

        total = self._session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        rows = self._session.execute(
            stmt.add_columns(User.name, User.email)
            .outerjoin(User, User.id == AuditLog.user_id)
            .order_by(AuditLog.created_at.desc(), AuditLog.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).all()
        items = [log.to_dict(user_name=name, user_email=email) for log, name, email in rows]
        return items, build_meta(page, page_size, total)
