"""
Module: erp_kernel.models.audit_log
Responsibility: Append-only audit log rows and the action vocabulary.

Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Rows are written once by AuditTrail and never updated.
    - ``action`` is constrained to the AuditAction values.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any
from uuid import UUID

from sqlalchemy import JSON, CheckConstraint, DateTime, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from erp_kernel.db.base import Base, UUIDString


class AuditAction(str, Enum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    LOGIN = "LOGIN"
    LOGOUT = "LOGOUT"
    EXPORT = "EXPORT"
    IMPORT = "IMPORT"
    APPROVE = "APPROVE"
    REJECT = "REJECT"


class AuditLog(Base):
    """One audited mutation."""

    __tablename__ = "audit_logs"

    __table_args__ = (
        CheckConstraint(
            "action IN ('CREATE', 'UPDATE', 'DELETE', 'LOGIN', 'LOGOUT', "
            "'EXPORT', 'IMPORT', 'APPROVE', 'REJECT')",
            name="ck_audit_logs_valid_action",
        ),
        Index("ix_audit_logs_table_record", "table_name", "record_id"),
        Index("ix_audit_logs_user_created", "user_id", "created_at"),
    )

    user_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    action: Mapped[str] = mapped_column(String(20), nullable=False)
    table_name: Mapped[str] = mapped_column(String(100), nullable=False)
    record_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    old_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    new_value: Mapped[Any] = mapped_column(JSON, nullable=True)
    ip_address: Mapped[str | None] = mapped_column(String(45), nullable=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False,
    )

    def to_dict(self, user_name: str | None = None, user_email: str | None = None) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "userId": str(self.user_id) if self.user_id else None,
            "userName": user_name,
            "userEmail": user_email,
            "action": self.action,
            "tableName": self.table_name,
            "recordId": self.record_id,
            "oldValue": self.old_value,
            "newValue": self.new_value,
            "ipAddress": self.ip_address,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }

    def __repr__(self) -> str:
        return f"<AuditLog {self.action} {self.table_name}/{self.record_id}>"
