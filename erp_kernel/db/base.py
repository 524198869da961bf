"""
Declarative bases shared by every ERP table.

Kernel > DB.  Model modules import from here; nothing here imports back
into models, services or the HTTP layer.

Conventions:
    - Primary keys are uuid4 values, stored as 36-character strings so the
      same schema runs on SQLite and PostgreSQL.
    - ``Mapped[Decimal]`` columns are Numeric(12, 2).  Leave quantities come
      in half days, so two places are enough; floats are never used.
    - Every ``datetime`` column is timezone-aware.
"""

from datetime import datetime
from decimal import Decimal
from typing import ClassVar
from uuid import UUID, uuid4

from sqlalchemy import Numeric, String, func
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import DateTime, TypeDecorator

__all__ = ["UUID", "UUIDString", "Base", "TrackedBase"]


class UUIDString(TypeDecorator):
    """``uuid.UUID`` on the Python side, ``VARCHAR(36)`` in the database."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return None if value is None else str(value)

    def process_result_value(self, value, dialect):
        return None if value is None else UUID(value)


class Base(DeclarativeBase):
    type_annotation_map: ClassVar[dict] = {
        UUID: UUIDString(),
        Decimal: Numeric(12, 2),
        datetime: DateTime(timezone=True),
    }

    id: Mapped[UUID] = mapped_column(UUIDString(), primary_key=True, default=uuid4)


class TrackedBase(Base):
    """Adds ``created_at`` / ``updated_at``, both filled by the database."""

    __abstract__ = True

    created_at: Mapped[datetime] = mapped_column(server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        server_default=func.now(), onupdate=func.now(), nullable=False,
    )
