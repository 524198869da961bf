"""
HR ORM Models (``erp_modules.hr.orm``).

Responsibility
--------------
SQLAlchemy persistence for employees, leave requests and leave balances.
Maps the frozen dataclasses in ``models.py`` to tables.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``erp_kernel.db.base``
and sibling ``models.py``.  MUST NOT be imported by ``erp_kernel``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import TrackedBase, UUIDString
from erp_modules.hr.models import (
    Employee,
    Leave,
    LeaveBalance,
    LeaveStatus,
    LeaveType,
)


class EmployeeModel(TrackedBase):
    """
    ORM model for employees.

    Guarantees:
        - employee_no is unique.
        - at most one employee per login user.
    """

    __tablename__ = "employees"

    employee_no: Mapped[str] = mapped_column(String(20), nullable=False, unique=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    user_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("users.id"), nullable=True, unique=True,
    )

    def to_dto(self) -> Employee:
        return Employee(
            employee_id=self.id,
            employee_no=self.employee_no,
            name=self.name,
            user_id=self.user_id,
        )


class LeaveModel(TrackedBase):
    """ORM model for leave requests."""

    __tablename__ = "leaves"

    __table_args__ = (
        CheckConstraint(
            "status IN ('REQUESTED', 'APPROVED', 'REJECTED', 'CANCELLED')",
            name="ck_leaves_valid_status",
        ),
        CheckConstraint("days > 0", name="ck_leaves_days_positive"),
        CheckConstraint("end_date >= start_date", name="ck_leaves_date_order"),
        Index("idx_leaves_employee_start", "employee_id", "start_date"),
        Index("idx_leaves_status", "status"),
    )

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("employees.id"), nullable=False,
    )
    leave_type: Mapped[str] = mapped_column(String(20), nullable=False)
    start_date: Mapped[date] = mapped_column(Date, nullable=False)
    end_date: Mapped[date] = mapped_column(Date, nullable=False)
    days: Mapped[Decimal] = mapped_column(nullable=False)
    reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default=LeaveStatus.REQUESTED.value,
    )

    employee: Mapped[EmployeeModel] = relationship("EmployeeModel", lazy="joined")

    def to_dto(self) -> Leave:
        return Leave(
            leave_id=self.id,
            employee_id=self.employee_id,
            leave_type=LeaveType(self.leave_type),
            start_date=self.start_date,
            end_date=self.end_date,
            days=Decimal(self.days),
            status=LeaveStatus(self.status),
            reason=self.reason,
            created_at=self.created_at,
        )


class LeaveBalanceModel(TrackedBase):
    """
    ORM model for yearly leave balances.

    Guarantees:
        - one row per (employee_id, year).
        - remaining_days >= 0, enforced by a check constraint.
    """

    __tablename__ = "leave_balances"

    __table_args__ = (
        UniqueConstraint("employee_id", "year", name="uq_leave_balances_employee_year"),
        CheckConstraint("remaining_days >= 0", name="ck_leave_balances_remaining_nonneg"),
        CheckConstraint("used_days >= 0", name="ck_leave_balances_used_nonneg"),
    )

    employee_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("employees.id"), nullable=False,
    )
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    total_days: Mapped[Decimal] = mapped_column(nullable=False)
    used_days: Mapped[Decimal] = mapped_column(nullable=False, default=Decimal("0"))
    remaining_days: Mapped[Decimal] = mapped_column(nullable=False)

    def to_dto(self) -> LeaveBalance:
        return LeaveBalance(
            employee_id=self.employee_id,
            year=self.year,
            total_days=Decimal(self.total_days),
            used_days=Decimal(self.used_days),
            remaining_days=Decimal(self.remaining_days),
        )
