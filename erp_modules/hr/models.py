"""
HR Domain Models (``erp_modules.hr.models``).

Responsibility
--------------
Frozen value objects for employees, leave requests and yearly leave
balances, plus the leave lifecycle state machine.

Architecture position
---------------------
**Modules layer** -- pure data definitions.  No I/O, no database.  These
objects flow *out of* ``LeaveService`` as immutable snapshots.

Invariants enforced
-------------------
* Day counts are ``Decimal`` (half days are allowed), never ``float``.
* ``LEAVE_TRANSITIONS`` lists the only valid status changes; REJECTED and
  CANCELLED are terminal.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import UUID


class LeaveStatus(str, Enum):
    REQUESTED = "REQUESTED"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class LeaveType(str, Enum):
    ANNUAL = "ANNUAL"
    SICK = "SICK"
    FAMILY = "FAMILY"
    MATERNITY = "MATERNITY"
    PARENTAL = "PARENTAL"
    OFFICIAL = "OFFICIAL"


class LeaveAction(str, Enum):
    """Actions accepted by single and batch leave processing."""

    APPROVE = "approve"
    REJECT = "reject"
    CANCEL = "cancel"


BATCH_LEAVE_ACTIONS: frozenset[LeaveAction] = frozenset({
    LeaveAction.APPROVE,
    LeaveAction.REJECT,
})

LEAVE_TRANSITIONS: dict[LeaveStatus, frozenset[LeaveStatus]] = {
    LeaveStatus.REQUESTED: frozenset({
        LeaveStatus.APPROVED,
        LeaveStatus.REJECTED,
        LeaveStatus.CANCELLED,
    }),
    LeaveStatus.APPROVED: frozenset({LeaveStatus.CANCELLED}),
    LeaveStatus.REJECTED: frozenset(),
    LeaveStatus.CANCELLED: frozenset(),
}

ACTION_TARGET_STATUS: dict[LeaveAction, LeaveStatus] = {
    LeaveAction.APPROVE: LeaveStatus.APPROVED,
    LeaveAction.REJECT: LeaveStatus.REJECTED,
    LeaveAction.CANCEL: LeaveStatus.CANCELLED,
}


def is_valid_leave_transition(from_status: LeaveStatus, to_status: LeaveStatus) -> bool:
    return to_status in LEAVE_TRANSITIONS[from_status]


@dataclass(frozen=True)
class Employee:
    employee_id: UUID
    employee_no: str
    name: str
    user_id: UUID | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.employee_id),
            "employeeNo": self.employee_no,
            "name": self.name,
            "userId": str(self.user_id) if self.user_id else None,
        }


@dataclass(frozen=True)
class Leave:
    """A leave request snapshot."""

    leave_id: UUID
    employee_id: UUID
    leave_type: LeaveType
    start_date: date
    end_date: date
    days: Decimal
    status: LeaveStatus
    reason: str | None = None
    created_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.leave_id),
            "employeeId": str(self.employee_id),
            "leaveType": self.leave_type.value,
            "startDate": self.start_date.isoformat(),
            "endDate": self.end_date.isoformat(),
            "days": str(self.days),
            "reason": self.reason,
            "status": self.status.value,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class LeaveBalance:
    """Yearly entitlement; ``remaining_days`` is never negative."""

    employee_id: UUID
    year: int
    total_days: Decimal
    used_days: Decimal
    remaining_days: Decimal

    def to_dict(self) -> dict[str, Any]:
        return {
            "employeeId": str(self.employee_id),
            "year": self.year,
            "totalDays": str(self.total_days),
            "usedDays": str(self.used_days),
            "remainingDays": str(self.remaining_days),
        }
