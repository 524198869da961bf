"""
HR Module (``erp_modules.hr``).

Responsibility
--------------
Employees, leave requests and yearly leave balances.  Single and batch
leave decisions charge balances through one conditional UPDATE per item.

Architecture position
---------------------
**Modules layer** -- frozen models, ORM, and a service facade.  Depends on
``erp_kernel`` for persistence, side effects, errors and logging.
"""

from erp_modules.hr.models import (
    LEAVE_TRANSITIONS,
    Employee,
    Leave,
    LeaveAction,
    LeaveBalance,
    LeaveStatus,
    LeaveType,
)
from erp_modules.hr.service import EmployeeService, LeaveService

__all__ = [
    "LEAVE_TRANSITIONS",
    "Employee",
    "EmployeeService",
    "Leave",
    "LeaveAction",
    "LeaveBalance",
    "LeaveService",
    "LeaveStatus",
    "LeaveType",
]
