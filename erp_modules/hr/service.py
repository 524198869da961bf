"""
HR Service (``erp_modules.hr.service``).

Responsibility
--------------
Employee lookup/registration and the leave lifecycle: requesting leave,
approving, rejecting and cancelling single requests, batch approval and
rejection, and yearly balance grants.

Architecture position
---------------------
**Modules layer** -- service facade over the HR ORM models.  Uses kernel
services for side effects.  ``EmployeeService`` is the kernel's
``EmployeeDirectory`` implementation.

Invariants enforced
-------------------
* Leave status changes follow ``LEAVE_TRANSITIONS``.
* A balance is charged at most once per approved leave, and only by a
  single conditional ``UPDATE ... WHERE remaining_days >= days``; it never
  goes negative and is never read-modified-written in Python.
* Batch items run in their own savepoints.  A failed item leaves its
  leave and its balance untouched and never affects another item.
* Audit rows and notifications are written only after commit.

Failure modes
-------------
* ``EmployeeNotFoundError``, ``LeaveNotFoundError`` -- unknown ids.
* ``InvalidLeaveStatusError`` -- action not allowed in current status.
* ``LeaveBalanceNotFoundError`` / ``InsufficientLeaveBalanceError`` on
  approval.
* ``BatchValidationError`` -- empty ids or unknown batch action.
* ``ValidationError`` -- bad dates or day counts.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from decimal import Decimal, InvalidOperation
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session, sessionmaker

from erp_kernel.domain.approval import BatchResult
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.pagination import PageMeta, build_meta
from erp_kernel.exceptions import (
    BatchValidationError,
    EmployeeNotFoundError,
    ErpError,
    InsufficientLeaveBalanceError,
    InvalidLeaveStatusError,
    LeaveBalanceNotFoundError,
    LeaveNotFoundError,
    ValidationError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.audit_log import AuditAction
from erp_kernel.models.notification import NotificationType
from erp_kernel.services.audit_service import AuditTrail
from erp_kernel.services.side_effects import SideEffectDispatcher
from erp_modules.hr.models import (
    ACTION_TARGET_STATUS,
    BATCH_LEAVE_ACTIONS,
    Employee,
    Leave,
    LeaveAction,
    LeaveBalance,
    LeaveStatus,
    LeaveType,
    is_valid_leave_transition,
)
from erp_modules.hr.orm import EmployeeModel, LeaveBalanceModel, LeaveModel

logger = get_logger("modules.hr.service")

LEAVE_TABLE = "leaves"


def _as_uuid(value: UUID | str) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


def _as_days(value: Decimal | int | float | str) -> Decimal:
    try:
        days = Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"Invalid day count: {value!r}") from None
    if not days.is_finite() or days <= 0:
        raise ValidationError("Leave days must be greater than zero")
    return days


class EmployeeService:
    """Employee registration and user <-> employee lookup."""

    def __init__(self, session: Session):
        self._session = session

    def create_employee(
        self, employee_no: str, name: str, user_id: UUID | None = None,
    ) -> Employee:
        if not employee_no or not name:
            raise ValidationError("employee_no and name are required")
        employee = EmployeeModel(employee_no=employee_no, name=name, user_id=user_id)
        self._session.add(employee)
        self._session.flush()
        logger.info(
            "employee_created",
            extra={"employee_id": employee.id, "employee_no": employee_no},
        )
        return employee.to_dto()

    def get_employee(self, employee_id: UUID | str) -> Employee:
        model = self._session.get(EmployeeModel, _as_uuid(employee_id))
        if model is None:
            raise EmployeeNotFoundError(str(employee_id))
        return model.to_dto()

    def employee_id_for_user(self, user_id: UUID) -> UUID | None:
        return self._session.execute(
            select(EmployeeModel.id).where(EmployeeModel.user_id == user_id)
        ).scalar_one_or_none()

    def user_id_for_employee(self, employee_id: UUID) -> UUID | None:
        return self._session.execute(
            select(EmployeeModel.user_id).where(EmployeeModel.id == employee_id)
        ).scalar_one_or_none()


class LeaveService:
    """
    Leave lifecycle over the current session.

    Contract:
        Does NOT commit.  The caller owns the transaction; deferred audit
        and notification writes run when it commits.
    """

    def __init__(
        self,
        session: Session,
        side_effects: SideEffectDispatcher | None = None,
        clock: Clock | None = None,
        audit: AuditTrail | None = None,
    ):
        self._session = session
        self._side_effects = side_effects or SideEffectDispatcher()
        self._clock = clock or SystemClock()
        self._audit = audit or AuditTrail(sessionmaker(bind=session.get_bind()))

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def get_leave(self, leave_id: UUID | str) -> Leave:
        return self._load(leave_id).to_dto()

    def list_leaves(
        self,
        employee_id: UUID | None = None,
        status: LeaveStatus | None = None,
        page: int = 1,
        page_size: int = 20,
    ) -> tuple[list[Leave], PageMeta]:
        stmt = select(LeaveModel)
        if employee_id is not None:
            stmt = stmt.where(LeaveModel.employee_id == employee_id)
        if status is not None:
            stmt = stmt.where(LeaveModel.status == LeaveStatus(status).value)

        total = self._session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()
        rows = self._session.execute(
            stmt.order_by(LeaveModel.start_date.desc(), LeaveModel.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        ).scalars().all()
        return [r.to_dto() for r in rows], build_meta(page, page_size, total)

    def get_balance(self, employee_id: UUID, year: int) -> LeaveBalance | None:
        model = self._balance_row(employee_id, year)
        return model.to_dto() if model is not None else None

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def request_leave(
        self,
        employee_id: UUID | str,
        leave_type: LeaveType | str,
        start_date: date,
        end_date: date,
        days: Decimal | int | float | str,
        reason: str | None = None,
    ) -> Leave:
        if end_date < start_date:
            raise ValidationError("end_date must not be before start_date")
        days = _as_days(days)
        try:
            leave_type = LeaveType(leave_type)
        except ValueError:
            raise ValidationError(f"Unknown leave type: {leave_type!r}") from None

        employee = self._session.get(EmployeeModel, _as_uuid(employee_id))
        if employee is None:
            raise EmployeeNotFoundError(str(employee_id))

        leave = LeaveModel(
            employee_id=employee.id,
            leave_type=leave_type.value,
            start_date=start_date,
            end_date=end_date,
            days=days,
            reason=reason,
            status=LeaveStatus.REQUESTED.value,
        )
        self._session.add(leave)
        self._session.flush()

        logger.info(
            "leave_requested",
            extra={"leave_id": leave.id, "employee_id": employee.id, "days": days},
        )
        self._side_effects.defer(
            self._session, self._audit.write_audit_log,
            AuditAction.CREATE, LEAVE_TABLE,
            record_id=str(leave.id), new_value={"id": str(leave.id)},
        )
        return leave.to_dto()

    def approve(self, leave_id: UUID | str) -> Leave:
        leave = self._load(leave_id)
        self._approve_one(leave)
        self._after_decision(leave, LeaveAction.APPROVE)
        return leave.to_dto()

    def reject(self, leave_id: UUID | str) -> Leave:
        leave = self._load(leave_id)
        self._reject_one(leave)
        self._after_decision(leave, LeaveAction.REJECT)
        return leave.to_dto()

    def cancel(self, leave_id: UUID | str) -> Leave:
        """Cancel a REQUESTED or APPROVED leave; an APPROVED leave gives its days back."""
        leave = self._load(leave_id)
        previous = LeaveStatus(leave.status)
        self._set_status(leave, previous, LeaveStatus.CANCELLED, LeaveAction.CANCEL)

        if previous == LeaveStatus.APPROVED:
            self._session.execute(
                update(LeaveBalanceModel)
                .where(
                    LeaveBalanceModel.employee_id == leave.employee_id,
                    LeaveBalanceModel.year == leave.start_date.year,
                )
                .values(
                    used_days=LeaveBalanceModel.used_days - leave.days,
                    remaining_days=LeaveBalanceModel.remaining_days + leave.days,
                )
                .execution_options(synchronize_session=False)
            )
            self._expire_balance(leave.employee_id, leave.start_date.year)

        logger.info(
            "leave_cancelled",
            extra={"leave_id": leave.id, "previous_status": previous.value},
        )
        self._side_effects.defer(
            self._session, self._audit.write_audit_log,
            AuditAction.UPDATE, LEAVE_TABLE,
            record_id=str(leave.id),
            old_value={"status": previous.value},
            new_value={"status": LeaveStatus.CANCELLED.value},
        )
        return leave.to_dto()

    def batch_process(self, ids: Sequence[UUID | str], action: LeaveAction | str) -> BatchResult:
        """
        Approve or reject many leaves.

        Only leaves currently REQUESTED are processed; anything else is a
        per-item failure.  Each item runs in its own savepoint.

        Raises:
            BatchValidationError: Empty ``ids`` or an action other than
                approve/reject.
        """
        if not ids or isinstance(ids, (str, bytes)):
            raise BatchValidationError("ids must be a non-empty list")
        try:
            leave_action = LeaveAction(action)
        except ValueError:
            leave_action = None
        if leave_action not in BATCH_LEAVE_ACTIONS:
            raise BatchValidationError(
                f"action must be 'approve' or 'reject', got {action!r}"
            )

        keys: list[UUID | None] = []
        for raw in ids:
            try:
                keys.append(_as_uuid(raw))
            except (TypeError, ValueError):
                keys.append(None)

        pending = {
            leave.id: leave
            for leave in self._session.execute(
                select(LeaveModel).where(
                    LeaveModel.id.in_([k for k in keys if k is not None]),
                    LeaveModel.status == LeaveStatus.REQUESTED.value,
                )
            ).scalars()
        }

        success = 0
        errors: list[str] = []
        for raw, key in zip(ids, keys):
            leave = pending.get(key) if key is not None else None
            if leave is None:
                errors.append(f"{raw}: not found or not in REQUESTED status")
                continue
            try:
                with self._session.begin_nested():
                    if leave_action == LeaveAction.APPROVE:
                        self._approve_one(leave)
                    else:
                        self._reject_one(leave)
            except ErpError as exc:
                errors.append(f"{raw}: {exc}")
                continue
            success += 1
            self._after_decision(leave, leave_action)

        result = BatchResult(
            success_count=success, fail_count=len(errors), errors=tuple(errors),
        )
        logger.info(
            "leave_batch_processed",
            extra={
                "action": leave_action.value,
                "success_count": result.success_count,
                "fail_count": result.fail_count,
            },
        )
        return result

    def grant_balance(
        self, employee_id: UUID | str, year: int, total_days: Decimal | int | float | str,
    ) -> LeaveBalance:
        """Create or resize the yearly entitlement.  Used days are kept."""
        employee_id = _as_uuid(employee_id)
        total = Decimal(str(total_days))
        if total < 0:
            raise ValidationError("total_days must not be negative")
        if self._session.get(EmployeeModel, employee_id) is None:
            raise EmployeeNotFoundError(str(employee_id))

        balance = self._balance_row(employee_id, year)
        if balance is None:
            balance = LeaveBalanceModel(
                employee_id=employee_id,
                year=year,
                total_days=total,
                used_days=Decimal("0"),
                remaining_days=total,
            )
            self._session.add(balance)
        else:
            used = Decimal(balance.used_days)
            if total < used:
                raise ValidationError(
                    f"total_days {total} is below days already used ({used})"
                )
            balance.total_days = total
            balance.remaining_days = total - used
        self._session.flush()

        logger.info(
            "leave_balance_granted",
            extra={"employee_id": employee_id, "year": year, "total_days": total},
        )
        return balance.to_dto()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _load(self, leave_id: UUID | str) -> LeaveModel:
        try:
            key = _as_uuid(leave_id)
        except ValueError:
            raise LeaveNotFoundError(str(leave_id)) from None
        leave = self._session.get(LeaveModel, key)
        if leave is None:
            raise LeaveNotFoundError(str(leave_id))
        return leave

    def _balance_row(self, employee_id: UUID, year: int) -> LeaveBalanceModel | None:
        return self._session.execute(
            select(LeaveBalanceModel).where(
                LeaveBalanceModel.employee_id == employee_id,
                LeaveBalanceModel.year == year,
            )
        ).scalar_one_or_none()

    def _expire_balance(self, employee_id: UUID, year: int) -> None:
        for obj in self._session.identity_map.values():
            if (
                isinstance(obj, LeaveBalanceModel)
                and obj.employee_id == employee_id
                and obj.year == year
            ):
                self._session.expire(obj)

    def _set_status(
        self,
        leave: LeaveModel,
        expected: LeaveStatus,
        target: LeaveStatus,
        action: LeaveAction,
    ) -> None:
        """Conditional status write; fails if the row moved since it was read."""
        if not is_valid_leave_transition(expected, target):
            raise InvalidLeaveStatusError(str(leave.id), expected.value, action.value)
        result = self._session.execute(
            update(LeaveModel)
            .where(LeaveModel.id == leave.id, LeaveModel.status == expected.value)
            .values(status=target.value)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            self._session.expire(leave)
            raise InvalidLeaveStatusError(str(leave.id), leave.status, action.value)
        self._session.expire(leave, ["status"])

    def _approve_one(self, leave: LeaveModel) -> None:
        self._set_status(leave, LeaveStatus(leave.status), LeaveStatus.APPROVED, LeaveAction.APPROVE)

        year = leave.start_date.year
        charged = self._session.execute(
            update(LeaveBalanceModel)
            .where(
                LeaveBalanceModel.employee_id == leave.employee_id,
                LeaveBalanceModel.year == year,
                LeaveBalanceModel.remaining_days >= leave.days,
            )
            .values(
                used_days=LeaveBalanceModel.used_days + leave.days,
                remaining_days=LeaveBalanceModel.remaining_days - leave.days,
            )
            .execution_options(synchronize_session=False)
        )
        if charged.rowcount != 1:
            balance = self._balance_row(leave.employee_id, year)
            if balance is None:
                raise LeaveBalanceNotFoundError(str(leave.employee_id), year)
            raise InsufficientLeaveBalanceError(
                str(leave.employee_id), year, str(leave.days), str(balance.remaining_days),
            )
        self._expire_balance(leave.employee_id, year)

    def _reject_one(self, leave: LeaveModel) -> None:
        self._set_status(leave, LeaveStatus(leave.status), LeaveStatus.REJECTED, LeaveAction.REJECT)

    def _after_decision(self, leave: LeaveModel, action: LeaveAction) -> None:
        target = ACTION_TARGET_STATUS[action]
        logger.info(
            "leave_decided",
            extra={"leave_id": leave.id, "status": target.value},
        )
        self._side_effects.defer(
            self._session, self._audit.write_audit_log,
            AuditAction.APPROVE if action == LeaveAction.APPROVE else AuditAction.REJECT,
            LEAVE_TABLE,
            record_id=str(leave.id),
            old_value={"status": LeaveStatus.REQUESTED.value},
            new_value={"status": target.value},
        )

        user_id = leave.employee.user_id if leave.employee is not None else None
        if user_id is not None:
            outcome = "approved" if action == LeaveAction.APPROVE else "rejected"
            self._side_effects.defer(
                self._session, self._audit.create_notification,
                user_id,
                NotificationType.LEAVE,
                f"Leave {outcome}",
                f"Your leave from {leave.start_date.isoformat()} "
                f"to {leave.end_date.isoformat()} was {outcome}",
                related_url="/hr/leave",
            )
