"""
Request body schemas.

Each ``parse_*`` function takes the decoded JSON body and returns typed
values, or raises ``RequestValidationError`` listing every field problem
as ``{"field": ..., "message": ...}``.
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal, InvalidOperation
from typing import Any
from uuid import UUID

from erp_kernel.domain.approval import ApprovalType, StepSpec, Urgency
from erp_kernel.exceptions import RequestValidationError
from erp_modules.hr.models import LeaveType

DOCUMENT_ACTIONS = ("submit", "approve", "reject", "cancel")
LEAVE_ACTIONS = ("approve", "reject", "cancel")
BATCH_ACTIONS = ("approve", "reject")
NOTIFICATION_ACTIONS = ("read", "readAll", "deleteAll")


class _Errors:
    def __init__(self) -> None:
        self.details: list[dict[str, str]] = []

    def add(self, field: str, message: str) -> None:
        self.details.append({"field": field, "message": message})

    def raise_if_any(self) -> None:
        if self.details:
            raise RequestValidationError(self.details)


def _require_body(body: Any) -> dict[str, Any]:
    if not isinstance(body, dict):
        raise RequestValidationError([{"field": "body", "message": "JSON object required"}])
    return body


def _string(body, key, errors, *, required=True, max_length=None) -> str | None:
    value = body.get(key)
    if value is None or value == "":
        if required:
            errors.add(key, "is required")
        return None
    if not isinstance(value, str):
        errors.add(key, "must be a string")
        return None
    if max_length is not None and len(value) > max_length:
        errors.add(key, f"must be at most {max_length} characters")
        return None
    return value


def _uuid(value: Any, field: str, errors: _Errors) -> UUID | None:
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        errors.add(field, "must be a valid id")
        return None


def _date(body, key, errors) -> date | None:
    raw = _string(body, key, errors)
    if raw is None:
        return None
    try:
        return date.fromisoformat(raw[:10])
    except ValueError:
        errors.add(key, "must be an ISO date (YYYY-MM-DD)")
        return None


def _choice(body, key, choices, errors, *, default=None) -> str | None:
    value = body.get(key, default)
    if value not in choices:
        errors.add(key, f"must be one of {', '.join(choices)}")
        return None
    return value


def parse_create_document(body: Any) -> dict[str, Any]:
    body = _require_body(body)
    errors = _Errors()

    title = _string(body, "title", errors, max_length=200)
    draft_date = _date(body, "draftDate", errors)
    urgency = _choice(body, "urgency", [u.value for u in Urgency], errors, default="NORMAL")

    steps: list[StepSpec] = []
    raw_steps = body.get("steps")
    if not isinstance(raw_steps, list) or not raw_steps:
        errors.add("steps", "at least one approver is required")
    else:
        for index, raw in enumerate(raw_steps):
            if not isinstance(raw, dict):
                errors.add(f"steps[{index}]", "must be an object")
                continue
            approver = _uuid(raw.get("approverId"), f"steps[{index}].approverId", errors)
            approval_type = raw.get("approvalType", ApprovalType.APPROVE.value)
            if approval_type not in {t.value for t in ApprovalType}:
                errors.add(f"steps[{index}].approvalType", "must be APPROVE, REVIEW or NOTIFY")
                continue
            if approver is not None:
                steps.append(StepSpec(approver, ApprovalType(approval_type)))

    optional = {}
    for key in ("templateId", "relatedModule", "relatedDocId"):
        optional[key] = _string(body, key, errors, required=False, max_length=50)

    errors.raise_if_any()
    return {
        "title": title,
        "draft_date": draft_date,
        "steps": steps,
        "content": body.get("content"),
        "urgency": Urgency(urgency),
        "template_id": optional["templateId"],
        "related_module": optional["relatedModule"],
        "related_doc_id": optional["relatedDocId"],
    }


def parse_document_action(body: Any) -> tuple[str, str | None]:
    body = _require_body(body)
    errors = _Errors()
    action = _choice(body, "action", DOCUMENT_ACTIONS, errors)
    comment = _string(body, "comment", errors, required=False, max_length=2000)
    errors.raise_if_any()
    return action, comment


def parse_batch(body: Any) -> tuple[list[Any], str, str | None]:
    """Shape check only; emptiness and action are validated by the services."""
    body = _require_body(body)
    errors = _Errors()
    ids = body.get("ids")
    if not isinstance(ids, list):
        errors.add("ids", "must be a list")
    action = body.get("action")
    if not isinstance(action, str):
        errors.add("action", "must be a string")
    comment = _string(body, "comment", errors, required=False, max_length=2000)
    errors.raise_if_any()
    return ids, action, comment


def parse_create_leave(body: Any) -> dict[str, Any]:
    body = _require_body(body)
    errors = _Errors()

    employee_id = _uuid(body.get("employeeId"), "employeeId", errors)
    leave_type = _choice(body, "leaveType", [t.value for t in LeaveType], errors)
    start_date = _date(body, "startDate", errors)
    end_date = _date(body, "endDate", errors)

    days = None
    raw_days = body.get("days")
    if isinstance(raw_days, bool) or not isinstance(raw_days, (int, float, str)):
        errors.add("days", "must be a number")
    else:
        try:
            days = Decimal(str(raw_days))
            if not days.is_finite() or days < Decimal("0.5"):
                errors.add("days", "must be at least 0.5")
                days = None
        except InvalidOperation:
            errors.add("days", "must be a number")

    if start_date and end_date and end_date < start_date:
        errors.add("endDate", "must not be before startDate")

    reason = _string(body, "reason", errors, required=False, max_length=1000)
    errors.raise_if_any()
    return {
        "employee_id": employee_id,
        "leave_type": LeaveType(leave_type),
        "start_date": start_date,
        "end_date": end_date,
        "days": days,
        "reason": reason,
    }


def parse_leave_action(body: Any) -> tuple[UUID, str]:
    body = _require_body(body)
    errors = _Errors()
    leave_id = _uuid(body.get("id"), "id", errors)
    action = _choice(body, "action", LEAVE_ACTIONS, errors)
    errors.raise_if_any()
    return leave_id, action


def parse_notification_action(body: Any) -> tuple[str, UUID | None]:
    body = _require_body(body)
    errors = _Errors()
    action = _choice(body, "action", NOTIFICATION_ACTIONS, errors)
    notification_id = None
    if action == "read":
        notification_id = _uuid(body.get("id"), "id", errors)
    errors.raise_if_any()
    return action, notification_id


def parse_role(body: Any, *, partial: bool = False) -> dict[str, Any]:
    body = _require_body(body)
    errors = _Errors()
    result: dict[str, Any] = {}

    if not partial or "name" in body:
        result["name"] = _string(body, "name", errors, max_length=50)
    if "description" in body:
        result["description"] = _string(body, "description", errors, required=False, max_length=500)

    if "permissionIds" in body or not partial:
        raw = body.get("permissionIds", [])
        if not isinstance(raw, list):
            errors.add("permissionIds", "must be a list")
        else:
            ids = [_uuid(v, f"permissionIds[{i}]", errors) for i, v in enumerate(raw)]
            result["permission_ids"] = [i for i in ids if i is not None]

    errors.raise_if_any()
    return result
