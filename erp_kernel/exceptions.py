"""
Typed Exception Hierarchy for the ERP Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Every failure that can reach a caller carries:
  1. A TYPED exception class (catch by type, not message)
  2. A ``code`` class attribute (machine-readable, API-safe)
  3. An ``http_status`` class attribute (boundary mapping, no string parsing)
  4. Structured DATA as instance attributes

Example - WRONG way to handle errors:
    try:
        service.decide(doc_id, user_id, ApprovalDecision.APPROVE)
    except Exception as e:
        if "not found" in str(e):  # FRAGILE
            ...

Example - RIGHT way:
    try:
        service.decide(doc_id, user_id, ApprovalDecision.APPROVE)
    except ApprovalDocumentNotFoundError as e:
        return error_response(str(e), e.code, e.http_status)

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    ErpError (base)
    |
    +-- AuthError
    |   +-- UnauthorizedError
    |   +-- ForbiddenError
    |       +-- PermissionDeniedError
    |       +-- AdminRequiredError
    |       +-- SystemRoleProtectedError
    |
    +-- ValidationError
    |   +-- RequestValidationError
    |   +-- BatchValidationError
    |
    +-- NotFoundError
    |   +-- EmployeeNotFoundError
    |   +-- ApprovalDocumentNotFoundError
    |   +-- LeaveNotFoundError
    |   +-- RoleNotFoundError
    |   +-- NotificationNotFoundError
    |
    +-- ConflictError
    |   +-- DuplicateError
    |   |   +-- DuplicateRoleError
    |   +-- RoleInUseError
    |
    +-- SequenceError
    |   +-- InvalidDocumentPrefixError
    |
    +-- ApprovalError
    |   +-- InvalidApprovalStatusError
    |   +-- InvalidApprovalTransitionError
    |   +-- NotDrafterError
    |   +-- NotCurrentApproverError
    |   +-- StepAlreadyProcessedError
    |
    +-- LeaveError
        +-- InvalidLeaveStatusError
        +-- LeaveBalanceNotFoundError
        +-- InsufficientLeaveBalanceError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                        | HTTP | When Raised
----------------------------|------|------------------------------------------
UNAUTHORIZED                | 401  | No authenticated principal
FORBIDDEN                   | 403  | Missing module/action grant, not drafter,
                            |      | not the current approver, system role
VALIDATION_ERROR            | 400  | Malformed or out-of-range input
BAD_REQUEST                 | 400  | Empty batch, unknown batch action
NOT_FOUND                   | 404  | Employee/document/leave/role missing
DUPLICATE                   | 409  | Uniqueness violated (role name)
CONFLICT                    | 409  | Role still assigned to users
INVALID_STATUS              | 400  | Action not allowed in current status
ALREADY_PROCESSED           | 409  | Approval step already decided
LEAVE_BALANCE_NOT_FOUND     | 400  | No balance row for the leave year
INSUFFICIENT_LEAVE_BALANCE  | 400  | Requested days exceed remaining days
INTERNAL_ERROR              | 500  | Anything not listed (boundary only)

===============================================================================
DESIGN DECISIONS
===============================================================================

1. ``code`` and ``http_status`` are CLASS attributes so that the HTTP layer
   maps errors without instantiating or inspecting messages.

2. Messages are operator-facing English; the HTTP layer decides what text
   reaches end users.

3. Batch operations catch ``ErpError`` per item and fold it into the
   aggregate result; they never swallow anything else.

===============================================================================
"""


class ErpError(Exception):
    """
    Base exception for all ERP kernel errors.

    All subclasses must define ``code`` and ``http_status``.
    """

    code: str = "ERP_ERROR"
    http_status: int = 500


# Auth


class AuthError(ErpError):
    """Base exception for authentication/authorization errors."""

    code: str = "AUTH_ERROR"
    http_status: int = 403


class UnauthorizedError(AuthError):
    """No authenticated principal on the request."""

    code: str = "UNAUTHORIZED"
    http_status: int = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class ForbiddenError(AuthError):
    """Authenticated, but not allowed."""

    code: str = "FORBIDDEN"
    http_status: int = 403

    def __init__(self, message: str = "Permission denied"):
        super().__init__(message)


class PermissionDeniedError(ForbiddenError):
    """Principal lacks the (module, action) grant."""

    def __init__(self, user_id: str | None, module: str, action: str):
        self.user_id = user_id
        self.module = module
        self.action = action
        super().__init__(f"Permission denied: {module}.{action}")


class AdminRequiredError(ForbiddenError):
    """Endpoint restricted to system administrators."""

    def __init__(self, user_id: str | None):
        self.user_id = user_id
        super().__init__("System administrator role required")


class SystemRoleProtectedError(ForbiddenError):
    """System roles cannot be modified or deleted."""

    def __init__(self, role_name: str, operation: str):
        self.role_name = role_name
        self.operation = operation
        super().__init__(f"System role '{role_name}' cannot be {operation}")


# Validation


class ValidationError(ErpError):
    """Malformed or out-of-range input."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400


class RequestValidationError(ValidationError):
    """Input failed schema validation; ``details`` lists field issues."""

    def __init__(self, details: list[dict]):
        self.details = details
        super().__init__(f"Invalid input: {len(details)} issue(s)")


class BatchValidationError(ValidationError):
    """Batch request is unusable as a whole (empty ids, bad action)."""

    code: str = "BAD_REQUEST"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(reason)


# Not found


class NotFoundError(ErpError):
    """Referenced entity does not exist."""

    code: str = "NOT_FOUND"
    http_status: int = 404


class EmployeeNotFoundError(NotFoundError):
    """No employee record (by id, or linked to the given user)."""

    def __init__(self, lookup: str):
        self.lookup = lookup
        super().__init__(f"Employee not found: {lookup}")


class ApprovalDocumentNotFoundError(NotFoundError):
    """Approval document id does not exist."""

    def __init__(self, document_id: str):
        self.document_id = document_id
        super().__init__(f"Approval document not found: {document_id}")


class LeaveNotFoundError(NotFoundError):
    """Leave id does not exist."""

    def __init__(self, leave_id: str):
        self.leave_id = leave_id
        super().__init__(f"Leave not found: {leave_id}")


class RoleNotFoundError(NotFoundError):
    """Role id does not exist."""

    def __init__(self, role_id: str):
        self.role_id = role_id
        super().__init__(f"Role not found: {role_id}")


class NotificationNotFoundError(NotFoundError):
    """Notification does not exist or belongs to another user."""

    def __init__(self, notification_id: str):
        self.notification_id = notification_id
        super().__init__(f"Notification not found: {notification_id}")


# Conflict


class ConflictError(ErpError):
    """State conflict with existing data."""

    code: str = "CONFLICT"
    http_status: int = 409


class DuplicateError(ConflictError):
    """Uniqueness constraint would be violated."""

    code: str = "DUPLICATE"

    def __init__(self, entity: str, key: str):
        self.entity = entity
        self.key = key
        super().__init__(f"{entity} already exists: {key}")


class DuplicateRoleError(DuplicateError):
    """Role name already taken."""

    def __init__(self, name: str):
        super().__init__("Role", name)


class RoleInUseError(ConflictError):
    """Role cannot be deleted while users hold it."""

    def __init__(self, role_name: str, user_count: int):
        self.role_name = role_name
        self.user_count = user_count
        super().__init__(
            f"Role '{role_name}' is assigned to {user_count} user(s)"
        )


# Sequence


class SequenceError(ErpError):
    """Base exception for document numbering errors."""

    code: str = "SEQUENCE_ERROR"
    http_status: int = 500


class InvalidDocumentPrefixError(SequenceError):
    """Document prefix is empty, too long or not upper-case alphanumeric."""

    code: str = "VALIDATION_ERROR"
    http_status: int = 400

    def __init__(self, prefix: str):
        self.prefix = prefix
        super().__init__(f"Invalid document prefix: {prefix!r}")


# Approval


class ApprovalError(ErpError):
    """Base exception for approval workflow errors."""

    code: str = "APPROVAL_ERROR"
    http_status: int = 400


class InvalidApprovalStatusError(ApprovalError):
    """Operation not allowed while the document is in its current status."""

    code: str = "INVALID_STATUS"

    def __init__(self, document_id: str, status: str, operation: str):
        self.document_id = document_id
        self.status = status
        self.operation = operation
        super().__init__(
            f"Cannot {operation} approval document {document_id} in status {status}"
        )


class InvalidApprovalTransitionError(ApprovalError):
    """Derived status change is not an edge of the transition table."""

    code: str = "INVALID_STATUS"

    def __init__(self, from_status: str, to_status: str):
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Invalid approval transition: {from_status} -> {to_status}"
        )


class NotDrafterError(ApprovalError):
    """Only the drafter may submit or cancel a document."""

    code: str = "FORBIDDEN"
    http_status: int = 403

    def __init__(self, document_id: str, employee_id: str):
        self.document_id = document_id
        self.employee_id = employee_id
        super().__init__(
            f"Employee {employee_id} is not the drafter of {document_id}"
        )


class NotCurrentApproverError(ApprovalError):
    """Actor is not the approver of the document's current step."""

    code: str = "FORBIDDEN"
    http_status: int = 403

    def __init__(self, document_id: str, employee_id: str, current_step: int):
        self.document_id = document_id
        self.employee_id = employee_id
        self.current_step = current_step
        super().__init__(
            f"Employee {employee_id} is not the approver of step "
            f"{current_step} on {document_id}"
        )


class StepAlreadyProcessedError(ApprovalError):
    """The current step already carries a decision."""

    code: str = "ALREADY_PROCESSED"
    http_status: int = 409

    def __init__(self, document_id: str, step_order: int, status: str):
        self.document_id = document_id
        self.step_order = step_order
        self.status = status
        super().__init__(
            f"Step {step_order} of {document_id} already {status}"
        )


# Leave


class LeaveError(ErpError):
    """Base exception for leave processing errors."""

    code: str = "LEAVE_ERROR"
    http_status: int = 400


class InvalidLeaveStatusError(LeaveError):
    """Leave is not in a status that allows the operation."""

    code: str = "INVALID_STATUS"

    def __init__(self, leave_id: str, status: str, operation: str):
        self.leave_id = leave_id
        self.status = status
        self.operation = operation
        super().__init__(f"Cannot {operation} leave {leave_id} in status {status}")


class LeaveBalanceNotFoundError(LeaveError):
    """No LeaveBalance row for the employee and year."""

    code: str = "LEAVE_BALANCE_NOT_FOUND"

    def __init__(self, employee_id: str, year: int):
        self.employee_id = employee_id
        self.year = year
        super().__init__(f"No leave balance for employee {employee_id} in {year}")


class InsufficientLeaveBalanceError(LeaveError):
    """Requested days exceed the remaining balance."""

    code: str = "INSUFFICIENT_LEAVE_BALANCE"

    def __init__(self, employee_id: str, year: int, requested: str, remaining: str):
        self.employee_id = employee_id
        self.year = year
        self.requested = requested
        self.remaining = remaining
        super().__init__(
            f"Insufficient leave balance for employee {employee_id} in {year}: "
            f"requested={requested}, remaining={remaining}"
        )
