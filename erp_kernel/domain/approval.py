"""
Approval domain types (``erp_kernel.domain.approval``).

Responsibility
--------------
Pure value objects for multi-step approval documents.  Defines the
document and step lifecycle state machines, the status aggregation
policy, and the frozen views returned to callers.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.  No imports
from ``db/``, ``services/``, ``selectors/``, or outer layers.

Invariants enforced
-------------------
* Lifecycle state machines -- ``DOCUMENT_TRANSITIONS`` and
  ``STEP_TRANSITIONS`` define the only valid status transitions.
  Terminal states have no outgoing edges.
* Document status is derived from step statuses by a
  ``StatusAggregationPolicy``; it is never set independently.
* Step order is the 1-based submission index; steps are never re-sorted.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Any, Protocol
from uuid import UUID


# =========================================================================
# Lifecycle
# =========================================================================


class DocumentStatus(str, Enum):
    """Approval document lifecycle states."""

    DRAFT = "DRAFT"
    IN_PROGRESS = "IN_PROGRESS"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


class StepStatus(str, Enum):
    """Approval step lifecycle states."""

    PENDING = "PENDING"
    APPROVED = "APPROVED"
    REJECTED = "REJECTED"


class ApprovalType(str, Enum):
    """Role of a step in the chain."""

    APPROVE = "APPROVE"
    REVIEW = "REVIEW"
    NOTIFY = "NOTIFY"


class Urgency(str, Enum):
    NORMAL = "NORMAL"
    URGENT = "URGENT"
    EMERGENCY = "EMERGENCY"


class ApprovalDecision(str, Enum):
    """Decision an approver records on their step."""

    APPROVE = "approve"
    REJECT = "reject"


DOCUMENT_TRANSITIONS: dict[DocumentStatus, frozenset[DocumentStatus]] = {
    DocumentStatus.DRAFT: frozenset({
        DocumentStatus.IN_PROGRESS,
        DocumentStatus.CANCELLED,
    }),
    DocumentStatus.IN_PROGRESS: frozenset({
        DocumentStatus.IN_PROGRESS,
        DocumentStatus.APPROVED,
        DocumentStatus.REJECTED,
        DocumentStatus.CANCELLED,
    }),
    DocumentStatus.APPROVED: frozenset(),
    DocumentStatus.REJECTED: frozenset(),
    DocumentStatus.CANCELLED: frozenset(),
}

TERMINAL_DOCUMENT_STATUSES: frozenset[DocumentStatus] = frozenset(
    status for status, targets in DOCUMENT_TRANSITIONS.items() if not targets
)

CANCELLABLE_DOCUMENT_STATUSES: frozenset[DocumentStatus] = frozenset({
    DocumentStatus.DRAFT,
    DocumentStatus.IN_PROGRESS,
})

STEP_TRANSITIONS: dict[StepStatus, frozenset[StepStatus]] = {
    StepStatus.PENDING: frozenset({StepStatus.APPROVED, StepStatus.REJECTED}),
    StepStatus.APPROVED: frozenset(),
    StepStatus.REJECTED: frozenset(),
}

DECISION_TO_STEP_STATUS: dict[ApprovalDecision, StepStatus] = {
    ApprovalDecision.APPROVE: StepStatus.APPROVED,
    ApprovalDecision.REJECT: StepStatus.REJECTED,
}


def is_valid_document_transition(
    from_status: DocumentStatus, to_status: DocumentStatus,
) -> bool:
    return to_status in DOCUMENT_TRANSITIONS[from_status]


def is_valid_step_transition(from_status: StepStatus, to_status: StepStatus) -> bool:
    return to_status in STEP_TRANSITIONS[from_status]


# =========================================================================
# Status aggregation
# =========================================================================


class StatusAggregationPolicy(Protocol):
    """Derives the document status from its steps."""

    def derive(
        self,
        step_statuses: Sequence[StepStatus],
        *,
        submitted: bool,
        cancelled: bool,
    ) -> DocumentStatus: ...


class SequentialApprovalPolicy:
    """Every step must approve, in order; any rejection rejects the document.

    REVIEW and NOTIFY steps are decided like APPROVE steps.
    """

    def derive(
        self,
        step_statuses: Sequence[StepStatus],
        *,
        submitted: bool,
        cancelled: bool,
    ) -> DocumentStatus:
        if cancelled:
            return DocumentStatus.CANCELLED
        if not submitted:
            return DocumentStatus.DRAFT
        if any(s == StepStatus.REJECTED for s in step_statuses):
            return DocumentStatus.REJECTED
        if step_statuses and all(s == StepStatus.APPROVED for s in step_statuses):
            return DocumentStatus.APPROVED
        return DocumentStatus.IN_PROGRESS


DEFAULT_AGGREGATION_POLICY = SequentialApprovalPolicy()


def derive_document_status(
    step_statuses: Sequence[StepStatus],
    *,
    submitted: bool,
    cancelled: bool = False,
    policy: StatusAggregationPolicy = DEFAULT_AGGREGATION_POLICY,
) -> DocumentStatus:
    """Apply ``policy`` to a list of step statuses."""
    return policy.derive(step_statuses, submitted=submitted, cancelled=cancelled)


# =========================================================================
# Input and output records
# =========================================================================


@dataclass(frozen=True)
class StepSpec:
    """One requested step, in submission order."""

    approver_id: UUID
    approval_type: ApprovalType = ApprovalType.APPROVE


@dataclass(frozen=True)
class ApprovalStepView:
    step_id: UUID
    step_order: int
    approver_id: UUID
    approval_type: ApprovalType
    status: StepStatus
    comment: str | None = None
    acted_at: datetime | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.step_id),
            "stepOrder": self.step_order,
            "approverId": str(self.approver_id),
            "approvalType": self.approval_type.value,
            "status": self.status.value,
            "comment": self.comment,
            "actedAt": self.acted_at.isoformat() if self.acted_at else None,
        }


@dataclass(frozen=True)
class ApprovalDocumentView:
    """Immutable snapshot of an approval document and its steps."""

    document_id: UUID
    document_no: str
    title: str
    drafter_id: UUID
    draft_date: date
    status: DocumentStatus
    total_steps: int
    current_step: int
    urgency: Urgency
    content: Any = None
    template_id: str | None = None
    related_module: str | None = None
    related_doc_id: str | None = None
    created_at: datetime | None = None
    steps: tuple[ApprovalStepView, ...] = ()

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.document_id),
            "documentNo": self.document_no,
            "title": self.title,
            "content": self.content,
            "drafterId": str(self.drafter_id),
            "draftDate": self.draft_date.isoformat(),
            "status": self.status.value,
            "totalSteps": self.total_steps,
            "currentStep": self.current_step,
            "urgency": self.urgency.value,
            "templateId": self.template_id,
            "relatedModule": self.related_module,
            "relatedDocId": self.related_doc_id,
            "createdAt": self.created_at.isoformat() if self.created_at else None,
            "steps": [s.to_dict() for s in self.steps],
        }


@dataclass(frozen=True)
class BatchResult:
    """Aggregate outcome of a batch approve/reject.

    ``errors`` carries one short reason per failed id, in input order.
    """

    success_count: int = 0
    fail_count: int = 0
    errors: tuple[str, ...] = field(default=())

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "successCount": self.success_count,
            "failCount": self.fail_count,
        }
        if self.errors:
            data["errors"] = list(self.errors)
        return data


@dataclass(frozen=True)
class ApprovalListQuery:
    """Filters for listing approval documents.

    ``my_drafts`` and ``my_approvals`` are relative to
    ``actor_employee_id``.  ``my_approvals`` selects IN_PROGRESS documents
    whose current step is the actor's and still PENDING.
    """

    status: DocumentStatus | None = None
    drafter_id: UUID | None = None
    actor_employee_id: UUID | None = None
    my_drafts: bool = False
    my_approvals: bool = False
    page: int = 1
    page_size: int = 20

    @property
    def skip(self) -> int:
        return (self.page - 1) * self.page_size
