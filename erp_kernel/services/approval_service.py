"""
erp_kernel.services.approval_service -- Approval document lifecycle.

Responsibility:
    Creates approval documents with an ordered chain of approvers, and
    records submission, per-step decisions, cancellation and batch
    decisions.  Document status is always derived from step statuses by
    the injected aggregation policy.

Architecture position:
    Kernel > Services.  May import from domain/, models/, db/ and sibling
    services.  HR employees are reached only through an EmployeeDirectory.

Invariants enforced:
    - Document status changes follow DOCUMENT_TRANSITIONS; step status
      changes follow STEP_TRANSITIONS.  Terminal documents never change.
    - Only the drafter submits or cancels.  Only the approver of the
      current step decides, and only while that step is PENDING.
    - ``current_step`` is 0 while DRAFT, then the 1-based index of the
      step awaiting a decision, bounded by ``total_steps``.
    - Steps keep submission order (``step_order = index + 1``).
    - Audit rows and notifications are written only after commit.
    - Batch items are isolated; one failure never rolls back a sibling.

Failure modes:
    - EmployeeNotFoundError when the acting user has no employee record.
    - ApprovalDocumentNotFoundError for an unknown document id.
    - InvalidApprovalStatusError, NotDrafterError, NotCurrentApproverError,
      StepAlreadyProcessedError, InvalidApprovalTransitionError.
    - ValidationError for an empty title or step list.
    - BatchValidationError for an empty id list or unknown batch action.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date
from typing import Any, Protocol
from uuid import UUID

from sqlalchemy import and_, func, select, update
from sqlalchemy.orm import Session, sessionmaker

from erp_kernel.domain.approval import (
    CANCELLABLE_DOCUMENT_STATUSES,
    DECISION_TO_STEP_STATUS,
    DEFAULT_AGGREGATION_POLICY,
    ApprovalDecision,
    ApprovalDocumentView,
    ApprovalListQuery,
    ApprovalType,
    BatchResult,
    DocumentStatus,
    StatusAggregationPolicy,
    StepSpec,
    StepStatus,
    Urgency,
    is_valid_document_transition,
    is_valid_step_transition,
)
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.domain.pagination import PageMeta, build_meta
from erp_kernel.exceptions import (
    ApprovalDocumentNotFoundError,
    BatchValidationError,
    EmployeeNotFoundError,
    ErpError,
    InvalidApprovalStatusError,
    InvalidApprovalTransitionError,
    NotCurrentApproverError,
    NotDrafterError,
    StepAlreadyProcessedError,
    ValidationError,
)
from erp_kernel.logging_config import get_logger
from erp_kernel.models.approval import ApprovalDocumentModel, ApprovalStepModel
from erp_kernel.models.audit_log import AuditAction
from erp_kernel.models.notification import NotificationType
from erp_kernel.services.audit_service import AuditTrail
from erp_kernel.services.sequence_service import DocumentNumberService
from erp_kernel.services.side_effects import SideEffectDispatcher

logger = get_logger("services.approval")

TABLE_NAME = "approval_documents"


class EmployeeDirectory(Protocol):
    """Maps between login users and employee records."""

    def employee_id_for_user(self, user_id: UUID) -> UUID | None: ...

    def user_id_for_employee(self, employee_id: UUID) -> UUID | None: ...


def _coerce_uuid(value: UUID | str) -> UUID:
    return value if isinstance(value, UUID) else UUID(str(value))


class ApprovalService:
    """
    Approval lifecycle over the current session.

    Contract:
        Does NOT commit.  The caller owns the transaction; deferred audit
        and notification writes run when it commits.
    """

    def __init__(
        self,
        session: Session,
        directory: EmployeeDirectory,
        *,
        numbering: DocumentNumberService | None = None,
        side_effects: SideEffectDispatcher | None = None,
        audit: AuditTrail | None = None,
        clock: Clock | None = None,
        policy: StatusAggregationPolicy = DEFAULT_AGGREGATION_POLICY,
    ):
        self._session = session
        self._directory = directory
        self._clock = clock or SystemClock()
        self._numbering = numbering or DocumentNumberService(session, self._clock)
        self._side_effects = side_effects or SideEffectDispatcher()
        self._audit = audit or AuditTrail(sessionmaker(bind=session.get_bind()))
        self._policy = policy

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def _require_employee(self, user_id: UUID | str) -> UUID:
        employee_id = self._directory.employee_id_for_user(_coerce_uuid(user_id))
        if employee_id is None:
            raise EmployeeNotFoundError(f"user {user_id}")
        return employee_id

    def _load(self, document_id: UUID | str) -> ApprovalDocumentModel:
        try:
            key = _coerce_uuid(document_id)
        except ValueError:
            raise ApprovalDocumentNotFoundError(str(document_id)) from None
        document = self._lock(key)
        if document is None:
            raise ApprovalDocumentNotFoundError(str(document_id))
        return document

    def _lock(self, key: UUID) -> ApprovalDocumentModel | None:
        """Row-lock the document and overwrite any cached copy of it and its steps."""
        document = self._session.execute(
            select(ApprovalDocumentModel)
            .where(ApprovalDocumentModel.id == key)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if document is not None:
            self._session.execute(
                select(ApprovalStepModel)
                .where(ApprovalStepModel.document_id == key)
                .execution_options(populate_existing=True)
            ).scalars().all()
        return document

    def get_document(self, document_id: UUID | str) -> ApprovalDocumentView:
        try:
            key = _coerce_uuid(document_id)
        except ValueError:
            raise ApprovalDocumentNotFoundError(str(document_id)) from None
        document = self._session.get(ApprovalDocumentModel, key)
        if document is None:
            raise ApprovalDocumentNotFoundError(str(document_id))
        return document.to_dto()

    def list_documents(
        self, query: ApprovalListQuery,
    ) -> tuple[list[ApprovalDocumentView], PageMeta]:
        """Filtered, newest-first page of documents plus list metadata.

        ``my_drafts``/``my_approvals`` without an actor employee match nothing.
        """
        if (query.my_drafts or query.my_approvals) and query.actor_employee_id is None:
            return [], build_meta(query.page, query.page_size, 0)

        conditions = []
        stmt = select(ApprovalDocumentModel)

        if query.status is not None:
            conditions.append(ApprovalDocumentModel.status == query.status.value)
        if query.drafter_id is not None:
            conditions.append(ApprovalDocumentModel.drafter_id == query.drafter_id)
        if query.my_drafts:
            conditions.append(ApprovalDocumentModel.drafter_id == query.actor_employee_id)
        if query.my_approvals:
            stmt = stmt.join(
                ApprovalStepModel,
                and_(
                    ApprovalStepModel.document_id == ApprovalDocumentModel.id,
                    ApprovalStepModel.step_order == ApprovalDocumentModel.current_step,
                ),
            )
            conditions.extend([
                ApprovalDocumentModel.status == DocumentStatus.IN_PROGRESS.value,
                ApprovalStepModel.approver_id == query.actor_employee_id,
                ApprovalStepModel.status == StepStatus.PENDING.value,
            ])

        if conditions:
            stmt = stmt.where(*conditions)

        total = self._session.execute(
            select(func.count()).select_from(stmt.subquery())
        ).scalar_one()

        rows = self._session.execute(
            stmt.order_by(
                ApprovalDocumentModel.created_at.desc(),
                ApprovalDocumentModel.document_no.desc(),
            )
            .offset(query.skip)
            .limit(query.page_size)
        ).scalars().all()

        return [r.to_dto() for r in rows], build_meta(query.page, query.page_size, total)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def create_document(
        self,
        drafter_user_id: UUID | str,
        title: str,
        draft_date: date,
        steps: Sequence[StepSpec],
        content: Any = None,
        urgency: Urgency | str = Urgency.NORMAL,
        template_id: str | None = None,
        related_module: str | None = None,
        related_doc_id: str | None = None,
    ) -> ApprovalDocumentView:
        """
        Create a DRAFT document numbered ``APR-{YYYYMM}-{NNNNN}``.

        Postconditions:
            - ``total_steps == len(steps)`` and ``current_step == 0``.
            - Step i (0-based) has ``step_order == i + 1`` and status PENDING.
        """
        drafter_id = self._require_employee(drafter_user_id)

        if not title or not title.strip():
            raise ValidationError("Title is required")
        if not steps:
            raise ValidationError("At least one approval step is required")

        document_no = self._numbering.allocate(DocumentNumberService.APPROVAL, draft_date)

        document = ApprovalDocumentModel(
            document_no=document_no,
            title=title.strip(),
            content=content,
            drafter_id=drafter_id,
            draft_date=draft_date,
            status=DocumentStatus.DRAFT.value,
            total_steps=len(steps),
            current_step=0,
            urgency=Urgency(urgency).value,
            template_id=template_id,
            related_module=related_module,
            related_doc_id=related_doc_id,
            steps=[
                ApprovalStepModel(
                    step_order=index + 1,
                    approver_id=_coerce_uuid(spec.approver_id),
                    approval_type=ApprovalType(spec.approval_type).value,
                    status=StepStatus.PENDING.value,
                )
                for index, spec in enumerate(steps)
            ],
        )
        self._session.add(document)
        self._session.flush()

        logger.info(
            "approval_document_created",
            extra={
                "document_id": document.id,
                "document_no": document_no,
                "total_steps": len(steps),
            },
        )
        self._defer_audit(AuditAction.CREATE, document, new_value={"id": str(document.id)})
        return document.to_dto()

    def submit(self, document_id: UUID | str, actor_user_id: UUID | str) -> ApprovalDocumentView:
        """DRAFT -> IN_PROGRESS; the first step becomes current."""
        actor_id = self._require_employee(actor_user_id)
        document = self._load(document_id)

        if document.status != DocumentStatus.DRAFT.value:
            raise InvalidApprovalStatusError(str(document.id), document.status, "submit")
        if document.drafter_id != actor_id:
            raise NotDrafterError(str(document.id), str(actor_id))

        old_status = document.status
        self._apply_status(document, submitted=True)
        document.current_step = 1
        self._session.flush()

        logger.info(
            "approval_document_submitted",
            extra={"document_id": document.id, "document_no": document.document_no},
        )
        self._defer_audit(
            AuditAction.UPDATE, document,
            old_value={"status": old_status}, new_value={"status": document.status},
        )
        self._defer_notify_current_approver(document)
        return document.to_dto()

    def decide(
        self,
        document_id: UUID | str,
        actor_user_id: UUID | str,
        decision: ApprovalDecision | str,
        comment: str | None = None,
    ) -> ApprovalDocumentView:
        """Record the current approver's decision and re-derive the status."""
        actor_id = self._require_employee(actor_user_id)
        document = self._load(document_id)
        self._decide(document, actor_id, ApprovalDecision(decision), comment)
        return document.to_dto()

    def cancel(self, document_id: UUID | str, actor_user_id: UUID | str) -> ApprovalDocumentView:
        actor_id = self._require_employee(actor_user_id)
        document = self._load(document_id)

        if DocumentStatus(document.status) not in CANCELLABLE_DOCUMENT_STATUSES:
            raise InvalidApprovalStatusError(str(document.id), document.status, "cancel")
        if document.drafter_id != actor_id:
            raise NotDrafterError(str(document.id), str(actor_id))

        old_status = document.status
        self._apply_status(document, submitted=old_status != DocumentStatus.DRAFT.value, cancelled=True)
        self._session.flush()

        logger.info(
            "approval_document_cancelled",
            extra={"document_id": document.id, "previous_status": old_status},
        )
        self._defer_audit(
            AuditAction.UPDATE, document,
            old_value={"status": old_status}, new_value={"status": document.status},
        )
        return document.to_dto()

    def batch_process(
        self,
        ids: Sequence[UUID | str],
        action: ApprovalDecision | str,
        actor_user_id: UUID | str,
        comment: str | None = None,
    ) -> BatchResult:
        """
        Apply one decision to many documents.

        Each id runs in its own savepoint.  Failures are counted with a
        reason and never affect other ids.

        Raises:
            BatchValidationError: Empty ``ids`` or unknown ``action``.
            EmployeeNotFoundError: The actor has no employee record.
        """
        if not ids or isinstance(ids, (str, bytes)):
            raise BatchValidationError("ids must be a non-empty list")
        try:
            decision = ApprovalDecision(action)
        except ValueError:
            raise BatchValidationError(
                f"action must be 'approve' or 'reject', got {action!r}"
            ) from None

        actor_id = self._require_employee(actor_user_id)

        keys: list[UUID | None] = []
        for raw in ids:
            try:
                keys.append(_coerce_uuid(raw))
            except (TypeError, ValueError):
                keys.append(None)

        documents = {
            d.id: d
            for d in self._session.execute(
                select(ApprovalDocumentModel).where(
                    ApprovalDocumentModel.id.in_([k for k in keys if k is not None])
                )
            ).scalars()
        }

        success = 0
        errors: list[str] = []
        for raw, key in zip(ids, keys):
            if key is None or key not in documents:
                errors.append(f"{raw}: not found")
                continue
            try:
                with self._session.begin_nested():
                    # The prefetch only screens ids; decide against the locked row.
                    document = self._lock(key)
                    if document is None:
                        raise ApprovalDocumentNotFoundError(str(raw))
                    self._decide(document, actor_id, decision, comment)
                success += 1
            except ErpError as exc:
                errors.append(f"{raw}: {exc}")

        result = BatchResult(
            success_count=success, fail_count=len(errors), errors=tuple(errors),
        )
        logger.info(
            "approval_batch_processed",
            extra={
                "action": decision.value,
                "success_count": result.success_count,
                "fail_count": result.fail_count,
            },
        )
        return result

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _decide(
        self,
        document: ApprovalDocumentModel,
        actor_id: UUID,
        decision: ApprovalDecision,
        comment: str | None,
    ) -> None:
        if document.status != DocumentStatus.IN_PROGRESS.value:
            raise InvalidApprovalStatusError(str(document.id), document.status, decision.value)

        step = document.step_at(document.current_step)
        if step is None or step.approver_id != actor_id:
            raise NotCurrentApproverError(str(document.id), str(actor_id), document.current_step)

        new_step_status = DECISION_TO_STEP_STATUS[decision]
        if not is_valid_step_transition(StepStatus(step.status), new_step_status):
            raise StepAlreadyProcessedError(str(document.id), step.step_order, step.status)

        written = self._session.execute(
            update(ApprovalStepModel)
            .where(
                ApprovalStepModel.id == step.id,
                ApprovalStepModel.status == StepStatus.PENDING.value,
            )
            .values(status=new_step_status.value, comment=comment, acted_at=self._clock.now())
            .execution_options(synchronize_session=False)
        )
        if written.rowcount != 1:
            self._session.expire(step)
            raise StepAlreadyProcessedError(str(document.id), step.step_order, step.status)
        self._session.expire(step, ["status", "comment", "acted_at"])

        advanced = False
        if new_step_status == StepStatus.APPROVED and document.current_step < document.total_steps:
            document.current_step += 1
            advanced = True

        old_status = document.status
        self._apply_status(document, submitted=True)
        self._session.flush()

        logger.info(
            "approval_step_decided",
            extra={
                "document_id": document.id,
                "step_order": step.step_order,
                "decision": decision.value,
                "status": document.status,
            },
        )

        self._defer_audit(
            AuditAction.APPROVE if decision == ApprovalDecision.APPROVE else AuditAction.REJECT,
            document,
            old_value={"status": old_status, "stepOrder": step.step_order},
            new_value={"status": document.status, "currentStep": document.current_step},
        )
        if document.status != DocumentStatus.IN_PROGRESS.value:
            self._defer_notify_drafter(document)
        elif advanced:
            self._defer_notify_current_approver(document)

    def _apply_status(
        self, document: ApprovalDocumentModel, *, submitted: bool, cancelled: bool = False,
    ) -> None:
        current = DocumentStatus(document.status)
        derived = self._policy.derive(
            [StepStatus(s.status) for s in document.steps],
            submitted=submitted,
            cancelled=cancelled,
        )
        if not is_valid_document_transition(current, derived):
            raise InvalidApprovalTransitionError(current.value, derived.value)
        document.status = derived.value

    def _defer_audit(
        self,
        action: AuditAction,
        document: ApprovalDocumentModel,
        old_value: Any = None,
        new_value: Any = None,
    ) -> None:
        self._side_effects.defer(
            self._session,
            self._audit.write_audit_log,
            action,
            TABLE_NAME,
            record_id=str(document.id),
            old_value=old_value,
            new_value=new_value,
        )

    def _defer_notify_current_approver(self, document: ApprovalDocumentModel) -> None:
        step = document.step_at(document.current_step)
        if step is None:
            return
        user_id = self._directory.user_id_for_employee(step.approver_id)
        if user_id is None:
            return
        self._side_effects.defer(
            self._session,
            self._audit.create_notification,
            user_id,
            NotificationType.APPROVAL,
            "Approval requested",
            f"{document.document_no} {document.title} is waiting for your approval",
            related_url=f"/approval/{document.id}",
        )

    def _defer_notify_drafter(self, document: ApprovalDocumentModel) -> None:
        user_id = self._directory.user_id_for_employee(document.drafter_id)
        if user_id is None:
            return
        outcome = "approved" if document.status == DocumentStatus.APPROVED.value else "rejected"
        self._side_effects.defer(
            self._session,
            self._audit.create_notification,
            user_id,
            NotificationType.APPROVAL,
            f"Approval {outcome}",
            f"{document.document_no} {document.title} was {outcome}",
            related_url=f"/approval/{document.id}",
        )
