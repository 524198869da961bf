"""
Module: erp_kernel.models.approval
Responsibility: ORM persistence for approval documents and their ordered
    approval steps.

Architecture position: Kernel > Models.  May import from db/base.py only.
    Drafter and approver ids reference HR employees by value; the kernel
    does not depend on the HR schema.

Invariants enforced:
    - document_no is unique.
    - DB check constraints limit status values to the lifecycle enums.
    - UNIQUE(document_id, step_order): step order is the dense 1-based
      submission index.
    - 0 <= current_step <= total_steps.

Failure modes:
    - IntegrityError on duplicate document number or step order.
"""

from __future__ import annotations

from datetime import date, datetime
from typing import TYPE_CHECKING, Any
from uuid import UUID

from sqlalchemy import (
    JSON,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from erp_kernel.db.base import TrackedBase, UUIDString

if TYPE_CHECKING:
    from erp_kernel.domain.approval import ApprovalDocumentView, ApprovalStepView


class ApprovalDocumentModel(TrackedBase):
    """Persistent approval document.

    Contract:
        ``status`` is only written by ApprovalService after the aggregation
        policy derives it and the transition table accepts it.
    """

    __tablename__ = "approval_documents"

    __table_args__ = (
        CheckConstraint(
            "status IN ('DRAFT', 'IN_PROGRESS', 'APPROVED', 'REJECTED', 'CANCELLED')",
            name="ck_approval_documents_valid_status",
        ),
        CheckConstraint(
            "urgency IN ('NORMAL', 'URGENT', 'EMERGENCY')",
            name="ck_approval_documents_valid_urgency",
        ),
        CheckConstraint(
            "current_step >= 0 AND current_step <= total_steps",
            name="ck_approval_documents_current_step_range",
        ),
        Index("ix_approval_documents_drafter", "drafter_id", "created_at"),
        Index("ix_approval_documents_status", "status", "created_at"),
    )

    document_no: Mapped[str] = mapped_column(String(30), nullable=False, unique=True)
    title: Mapped[str] = mapped_column(String(200), nullable=False)
    content: Mapped[Any] = mapped_column(JSON, nullable=True)
    drafter_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    draft_date: Mapped[date] = mapped_column(Date, nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="DRAFT")
    total_steps: Mapped[int] = mapped_column(Integer, nullable=False)
    current_step: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    urgency: Mapped[str] = mapped_column(String(20), nullable=False, default="NORMAL")
    template_id: Mapped[str | None] = mapped_column(String(50), nullable=True)
    related_module: Mapped[str | None] = mapped_column(String(50), nullable=True)
    related_doc_id: Mapped[str | None] = mapped_column(String(50), nullable=True)

    steps: Mapped[list[ApprovalStepModel]] = relationship(
        "ApprovalStepModel",
        back_populates="document",
        order_by="ApprovalStepModel.step_order",
        cascade="all, delete-orphan",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<ApprovalDocument {self.document_no} status={self.status}>"

    def step_at(self, step_order: int) -> ApprovalStepModel | None:
        for step in self.steps:
            if step.step_order == step_order:
                return step
        return None

    def to_dto(self) -> ApprovalDocumentView:
        """Convert ORM model to frozen domain DTO."""
        from erp_kernel.domain.approval import (
            ApprovalDocumentView,
            DocumentStatus,
            Urgency,
        )

        return ApprovalDocumentView(
            document_id=self.id,
            document_no=self.document_no,
            title=self.title,
            drafter_id=self.drafter_id,
            draft_date=self.draft_date,
            status=DocumentStatus(self.status),
            total_steps=self.total_steps,
            current_step=self.current_step,
            urgency=Urgency(self.urgency),
            content=self.content,
            template_id=self.template_id,
            related_module=self.related_module,
            related_doc_id=self.related_doc_id,
            created_at=self.created_at,
            steps=tuple(s.to_dto() for s in self.steps),
        )


class ApprovalStepModel(TrackedBase):
    """One approver's slot in a document's chain."""

    __tablename__ = "approval_steps"

    __table_args__ = (
        UniqueConstraint(
            "document_id", "step_order", name="uq_approval_steps_document_order",
        ),
        CheckConstraint(
            "status IN ('PENDING', 'APPROVED', 'REJECTED')",
            name="ck_approval_steps_valid_status",
        ),
        CheckConstraint("step_order >= 1", name="ck_approval_steps_order_positive"),
        Index("ix_approval_steps_approver_status", "approver_id", "status"),
    )

    document_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("approval_documents.id", ondelete="CASCADE"),
        nullable=False,
    )
    step_order: Mapped[int] = mapped_column(Integer, nullable=False)
    approver_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    approval_type: Mapped[str] = mapped_column(
        String(20), nullable=False, default="APPROVE",
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="PENDING")
    comment: Mapped[str | None] = mapped_column(Text, nullable=True)
    acted_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True), nullable=True,
    )

    document: Mapped[ApprovalDocumentModel] = relationship(
        "ApprovalDocumentModel", back_populates="steps",
    )

    def __repr__(self) -> str:
        return f"<ApprovalStep {self.step_order} approver={self.approver_id} {self.status}>"

    def to_dto(self) -> ApprovalStepView:
        from erp_kernel.domain.approval import (
            ApprovalStepView,
            ApprovalType,
            StepStatus,
        )

        return ApprovalStepView(
            step_id=self.id,
            step_order=self.step_order,
            approver_id=self.approver_id,
            approval_type=ApprovalType(self.approval_type),
            status=StepStatus(self.status),
            comment=self.comment,
            acted_at=self.acted_at,
        )
