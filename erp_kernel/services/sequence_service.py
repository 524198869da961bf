"""
DocumentNumberService -- per-prefix, per-month document numbering.

Responsibility:
    Issues human-readable business document numbers of the form
    ``{PREFIX}-{YYYYMM}-{NNNNN}``.  Each (prefix, year_month) pair owns an
    independent counter row that starts at 1 and increases by exactly 1 per
    allocation.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by ApprovalService (``APR``) and any module that numbers its
    own documents.

Invariants enforced:
    - Uniqueness: no two allocations for the same (prefix, year_month)
      ever return the same number.  The increment and the read-back are a
      single ``INSERT ... ON CONFLICT DO UPDATE ... RETURNING`` statement;
      aggregate-max-plus-one and read-then-write are never used.
    - Transactional: the increment is only visible after the caller's
      transaction commits.  Rollback returns the value.
    - Monotonic within a pair; numbers are never reused.

Failure modes:
    - InvalidDocumentPrefixError for an empty, lower-case, punctuated or
      over-long prefix.
    - Persistence errors propagate unchanged.  No retry.
"""

from __future__ import annotations

import re
from datetime import date
from uuid import uuid4

from sqlalchemy import BigInteger, String, UniqueConstraint, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Mapped, Session, mapped_column

from erp_kernel.db.base import Base
from erp_kernel.domain.clock import Clock, SystemClock
from erp_kernel.exceptions import InvalidDocumentPrefixError
from erp_kernel.logging_config import get_logger

logger = get_logger("services.sequence")

_PREFIX_PATTERN = re.compile(r"^[A-Z0-9]{1,10}$")


class DocumentSequenceCounter(Base):
    """
    Document sequence counter table.

    One row per (prefix, year_month).  ``last_seq`` is the last number
    issued for the pair.
    """

    __tablename__ = "document_sequences"

    __table_args__ = (
        UniqueConstraint("prefix", "year_month", name="uq_document_sequences_prefix_month"),
    )

    prefix: Mapped[str] = mapped_column(String(10), nullable=False)

    # "YYYYMM"
    year_month: Mapped[str] = mapped_column(String(6), nullable=False)

    last_seq: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)


def year_month_of(on_date: date) -> str:
    """``date(2024, 3, 7)`` -> ``"202403"``."""
    return on_date.strftime("%Y%m")


def format_document_number(prefix: str, year_month: str, seq: int) -> str:
    """Render a number; sequences above 99999 print at natural width."""
    return f"{prefix}-{year_month}-{seq:05d}"


def validate_prefix(prefix: str) -> str:
    if not isinstance(prefix, str) or not _PREFIX_PATTERN.match(prefix):
        raise InvalidDocumentPrefixError(str(prefix))
    return prefix


class DocumentNumberService:
    """
    Allocates document numbers.

    Contract:
        ``allocate()`` returns a number that no other allocation for the
        same prefix and month has returned or will return, including under
        concurrent callers in separate transactions.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT guarantee gap-free numbering across rolled-back
          transactions on every backend.

    Usage:
        with session_scope() as session:
            number = DocumentNumberService(session).allocate("APR")
    """

    APPROVAL = "APR"
    SALES_ORDER = "SO"
    PURCHASE_ORDER = "PO"
    PURCHASE_REQUEST = "PR"
    QUOTATION = "QT"
    DELIVERY = "DLV"
    RECEIVING = "RCV"
    RETURN = "RT"
    STOCK_MOVEMENT = "SM"
    STOCK = "STK"
    QUALITY_INSPECTION = "QI"
    PAYMENT = "PMT"
    TAX_INVOICE = "TI"
    VOUCHER = "VOU"

    def __init__(self, session: Session, clock: Clock | None = None):
        self._session = session
        self._clock = clock or SystemClock()

    def _upsert_statement(self, prefix: str, year_month: str):
        dialect = self._session.get_bind().dialect.name
        if dialect == "postgresql":
            insert = postgresql.insert
        elif dialect == "sqlite":
            insert = sqlite.insert
        else:
            raise NotImplementedError(f"Document numbering not supported on {dialect}")

        table = DocumentSequenceCounter.__table__
        stmt = insert(table).values(
            id=uuid4(),
            prefix=prefix,
            year_month=year_month,
            last_seq=1,
        )
        return stmt.on_conflict_do_update(
            index_elements=[table.c.prefix, table.c.year_month],
            set_={"last_seq": table.c.last_seq + 1},
        ).returning(table.c.last_seq)

    def allocate(self, prefix: str, on_date: date | None = None) -> str:
        """
        Issue the next number for ``prefix`` in the month of ``on_date``.

        Preconditions:
            - ``prefix`` is 1-10 upper-case alphanumerics.
            - The caller is within an active database transaction.

        Postconditions:
            - The counter row for (prefix, year_month) exists and its
              ``last_seq`` equals the returned sequence.

        Raises:
            InvalidDocumentPrefixError: If ``prefix`` is malformed.
        """
        validate_prefix(prefix)
        year_month = year_month_of(on_date or self._clock.today())

        seq = self._session.execute(
            self._upsert_statement(prefix, year_month)
        ).scalar_one()

        number = format_document_number(prefix, year_month, seq)
        logger.debug(
            "document_number_allocated",
            extra={"prefix": prefix, "year_month": year_month, "seq": seq},
        )
        return number

    def current_value(self, prefix: str, year_month: str) -> int | None:
        """
        Last issued sequence for the pair, without incrementing.

        Returns:
            The last sequence value, or None if nothing was issued yet.
        """
        return self._session.execute(
            select(DocumentSequenceCounter.last_seq).where(
                DocumentSequenceCounter.prefix == prefix,
                DocumentSequenceCounter.year_month == year_month,
            )
        ).scalar_one_or_none()
