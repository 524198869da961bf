"""
Document number allocation.

Numbers are ``{PREFIX}-{YYYYMM}-{NNNNN}``, monotonic per (prefix, month).
"""

from datetime import date

import pytest
from sqlalchemy import update

from erp_kernel.exceptions import InvalidDocumentPrefixError
from erp_kernel.services.sequence_service import (
    DocumentNumberService,
    DocumentSequenceCounter,
    format_document_number,
    validate_prefix,
    year_month_of,
)

JUNE = date(2024, 6, 10)


class TestFormatting:
    def test_first_number(self):
        assert format_document_number("SO", "202406", 1) == "SO-202406-00001"

    def test_zero_padding(self):
        assert format_document_number("PO", "202401", 42) == "PO-202401-00042"

    def test_overflow_prints_natural_width(self):
        assert format_document_number("SO", "202406", 100000) == "SO-202406-100000"

    def test_year_month(self):
        assert year_month_of(date(2024, 3, 7)) == "202403"

    @pytest.mark.parametrize("prefix", ["", "so", "S-O", "TOOLONGPREFIX", None])
    def test_invalid_prefix(self, prefix):
        with pytest.raises(InvalidDocumentPrefixError):
            validate_prefix(prefix)


class TestAllocation:
    def test_first_allocation(self, session):
        assert DocumentNumberService(session).allocate("SO", JUNE) == "SO-202406-00001"

    def test_monotonic(self, session):
        service = DocumentNumberService(session)
        numbers = [service.allocate("SO", JUNE) for _ in range(42)]
        assert numbers[-1] == "SO-202406-00042"
        assert len(set(numbers)) == 42
        assert service.current_value("SO", "202406") == 42

    def test_prefixes_are_independent(self, session):
        service = DocumentNumberService(session)
        service.allocate("SO", JUNE)
        service.allocate("SO", JUNE)
        assert service.allocate("PO", JUNE) == "PO-202406-00001"

    def test_months_are_independent(self, session):
        service = DocumentNumberService(session)
        service.allocate("SO", JUNE)
        assert service.allocate("SO", date(2024, 7, 1)) == "SO-202407-00001"

    def test_defaults_to_clock_date(self, session, clock):
        assert DocumentNumberService(session, clock).allocate("QT") == "QT-202406-00001"

    def test_clock_rolls_into_next_month(self, session, clock):
        service = DocumentNumberService(session, clock)
        service.allocate("QT")
        clock.advance(days=16)
        assert service.allocate("QT") == "QT-202407-00001"

    def test_past_99999(self, session):
        service = DocumentNumberService(session)
        service.allocate("SO", JUNE)
        session.execute(
            update(DocumentSequenceCounter)
            .where(DocumentSequenceCounter.prefix == "SO")
            .values(last_seq=99999)
        )
        assert service.allocate("SO", JUNE) == "SO-202406-100000"

    def test_invalid_prefix_allocates_nothing(self, session):
        service = DocumentNumberService(session)
        with pytest.raises(InvalidDocumentPrefixError):
            service.allocate("bad prefix", JUNE)
        assert service.current_value("bad prefix", "202406") is None

    def test_current_value_unknown(self, session):
        assert DocumentNumberService(session).current_value("SO", "209912") is None
