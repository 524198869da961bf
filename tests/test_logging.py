"""JSON log lines, request context and one-time setup (erp_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from erp_kernel.exceptions import StepAlreadyProcessedError
from erp_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)

log = get_logger("tests.logging")


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()
    configure_logging(level=logging.DEBUG)


@pytest.fixture
def emitted():
    """Configure logging at INFO into a buffer; calling the fixture value parses every line."""
    buffer = StringIO()
    sink = logging.StreamHandler(buffer)
    sink.setFormatter(StructuredFormatter())
    configure_logging(handler=sink)
    return lambda: [json.loads(raw) for raw in buffer.getvalue().splitlines() if raw]


class TestStructuredFormatter:
    def test_core_keys(self, emitted):
        log.info("approval_created")

        [line] = emitted()
        assert line["message"] == "approval_created"
        assert line["level"] == "INFO"
        assert line["logger"] == "erp_kernel.tests.logging"
        assert line["ts"].endswith("+00:00")

    def test_extras_become_top_level_keys(self, emitted):
        log.info("leave_decided", extra={"days": Decimal("1.5"), "status": "APPROVED"})

        [line] = emitted()
        assert (line["days"], line["status"]) == ("1.5", "APPROVED")

    def test_request_context_is_stamped(self, emitted):
        LogContext.set(request_id="req-1", actor_id="user-9")
        log.info("inside_request")

        [line] = emitted()
        assert line["request_id"] == "req-1"
        assert line["actor_id"] == "user-9"

    def test_no_context_keys_outside_a_request(self, emitted):
        log.info("background_job")

        [line] = emitted()
        assert not {"request_id", "actor_id", "correlation_id", "module"} & line.keys()

    def test_plain_exception(self, emitted):
        try:
            {}["missing"]
        except KeyError:
            log.error("lookup_failed", exc_info=True)

        [line] = emitted()
        assert line["exc_type"] == "KeyError"
        assert "Traceback" in line["traceback"]

    def test_erp_error_fields(self, emitted):
        try:
            raise StepAlreadyProcessedError("doc-1", 2, "APPROVED")
        except StepAlreadyProcessedError:
            log.warning("approval_rejected_input", exc_info=True)

        [line] = emitted()
        assert line["exc_type"] == "StepAlreadyProcessedError"
        assert line["exc_code"] == "ALREADY_PROCESSED"
        assert line["exc_http_status"] == 409
        assert line["exc_step_order"] == 2
        assert line["exc_status"] == "APPROVED"

    def test_korean_text_kept_readable(self, emitted):
        log.info("role_created", extra={"role_name": "부서장"})

        assert emitted()[0]["role_name"] == "부서장"

    def test_uuid_values_are_strings(self, emitted):
        document_id = uuid4()
        log.info("approval_submitted", extra={"document_id": document_id})

        assert emitted()[0]["document_id"] == str(document_id)

    def test_debug_suppressed_at_info(self, emitted):
        log.debug("noise")
        log.info("kept")
        log.warning("also_kept")

        assert [line["message"] for line in emitted()] == ["kept", "also_kept"]


class TestLogContext:
    def test_get_all_returns_only_set_fields(self):
        LogContext.set(request_id="r", correlation_id="c", module=None)
        assert LogContext.get_all() == {"request_id": "r", "correlation_id": "c"}

    def test_clear_empties_everything(self):
        LogContext.set(request_id="r", module="hr")
        LogContext.clear()
        assert not LogContext.get_all()

    def test_bind_restores_previous_value(self):
        LogContext.set(module="hr")
        with LogContext.bind(module="approval"):
            assert LogContext.get_all()["module"] == "approval"
        assert LogContext.get_all()["module"] == "hr"

    def test_bind_restores_unset(self):
        with LogContext.bind(request_id="temp"):
            pass
        assert "request_id" not in LogContext.get_all()

    def test_unknown_field_rejected(self):
        with pytest.raises(TypeError):
            LogContext.set(tenant="acme")


class TestConfigureLogging:
    def test_second_call_is_a_no_op(self):
        first, second = logging.NullHandler(), logging.NullHandler()
        configure_logging(handler=first)
        configure_logging(handler=second)
        assert logging.getLogger("erp_kernel").handlers == [first]

    def test_loggers_live_under_erp_kernel(self):
        assert get_logger("services.approval").name == "erp_kernel.services.approval"

    def test_tree_does_not_propagate_to_root(self):
        configure_logging(handler=logging.NullHandler())
        assert logging.getLogger("erp_kernel").propagate is False
