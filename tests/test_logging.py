"""Structured JSON logging: record shape, bound context and handler setup."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from energy_kernel.exceptions import ResourceLockedError
from energy_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _fresh_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def lines():
    """Configure logging into a buffer; returns a reader of parsed records."""
    stream = StringIO()
    configure_logging(stream=stream, level=logging.DEBUG)
    return lambda: [json.loads(line) for line in stream.getvalue().splitlines() if line]


class TestRecordShape:
    def test_core_fields(self, lines):
        get_logger("services.allocation").info("allocation_created")

        (record,) = lines()
        assert record["message"] == "allocation_created"
        assert record["level"] == "INFO"
        assert record["logger"] == "energy_kernel.services.allocation"
        assert record["ts"].endswith("+00:00")

    def test_extra_values_are_serialised(self, lines):
        request_id = uuid4()
        get_logger("test").info(
            "month_run_persisted",
            extra={"allocated_total": Decimal("110.50"), "request_id": request_id, "sites": 3},
        )

        (record,) = lines()
        assert record["allocated_total"] == "110.50"
        assert record["request_id"] == str(request_id)
        assert record["sites"] == 3

    def test_bound_context_is_attached(self, lines):
        with LogContext.bind(transaction_id="tr-9", production_site_id="W1", month="012024"):
            get_logger("test").info("inside")
        get_logger("test").info("outside")

        inside, outside = lines()
        assert (inside["transaction_id"], inside["production_site_id"]) == ("tr-9", "W1")
        assert inside["month"] == "012024"
        assert "transaction_id" not in outside

    def test_extra_does_not_override_context(self, lines):
        LogContext.set(company_id="C1")
        get_logger("test").info("event", extra={"company_id": "C2"})

        assert lines()[0]["company_id"] == "C1"

    def test_plain_exception(self, lines):
        try:
            raise ValueError("bad month")
        except ValueError:
            get_logger("test").exception("parse_failed")

        (record,) = lines()
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "bad month"
        assert "exc_code" not in record
        assert "Traceback" in record["traceback"]

    def test_kernel_exception_attributes(self, lines):
        try:
            raise ResourceLockedError("P1", "tr-1", "tr-2")
        except ResourceLockedError:
            get_logger("test").error("lock_refused", exc_info=True)

        (record,) = lines()
        assert record["exc_code"] == "RESOURCE_LOCKED"
        assert record["exc_resource_id"] == "P1"
        assert record["exc_holder_transaction_id"] == "tr-1"
        assert record["exc_requested_by"] == "tr-2"


class TestLogContext:
    def test_set_skips_none(self):
        LogContext.set(transaction_id="tr-1", company_id=None)
        assert LogContext.get_all() == {"transaction_id": "tr-1"}

    def test_clear(self):
        LogContext.set(month="012024", actor_id="ops")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_nested_bind_restores_outer_values(self):
        LogContext.set(company_id="outer")
        with LogContext.bind(company_id="inner"):
            with LogContext.bind(production_site_id="P1"):
                assert LogContext.get_all() == {"company_id": "inner", "production_site_id": "P1"}
            assert LogContext.get_all() == {"company_id": "inner"}
        assert LogContext.get_all() == {"company_id": "outer"}

    def test_bind_restores_on_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(transaction_id="tr-x"):
                raise RuntimeError
        assert LogContext.get_all() == {}

    def test_bind_ignores_unknown_names(self):
        with LogContext.bind(colour="blue", month="022024"):
            assert LogContext.get_all() == {"month": "022024"}


class TestConfigureLogging:
    def test_second_call_keeps_first_handler(self):
        first, second = StringIO(), StringIO()
        configure_logging(stream=first)
        configure_logging(stream=second)

        get_logger("test").info("once")

        handlers = logging.getLogger("energy_kernel").handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0].formatter, StructuredFormatter)
        assert "once" in first.getvalue()
        assert second.getvalue() == ""

    def test_level_filters_debug(self):
        stream = StringIO()
        configure_logging(stream=stream)
        get_logger("test").debug("hidden")
        get_logger("test").warning("shown")

        messages = [json.loads(line)["message"] for line in stream.getvalue().splitlines()]
        assert messages == ["shown"]

    def test_reset_allows_reconfiguration(self):
        configure_logging(stream=StringIO())
        reset_logging()
        assert logging.getLogger("energy_kernel").handlers == []

        stream = StringIO()
        configure_logging(stream=stream)
        get_logger("test").info("again")
        assert "again" in stream.getvalue()
