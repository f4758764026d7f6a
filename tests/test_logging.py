"""
Tests for kernel log lines (logistics_kernel/logging_config.py).

Verifies:
- One JSON object per line with the bound write context
- Quantities render canonically
- Kernel exceptions contribute code and structured fields; others do not
- Only the four write-context fields can be bound
"""

import json
import logging
from datetime import datetime, timezone
from decimal import Decimal
from io import StringIO

import pytest

from logistics_kernel.exceptions import InsufficientStockError, StaleWriteError
from logistics_kernel.logging_config import (
    CONTEXT_FIELDS,
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


@pytest.fixture
def kernel_lines():
    """Configure the kernel root logger onto a buffer; returns a reader."""
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    configure_logging(handler=handler, level=logging.DEBUG)

    def _read() -> list[dict]:
        return [json.loads(line) for line in stream.getvalue().splitlines() if line]

    return _read


class TestLineShape:

    def test_event_line(self, kernel_lines):
        get_logger("services.stock_ledger").info("movement_recorded", extra={"source": "transfer"})

        (line,) = kernel_lines()
        assert line["level"] == "INFO"
        assert line["message"] == "movement_recorded"
        assert line["logger"] == "logistics_kernel.services.stock_ledger"
        assert line["source"] == "transfer"
        assert datetime.fromisoformat(line["ts"]).tzinfo is not None

    def test_formatter_installed_on_supplied_handler(self):
        handler = logging.StreamHandler(StringIO())
        configure_logging(handler=handler)
        assert isinstance(handler.formatter, StructuredFormatter)

    def test_context_omitted_when_unbound(self, kernel_lines):
        get_logger("test").info("inventory_divergence_clear")
        assert not set(CONTEXT_FIELDS) & set(kernel_lines()[0])

    def test_bound_context_on_every_line(self, kernel_lines):
        logger = get_logger("services.inventory_sync")
        with LogContext.bind(correlation_id="SMV-abc", actor_id="tech-7"):
            logger.info("inventory_quantity_changed")
            logger.warning("movement_rolled_back")
        for line in kernel_lines():
            assert line["correlation_id"] == "SMV-abc"
            assert line["actor_id"] == "tech-7"

    def test_extra_does_not_override_context(self, kernel_lines):
        with LogContext.bind(job_id="job-1"):
            get_logger("test").info("job_written", extra={"job_id": "other"})
        assert kernel_lines()[0]["job_id"] == "job-1"


class TestValueRendering:

    @pytest.mark.parametrize("quantity", [Decimal("5"), Decimal("5.000"), Decimal("5E+0")])
    def test_quantity_canonical(self, kernel_lines, quantity):
        get_logger("test").info("consumption_recorded", extra={"qty_consumed": quantity})
        assert kernel_lines()[0]["qty_consumed"] == "5"

    def test_non_finite_decimal_kept_readable(self, kernel_lines):
        get_logger("test").info("odd", extra={"quantity": Decimal("NaN")})
        assert kernel_lines()[0]["quantity"] == "NaN"

    def test_datetime_iso(self, kernel_lines):
        moment = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)
        get_logger("test").info("movement_voided", extra={"voided_at": moment})
        assert kernel_lines()[0]["voided_at"] == "2024-01-01T12:00:00+00:00"

    def test_sets_sorted(self, kernel_lines):
        get_logger("test").warning("inventory_divergence_detected", extra={"vehicles": {"v2", "v1"}})
        assert kernel_lines()[0]["vehicles"] == ["v1", "v2"]


class TestExceptionFields:

    def test_kernel_error_structured(self, kernel_lines):
        try:
            raise InsufficientStockError("loc-1", "pli-1", "2", "5")
        except InsufficientStockError:
            get_logger("test").error("movement_rejected", exc_info=True)

        line = kernel_lines()[0]
        assert line["exc_code"] == "INSUFFICIENT_STOCK"
        assert line["exc_type"] == "InsufficientStockError"
        assert line["exc_location_id"] == "loc-1"
        assert "traceback" in line

    def test_stale_write_versions(self, kernel_lines):
        try:
            raise StaleWriteError("Job", "job-1", 2, 3)
        except StaleWriteError:
            get_logger("test").warning("stale_write_rejected", exc_info=True)

        line = kernel_lines()[0]
        assert line["exc_code"] == "STALE_WRITE"
        assert line["exc_expected_version"] == 2
        assert line["exc_current_version"] == 3

    def test_foreign_error_has_no_code(self, kernel_lines):
        try:
            raise KeyError("price_list_item_id")
        except KeyError:
            get_logger("test").error("unexpected", exc_info=True)

        line = kernel_lines()[0]
        assert line["exc_type"] == "KeyError"
        assert "exc_code" not in line
        assert not [k for k in line if k.startswith("exc_") and k not in ("exc_type", "exc_message")]


class TestLogContext:

    def test_fields(self):
        assert CONTEXT_FIELDS == ("correlation_id", "actor_id", "job_id", "write_source")

    def test_set_stringifies_and_skips_none(self):
        LogContext.set(job_id=42, actor_id=None)
        assert LogContext.get_all() == {"job_id": "42"}

    def test_bind_nests_and_restores(self):
        with LogContext.bind(write_source="user", actor_id="u-1"):
            with LogContext.bind(write_source="po_sync"):
                assert LogContext.get_all() == {"write_source": "po_sync", "actor_id": "u-1"}
            assert LogContext.get_all()["write_source"] == "user"
        assert LogContext.get_all() == {}

    def test_bind_restores_after_error(self):
        with pytest.raises(RuntimeError):
            with LogContext.bind(correlation_id="SMV-1"):
                raise RuntimeError("write failed")
        assert LogContext.get_all() == {}

    def test_bind_none_keeps_outer_value(self):
        with LogContext.bind(actor_id="u-1"):
            with LogContext.bind(actor_id=None):
                assert LogContext.get_all()["actor_id"] == "u-1"

    @pytest.mark.parametrize("call", [LogContext.set, LogContext.bind])
    def test_unknown_field_rejected(self, call):
        with pytest.raises(ValueError, match="trace_id"):
            result = call(trace_id="t")
            if hasattr(result, "__enter__"):
                with result:
                    pass


class TestConfigureLogging:

    def test_second_call_is_noop(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        configure_logging(handler=logging.StreamHandler(StringIO()))
        assert len(logging.getLogger("logistics_kernel").handlers) == 1

    def test_reset_detaches(self):
        configure_logging(handler=logging.StreamHandler(StringIO()))
        reset_logging()
        root = logging.getLogger("logistics_kernel")
        assert root.handlers == []
        assert root.propagate is True

    def test_level_filters(self):
        stream = StringIO()
        configure_logging(handler=logging.StreamHandler(stream), level=logging.WARNING)
        get_logger("test").info("quiet")
        get_logger("test").warning("loud")
        assert [json.loads(l)["message"] for l in stream.getvalue().splitlines()] == ["loud"]
