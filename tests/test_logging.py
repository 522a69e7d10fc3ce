"""Tests for the structured logging system (tranche_kernel/logging_config.py)."""

import json
import logging
from io import StringIO
from uuid import uuid4

import pytest

from tranche_kernel.exceptions import CoverageRequirementUnsatisfiedError
from tranche_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    get_logger,
    reset_logging,
)


@pytest.fixture(autouse=True)
def _clean_logging():
    """Reset logging state between tests."""
    reset_logging()
    LogContext.clear()
    yield
    LogContext.clear()
    reset_logging()


def _make_handler() -> tuple[logging.Handler, StringIO]:
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    return handler, stream


def _parse_log(stream: StringIO) -> dict:
    """Parse the first JSON log line from a stream."""
    line = stream.getvalue().strip().split("\n")[0]
    return json.loads(line)


def _parse_all_logs(stream: StringIO) -> list[dict]:
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "tranche_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("synced", extra={"ledger_version": 7, "kind": "st_increase_nav"})

        record = _parse_log(stream)
        assert record["ledger_version"] == 7
        assert record["kind"] == "st_increase_nav"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(market_code="MKT-1", operation="pre_op_sync")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["market_code"] == "MKT-1"
        assert record["operation"] == "pre_op_sync"

    def test_exception_fields(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise ValueError("boom")
        except ValueError:
            get_logger("test").error("failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_type"] == "ValueError"
        assert record["exc_message"] == "boom"
        assert "traceback" in record

    def test_kernel_exception_code_extracted(self):
        """Kernel exceptions carry a .code attribute and structured fields."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise CoverageRequirementUnsatisfiedError("MKT-1", "1.2")
        except CoverageRequirementUnsatisfiedError:
            get_logger("test").error("coverage_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "COVERAGE_REQUIREMENT_UNSATISFIED"
        assert record["exc_market_code"] == "MKT-1"
        assert record["exc_utilization"] == "1.2"

    def test_uuid_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("with_uuid", extra={"ledger_id": uid})

        assert _parse_log(stream)["ledger_id"] == str(uid)

    def test_level_filtering(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        assert [r["message"] for r in logs] == ["first", "second"]


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(correlation_id="x", market_code="y")
        assert LogContext.get_all() == {"correlation_id": "x", "market_code": "y"}

    def test_clear(self):
        LogContext.set(actor_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_restores_previous(self):
        LogContext.set(market_code="outer")
        with LogContext.bind(market_code="inner"):
            assert LogContext.get_all()["market_code"] == "inner"
        assert LogContext.get_all()["market_code"] == "outer"

    def test_bind_ignores_none(self):
        with LogContext.bind(market_code="MKT-1", actor_id=None):
            assert "actor_id" not in LogContext.get_all()
        assert "market_code" not in LogContext.get_all()


class TestConfigureLogging:
    def test_second_configuration_is_ignored(self):
        reset_logging()
        h1, _ = _make_handler()
        h2, _ = _make_handler()

        configure_logging(handler=h1)
        configure_logging(handler=h2)

        handlers = logging.getLogger("tranche_kernel").handlers
        assert h1 in handlers
        assert h2 not in handlers

    def test_get_logger_returns_child(self):
        assert get_logger("services.sync_orchestrator").name == (
            "tranche_kernel.services.sync_orchestrator"
        )

    def test_logger_hierarchy(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["logger"] == "tranche_kernel.deep.nested.module"
