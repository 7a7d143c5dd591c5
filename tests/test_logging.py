"""Tests for the structured logging system (contracts_kernel/logging_config.py)."""

import json
import logging
from decimal import Decimal
from io import StringIO
from uuid import uuid4

import pytest

from contracts_kernel.exceptions import InvalidStatusTransitionError, TransitionGuardError
from contracts_kernel.logging_config import (
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
    """Parse all JSON log lines from a stream."""
    lines = stream.getvalue().strip().split("\n")
    return [json.loads(line) for line in lines if line]


# ---------------------------------------------------------------------------
# StructuredFormatter tests
# ---------------------------------------------------------------------------


class TestStructuredFormatter:
    """Tests for JSON log output format."""

    def test_basic_json_output(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("hello")

        record = _parse_log(stream)
        assert record["level"] == "INFO"
        assert record["message"] == "hello"
        assert record["logger"] == "contracts_kernel.test"
        assert "ts" in record

    def test_extra_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("signed", extra={"version": 4, "signer_role": "provider"})

        record = _parse_log(stream)
        assert record["version"] == 4
        assert record["signer_role"] == "provider"

    def test_context_fields_included(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(request_id="req-1", contract_id="c-9")
        get_logger("test").info("test_msg")

        record = _parse_log(stream)
        assert record["request_id"] == "req-1"
        assert record["contract_id"] == "c-9"

    def test_context_wins_over_extra(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        LogContext.set(contract_id="from-context")
        get_logger("test").info("clash", extra={"contract_id": "from-extra"})

        assert _parse_log(stream)["contract_id"] == "from-context"

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

    def test_kernel_exception_fields_extracted(self):
        """Kernel exceptions carry a code and structured attributes."""
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise InvalidStatusTransitionError("c-1", "draft", "active")
        except InvalidStatusTransitionError:
            get_logger("test").error("transition_error", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "INVALID_STATUS_TRANSITION"
        assert record["exc_type"] == "InvalidStatusTransitionError"
        assert record["exc_from_status"] == "draft"
        assert record["exc_to_status"] == "active"
        assert record["exc_kind"] == "invalid_state"

    def test_guard_failure_names_the_guard(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        try:
            raise TransitionGuardError("c-1", "partially-signed", "fully-signed", "all_signed")
        except InvalidStatusTransitionError:
            get_logger("test").warning("guard_failed", exc_info=True)

        record = _parse_log(stream)
        assert record["exc_code"] == "TRANSITION_GUARD_FAILED"
        assert record["exc_guard"] == "all_signed"
        assert record["exc_message"].endswith("guard all_signed not satisfied")

    def test_no_context_fields_when_empty(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        get_logger("test").info("bare_message")

        record = _parse_log(stream)
        assert "request_id" not in record
        assert "contract_id" not in record

    def test_uuid_and_decimal_serialized(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        uid = uuid4()
        get_logger("test").info("typed", extra={"payment_id": uid, "amount": Decimal("12.50")})

        record = _parse_log(stream)
        assert record["payment_id"] == str(uid)
        assert record["amount"] == "12.50"

    def test_valid_json_every_line(self):
        handler, stream = _make_handler()
        configure_logging(handler=handler)
        logger = get_logger("test")
        logger.info("first")
        logger.warning("second", extra={"k": "v"})
        logger.debug("third")

        logs = _parse_all_logs(stream)
        # default level is INFO, so the debug line is dropped
        assert len(logs) == 2
        for record in logs:
            assert {"ts", "level", "logger", "message"} <= set(record)


# ---------------------------------------------------------------------------
# LogContext tests
# ---------------------------------------------------------------------------


class TestLogContext:
    """Tests for context propagation."""

    def test_set_and_get(self):
        LogContext.set(request_id="x", actor_id="y")
        assert LogContext.get_all() == {"request_id": "x", "actor_id": "y"}

    def test_clear(self):
        LogContext.set(contract_id="x")
        LogContext.clear()
        assert LogContext.get_all() == {}

    def test_bind_context_manager(self):
        LogContext.set(request_id="outer")
        with LogContext.bind(request_id="inner"):
            assert LogContext.get_all()["request_id"] == "inner"
        assert LogContext.get_all()["request_id"] == "outer"

    def test_bind_restores_none(self):
        """bind() restores to None if there was no previous value."""
        with LogContext.bind(contract_id="temp"):
            assert LogContext.get_all()["contract_id"] == "temp"
        assert "contract_id" not in LogContext.get_all()

    def test_bind_ignores_unknown_fields(self):
        with LogContext.bind(tenant="t-1", actor_id="a"):
            assert LogContext.get_all() == {"actor_id": "a"}

    def test_set_ignores_unknown_fields(self):
        LogContext.set(tenant="t-1", request_id="r")
        assert LogContext.get_all() == {"request_id": "r"}

    def test_all_fields(self):
        LogContext.set(request_id="r", contract_id="k", actor_id="a")
        ctx = LogContext.get_all()
        assert set(ctx) == set(LogContext.FIELDS)
        assert ctx["contract_id"] == "k"


# ---------------------------------------------------------------------------
# configure_logging tests
# ---------------------------------------------------------------------------


class TestConfigureLogging:
    """Tests for initialization."""

    def test_idempotent(self):
        h1, _ = _make_handler()
        configure_logging(handler=h1)
        h2, _ = _make_handler()
        configure_logging(handler=h2)  # second call is no-op
        assert len(logging.getLogger("contracts_kernel").handlers) == 1

    def test_get_logger_returns_child(self):
        logger = get_logger("services.signature_workflow")
        assert logger.name == "contracts_kernel.services.signature_workflow"

    def test_logger_hierarchy(self):
        """Child loggers inherit the contracts_kernel root config."""
        handler, stream = _make_handler()
        configure_logging(handler=handler, level=logging.DEBUG)
        get_logger("deep.nested.module").debug("hierarchy_test")

        record = _parse_log(stream)
        assert record["message"] == "hierarchy_test"
        assert record["logger"] == "contracts_kernel.deep.nested.module"
