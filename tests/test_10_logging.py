"""
Tests for the structured logging module.

Tests cover:
- Level coercion from ints, names and Python levels
- Level filtering of the numeric helpers
- Request ID propagation into records
- JSONL and console formatting
"""
import json
import logging

import pytest

from narrator.core.logging import (
    ColoredConsoleFormatter,
    JsonlFormatter,
    LogLevel,
    coerce_level,
    fail,
    get_level,
    get_logger,
    get_request_id,
    info,
    set_level,
    set_request_id,
    verbose,
    warn,
)


@pytest.fixture
def log_level():
    """Restore the process log level after the test."""
    previous = get_level()
    yield set_level
    set_level(previous)


@pytest.fixture
def request_id():
    previous = get_request_id()
    yield set_request_id
    set_request_id(previous)


def _record(msg="chunk_retry", **extra):
    record = logging.LogRecord("narrator.test", logging.WARNING, __file__, 1, msg, None, None)
    record.created = 1_700_000_000.0
    for k, v in extra.items():
        setattr(record, k, v)
    return record


class TestCoerceLevel:
    """Tests for coerce_level()."""

    @pytest.mark.parametrize("value,expected", [
        (1, LogLevel.MINIMAL),
        (3, LogLevel.VERBOSE),
        ("verbose", LogLevel.VERBOSE),
        ("INFO", LogLevel.NORMAL),
        ("4", LogLevel.DEBUG),
        (logging.WARNING, LogLevel.MINIMAL),
        (logging.INFO, LogLevel.NORMAL),
        ("nonsense", LogLevel.NORMAL),
        (None, LogLevel.NORMAL),
    ])
    def test_values(self, value, expected):
        assert coerce_level(value) == expected


class TestLevelFiltering:
    """Numeric level gates."""

    def test_verbose_hidden_at_normal(self, log_level, caplog):
        log_level(LogLevel.NORMAL)
        log = get_logger("narrator.test")

        with caplog.at_level(logging.DEBUG):
            verbose(log, "chunk_done", chunk=1)
            info(log, "request", chars=10)

        messages = [r.getMessage() for r in caplog.records]
        assert "request" in messages
        assert "chunk_done" not in messages

    def test_verbose_shown_at_verbose(self, log_level, caplog):
        log_level(LogLevel.VERBOSE)
        log = get_logger("narrator.test")

        with caplog.at_level(logging.DEBUG):
            verbose(log, "chunk_done", chunk=1)

        assert [r.getMessage() for r in caplog.records] == ["chunk_done"]

    def test_minimal_keeps_failures_only(self, log_level, caplog):
        log_level(LogLevel.MINIMAL)
        log = get_logger("narrator.test")

        with caplog.at_level(logging.DEBUG):
            warn(log, "chunk_retry")
            fail(log, "pipeline_aborted", chunk=2)

        assert [r.getMessage() for r in caplog.records] == ["pipeline_aborted"]
        assert caplog.records[0].tag == "FAIL"

    def test_fields_and_request_id_attached(self, log_level, request_id, caplog):
        log_level(LogLevel.NORMAL)
        request_id("req-42")
        log = get_logger("narrator.test")

        with caplog.at_level(logging.DEBUG):
            warn(log, "chunk_retry", chunk=2, retry_in_s=10.0, seconds=0.25)

        record = caplog.records[0]
        assert record.request_id == "req-42"
        assert record.extra_data == {"chunk": 2, "retry_in_s": 10.0}
        assert record.seconds == 0.25
        assert record.numeric_level == 2


class TestJsonlFormatter:
    """JSON Lines output."""

    def test_fields(self):
        record = _record(
            tag="WARN",
            request_id="abc123",
            numeric_level=2,
            seconds=1.5,
            event=None,
            extra_data={"chunk": 2, "attempt": 1},
        )

        payload = json.loads(JsonlFormatter().format(record))

        assert payload["message"] == "chunk_retry"
        assert payload["tag"] == "WARN"
        assert payload["level"] == 2
        assert payload["request_id"] == "abc123"
        assert payload["seconds"] == 1.5
        assert payload["extra"] == {"chunk": 2, "attempt": 1}
        assert "event" not in payload
        assert "ts" in payload

    def test_plain_record_defaults(self):
        payload = json.loads(JsonlFormatter().format(_record()))
        assert payload["tag"] == "WARNING"
        assert payload["request_id"] == "-"


class TestConsoleFormatter:
    """Human-readable console output."""

    def test_line_contains_fields(self):
        from narrator.core.logging import colors

        previous = colors.USE_COLORS
        colors.USE_COLORS = False
        try:
            line = ColoredConsoleFormatter().format(_record(
                tag="WARN",
                request_id="abc123",
                extra_data={"chunk": 2, "retry_in_s": 10.0},
                seconds=0.125,
            ))
        finally:
            colors.USE_COLORS = previous

        assert "[ WARN  ]" in line
        assert "(abc123)" in line
        assert "chunk_retry" in line
        assert "chunk=2" in line
        assert "retry_in_s=10.0" in line
        assert line.endswith("0.125s")

    def test_no_request_id_omitted(self):
        from narrator.core.logging import colors

        previous = colors.USE_COLORS
        colors.USE_COLORS = False
        try:
            line = ColoredConsoleFormatter().format(_record(tag="INFO"))
        finally:
            colors.USE_COLORS = previous

        assert "(-)" not in line
