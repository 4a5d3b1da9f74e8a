"""Tests for logging configuration, JSON formatting and redaction."""

import json
import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path

import pytest

from server.bootstrap.logging_setup import (
    JsonFormatter,
    RequestContextFilter,
    configure_logging,
    redact_sensitive,
)
from server.domain.correlation_id import clear_correlation_id, set_correlation_id


def _record(msg="format test", level=logging.INFO, exc_info=None, **extra):
    record = logging.LogRecord(
        name="static_server.handlers.file",
        level=level,
        pathname=__file__,
        lineno=0,
        msg=msg,
        args=(),
        exc_info=exc_info,
    )
    for key, value in extra.items():
        setattr(record, key, value)
    return record


@pytest.fixture(name="restore_logger")
def restore_logger_fixture():
    """Undo handler changes made by configure_logging."""
    logger = logging.getLogger("static_server")
    saved = (list(logger.handlers), logger.level, logger.propagate)
    yield logger
    for handler in list(logger.handlers):
        handler.close()
    logger.handlers[:] = saved[0]
    logger.setLevel(saved[1])
    logger.propagate = saved[2]


def test_configure_logging_stream_handler(restore_logger):
    """stdout destinations get a JSON stream handler."""
    adapter = configure_logging("DEBUG", "stdout")

    assert adapter.logger is restore_logger
    assert restore_logger.level == logging.DEBUG
    assert len(restore_logger.handlers) == 1
    handler = restore_logger.handlers[0]
    assert isinstance(handler, logging.StreamHandler)
    assert isinstance(handler.formatter, JsonFormatter)


def test_configure_logging_file_destination(restore_logger, tmp_path: Path):
    """File destinations rotate and persist records."""
    destination = tmp_path / "logs" / "server.log"
    configure_logging("WARNING", destination.as_posix())

    handler = restore_logger.handlers[0]
    assert isinstance(handler, RotatingFileHandler)
    logging.getLogger("static_server.server").warning("file log test")
    handler.flush()

    line = json.loads(destination.read_text().splitlines()[-1])
    assert line["message"] == "file log test"
    assert line["level"] == "WARNING"


def test_configure_logging_plain_text(restore_logger):
    """use_json=False switches to the line format."""
    configure_logging("INFO", "stdout", use_json=False)
    formatter = restore_logger.handlers[0].formatter
    formatted = formatter.format(_record(correlation_id="abc"))
    assert "[abc] static_server.handlers.file: format test" in formatted


def test_configure_logging_replaces_previous_handlers(restore_logger):
    configure_logging("INFO", "stdout")
    configure_logging("INFO", "stdout")
    assert len(restore_logger.handlers) == 1


def test_unknown_level_falls_back_to_info(restore_logger):
    configure_logging("chatty", "stdout")
    assert restore_logger.level == logging.INFO


def test_context_filter_backfills_missing_fields():
    clear_correlation_id()
    record = _record()
    assert RequestContextFilter().filter(record)
    assert record.correlation_id == "-"
    assert record.component == "handlers.file"


def test_context_filter_uses_active_correlation_id():
    set_correlation_id("req-9")
    try:
        record = _record()
        RequestContextFilter().filter(record)
    finally:
        clear_correlation_id()
    assert record.correlation_id == "req-9"


def test_json_formatter_fields_are_sorted():
    output = JsonFormatter().format(
        _record(
            correlation_id="cid",
            component="handlers.file",
            event="compression_applied",
            encoding="gzip",
            status_code=200,
        )
    )
    log_data = json.loads(output)
    assert list(log_data) == sorted(log_data)
    assert log_data["component"] == "handlers.file"
    assert log_data["event"] == "compression_applied"
    assert log_data["encoding"] == "gzip"
    assert log_data["status_code"] == 200


def test_json_formatter_defaults_missing_context():
    log_data = json.loads(JsonFormatter().format(_record()))
    assert log_data["correlation_id"] == "-"
    assert log_data["component"] == "unknown"
    assert "event" not in log_data


def test_json_formatter_ignores_unknown_extras():
    log_data = json.loads(JsonFormatter().format(_record(favourite_colour="blue")))
    assert "favourite_colour" not in log_data


def test_json_formatter_includes_exception():
    try:
        raise ValueError("Test error")
    except ValueError:
        record = _record(level=logging.ERROR, exc_info=sys.exc_info())
    log_data = json.loads(JsonFormatter().format(record))
    assert "ValueError: Test error" in log_data["exception"]


def test_json_formatter_redacts_error_but_not_paths():
    long_path = "/srv/" + "a" * 40 + "/index.html"
    log_data = json.loads(
        JsonFormatter().format(
            _record(error="password=hunter2", path=long_path, route=long_path)
        )
    )
    assert log_data["error"] == "[REDACTED]"
    assert log_data["path"] == long_path
    assert log_data["route"] == long_path


@pytest.mark.parametrize(
    "value",
    [
        "Authorization: Bearer abc",
        "api_key=secret",
        "signature=xyz",
        "0123456789abcdef0123456789abcdef",
        "YWJjZGVmZ2hpamtsbW5vcHFyc3R1dnd4eXo=",
    ],
)
def test_redact_sensitive_values(value):
    assert redact_sensitive(value) == "[REDACTED]"


@pytest.mark.parametrize("value", ["", "user_id=123", "GET /index.html", None])
def test_redact_leaves_safe_values(value):
    assert redact_sensitive(value) == value
