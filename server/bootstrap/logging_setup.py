"""Structured logging for the static file server.

Records from the ``static_server`` logger tree are written one JSON object
per line, to stdout or to a size-rotated file. Only a known set of
structured fields is copied from each record, and free-form string fields
are scrubbed of anything that looks like a credential.
"""

import json
import logging
import re
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Optional

from server.domain.correlation_id import (
    CorrelationLoggerAdapter,
    component_for,
    get_correlation_id,
)

LOGGER_NAME = "static_server"
TEXT_FORMAT = "%(asctime)s %(levelname)-8s [%(correlation_id)s] %(name)s: %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%S"
ROTATE_AT_BYTES = 10 * 1024 * 1024
ROTATED_FILES_KEPT = 5
REDACTED = "[REDACTED]"

CREDENTIAL_MARKERS = (
    re.compile(r"(?i)authorization|token|signature|password|secret|api[_-]?key|key="),
    re.compile(r"\b[A-Fa-f0-9]{32,}\b"),
    re.compile(r"\b[A-Za-z0-9+/]{32,}={0,2}\b"),
)

REQUEST_FIELDS = (
    "client",
    "method",
    "route",
    "path",
    "status_code",
    "intent",
    "range",
    "encoding",
    "bytes_out",
    "duration_ms",
    "entries",
)
FAILURE_FIELDS = ("error", "error_type")
LIFECYCLE_FIELDS = (
    "host",
    "port",
    "directory",
    "index_page",
    "max_age",
    "log_destination",
    "log_level",
    "socket_timeout",
    "shutdown_grace_seconds",
    "grace_seconds",
    "remaining_workers",
    "signal",
)
STRUCTURED_FIELDS = REQUEST_FIELDS + FAILURE_FIELDS + LIFECYCLE_FIELDS

# filesystem locations are logged verbatim
VERBATIM_FIELDS = frozenset({"route", "path", "directory", "log_destination"})


def redact_sensitive(value: Optional[str]) -> Optional[str]:
    """Replace the whole value when any part of it looks like a credential."""
    if not value:
        return value
    if any(marker.search(value) for marker in CREDENTIAL_MARKERS):
        return REDACTED
    return value


def _structured_fields(record: logging.LogRecord) -> dict[str, Any]:
    fields: dict[str, Any] = {}
    for name in STRUCTURED_FIELDS:
        if name not in record.__dict__:
            continue
        value = record.__dict__[name]
        if isinstance(value, str) and name not in VERBATIM_FIELDS:
            value = redact_sensitive(value)
        fields[name] = value
    return fields


class RequestContextFilter(logging.Filter):  # pylint: disable=too-few-public-methods
    """Backfill correlation_id and component on records logged without the adapter."""

    def filter(self, record: logging.LogRecord) -> bool:
        if not hasattr(record, "correlation_id"):
            record.correlation_id = get_correlation_id() or "-"
        if not hasattr(record, "component"):
            record.component = component_for(record.name)
        return True


class JsonFormatter(logging.Formatter):
    """Render a record as a single JSON line with sorted keys."""

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "correlation_id": getattr(record, "correlation_id", "-"),
            "component": getattr(record, "component", "unknown"),
            "message": record.getMessage(),
        }
        event = getattr(record, "event", None)
        if event is not None:
            payload["event"] = event
        payload.update(_structured_fields(record))
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload, sort_keys=True, default=str)


def _level_number(level_name: str) -> int:
    level = logging.getLevelName(level_name.upper())
    return level if isinstance(level, int) else logging.INFO


def _open_handler(destination: Optional[str]) -> logging.Handler:
    if destination is None or destination.lower() == "stdout":
        return logging.StreamHandler(sys.stdout)
    log_path = Path(destination)
    log_path.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(
        log_path, maxBytes=ROTATE_AT_BYTES, backupCount=ROTATED_FILES_KEPT
    )


def configure_logging(
    level: str = "INFO", destination: Optional[str] = None, use_json: bool = True
) -> CorrelationLoggerAdapter:
    """Route the project logger tree to a single stdout or file handler.

    Calling this again replaces the previous handler, closing it first.
    """
    logger = logging.getLogger(LOGGER_NAME)
    numeric_level = _level_number(level)
    logger.setLevel(numeric_level)
    logger.propagate = False

    for previous in list(logger.handlers):
        logger.removeHandler(previous)
        previous.close()

    handler = _open_handler(destination)
    handler.setLevel(numeric_level)
    if use_json:
        handler.setFormatter(JsonFormatter(datefmt=TIMESTAMP_FORMAT))
    else:
        handler.setFormatter(logging.Formatter(TEXT_FORMAT, TIMESTAMP_FORMAT))
    handler.addFilter(RequestContextFilter())
    logger.addHandler(handler)

    adapter = CorrelationLoggerAdapter(logger, {})
    adapter.debug(
        "Logging configured",
        extra={
            "event": "logging_configured",
            "log_level": logging.getLevelName(numeric_level),
            "log_destination": destination or "stdout",
        },
    )
    return adapter
