"""Per-request correlation IDs carried in a context variable.

Every connection runs in its own asyncio task, and every task runs in its
own copy of the context, so an ID set while serving one request is never
visible to another connection.
"""

import contextvars
import logging
import uuid
from typing import Any, MutableMapping, Optional

LOGGER_PREFIX = "static_server."
MAX_INCOMING_ID_LENGTH = 128

_current_id: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    "correlation_id", default=None
)


def generate_correlation_id() -> str:
    """Mint a fresh random request ID."""
    return str(uuid.uuid4())


def get_correlation_id() -> Optional[str]:
    return _current_id.get()


def set_correlation_id(correlation_id: str) -> None:
    _current_id.set(correlation_id)


def clear_correlation_id() -> None:
    _current_id.set(None)


def adopt_correlation_id(incoming: Optional[str]) -> str:
    """Switch to the client's X-Request-ID when usable; return the active ID.

    Oversized or non-printable values are ignored so they never end up
    echoed back in a response header.
    """
    if (
        incoming
        and len(incoming) <= MAX_INCOMING_ID_LENGTH
        and incoming.isprintable()
    ):
        _current_id.set(incoming)
        return incoming
    current = _current_id.get()
    if current is None:
        current = generate_correlation_id()
        _current_id.set(current)
    return current


def component_for(logger_name: str) -> str:
    """Strip the project prefix: ``static_server.pipeline.io`` -> ``pipeline.io``."""
    if logger_name.startswith(LOGGER_PREFIX):
        return logger_name[len(LOGGER_PREFIX) :]
    return logger_name


class CorrelationLoggerAdapter(logging.LoggerAdapter):
    """Stamps each record with the active correlation ID and its component."""

    def process(
        self, msg: str, kwargs: MutableMapping[str, Any]
    ) -> tuple[str, MutableMapping[str, Any]]:
        extra = dict(kwargs.get("extra") or {})
        extra["correlation_id"] = get_correlation_id() or "-"
        extra["component"] = component_for(self.logger.name)
        kwargs["extra"] = extra
        return msg, kwargs
