"""Listening socket creation."""

import logging
import socket
import sys

from server.bootstrap.config import ServerConfig
from server.domain.correlation_id import CorrelationLoggerAdapter

SOCKET_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.socket"), {}
)


def create_server_socket(config: ServerConfig) -> socket.socket:
    """Bind a non-blocking listening socket for the event loop."""
    try:
        server_socket = socket.create_server((config.host, config.port))
    except OSError as error:
        SOCKET_LOGGER.critical(
            "Failed to bind listening socket",
            extra={
                "event": "bind_failed",
                "host": config.host,
                "port": config.port,
                "error": str(error),
            },
        )
        sys.exit(1)
    server_socket.setblocking(False)
    return server_socket
