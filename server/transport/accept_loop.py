"""Listening server: accepts connections until shutdown, then drains."""

import asyncio
import functools
import logging

from server.bootstrap.config import MAX_HEADER_BYTES, ServerConfig
from server.bootstrap.socket_factory import create_server_socket
from server.domain.correlation_id import CorrelationLoggerAdapter
from server.lifecycle.state import ServerLifecycle
from server.transport.connection import handle_client
from server.transport.context import ConnectionContext

ACCEPT_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.transport.accept"), {}
)


async def run_server(config: ServerConfig, lifecycle: ServerLifecycle) -> None:
    """Accept clients until the lifecycle drains, then wait out the grace period.

    The reader limit doubles as the request header cap: a header block that
    outgrows it fails the read and is answered with 400.
    """
    listener = create_server_socket(config)
    on_connect = functools.partial(
        handle_client, context=ConnectionContext(config, lifecycle)
    )
    server = await asyncio.start_server(
        on_connect, sock=listener, limit=MAX_HEADER_BYTES
    )
    bound_host, bound_port = server.sockets[0].getsockname()[:2]
    ACCEPT_LOGGER.info(
        "Serving static files",
        extra={
            "event": "server_listening",
            "host": bound_host,
            "port": bound_port,
            "directory": config.directory,
        },
    )

    try:
        await lifecycle.wait_for_drain()
    finally:
        # stop accepting before waiting so no new connection joins the drain
        server.close()
        ACCEPT_LOGGER.info(
            "Draining in-flight requests",
            extra={
                "event": "shutdown_waiting",
                "remaining_workers": lifecycle.active_worker_count(),
                "grace_seconds": config.shutdown_grace_seconds,
            },
        )
        await lifecycle.wait_for_workers(config.shutdown_grace_seconds)
        await server.wait_closed()
        ACCEPT_LOGGER.info("Server stopped", extra={"event": "server_stopped"})
