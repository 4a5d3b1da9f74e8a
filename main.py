"""Static file server with HTTP caching, byte ranges and compression."""

import asyncio
import logging
import signal
import sys

from server.bootstrap.config import (
    ServerConfig,
    build_server_config,
    parse_cli_args,
)
from server.bootstrap.logging_setup import configure_logging
from server.domain.correlation_id import CorrelationLoggerAdapter
from server.lifecycle.state import ServerLifecycle
from server.transport.accept_loop import run_server

SERVER_LOGGER = CorrelationLoggerAdapter(logging.getLogger("static_server.server"), {})


async def serve(config: ServerConfig) -> None:
    """Install signal handlers and run the server until shutdown."""
    lifecycle = ServerLifecycle()
    loop = asyncio.get_running_loop()

    def shutdown_handler(signum: int) -> None:
        SERVER_LOGGER.info(
            "Received shutdown signal",
            extra={"event": "shutdown_signal", "signal": signum},
        )
        lifecycle.begin_draining()

    for signum in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(signum, shutdown_handler, signum)

    await run_server(config, lifecycle)


def main() -> None:
    """Parse configuration and start the static file server."""
    args = parse_cli_args(sys.argv[1:])
    configure_logging(args.log_level, args.log_destination)
    config = build_server_config(args)

    SERVER_LOGGER.info(
        "Starting static file server",
        extra={
            "event": "server_starting",
            "host": config.host,
            "port": config.port,
            "directory": config.directory,
            "index_page": config.index_page,
            "max_age": config.max_age,
            "log_destination": args.log_destination,
            "log_level": args.log_level,
            "socket_timeout": config.socket_timeout,
            "shutdown_grace_seconds": config.shutdown_grace_seconds,
        },
    )
    asyncio.run(serve(config))


if __name__ == "__main__":
    main()
