"""Per-connection request loop."""

import asyncio
import logging
import time
from typing import Optional

from server.bootstrap.config import ALLOWED_METHODS
from server.domain.correlation_id import (
    CorrelationLoggerAdapter,
    adopt_correlation_id,
    clear_correlation_id,
    generate_correlation_id,
    set_correlation_id,
)
from server.domain.http_types import HttpRequest, HttpResponse
from server.domain.response_builders import (
    bad_request_response,
    entity_too_large_response,
)
from server.pipeline.io import receive_request, send_response
from server.pipeline.router import route_request
from server.pipeline.validation import RequestEntityTooLarge, validate_request
from server.transport.context import ConnectionContext

CONNECTION_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.transport.connection"), {}
)


class ClientConnection:
    """Serves sequential keep-alive requests arriving on one socket.

    The owning task is registered with the lifecycle for its whole life and
    flagged idle only while it waits for the next request line, which is the
    one point where shutdown may cancel it without cutting off a response.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        context: ConnectionContext,
    ) -> None:
        self.reader = reader
        self.writer = writer
        self.context = context
        self.task = asyncio.current_task()
        peer = writer.get_extra_info("peername") or ("-", 0)
        self.client = f"{peer[0]}:{peer[1]}"

    def _tracked(self) -> bool:
        return self.context.lifecycle is not None and self.task is not None

    def _draining(self) -> bool:
        lifecycle = self.context.lifecycle
        return lifecycle is not None and lifecycle.is_draining()

    async def serve(self) -> None:
        """Answer requests until the client, an error or shutdown ends it."""
        if self._tracked():
            self.context.lifecycle.register_worker(self.task)
        try:
            while not self._draining():
                set_correlation_id(generate_correlation_id())
                request = await self._next_request()
                if request is None:
                    break
                adopt_correlation_id(request.headers.get("x-request-id"))
                if await self._respond(request):
                    break
        except (ConnectionError, asyncio.IncompleteReadError) as error:
            CONNECTION_LOGGER.info(
                "Client went away mid-response",
                extra={
                    "event": "client_aborted",
                    "client": self.client,
                    "error_type": type(error).__name__,
                },
            )
        except OSError as error:
            CONNECTION_LOGGER.error(
                "Socket error while serving client",
                extra={
                    "event": "connection_error",
                    "client": self.client,
                    "error_type": type(error).__name__,
                    "error": str(error),
                },
            )
        except Exception as error:  # pylint: disable=broad-except
            CONNECTION_LOGGER.error(
                "Unexpected failure while serving client",
                extra={
                    "event": "connection_crashed",
                    "client": self.client,
                    "error_type": type(error).__name__,
                },
                exc_info=True,
            )
        finally:
            await self._close()

    async def _next_request(self) -> Optional[HttpRequest]:
        """Wait for the next request; None means the connection should end."""
        if self._tracked():
            self.context.lifecycle.mark_idle(self.task)
        try:
            request = await asyncio.wait_for(
                receive_request(self.reader),
                timeout=self.context.config.socket_timeout or None,
            )
        except RequestEntityTooLarge:
            await self._reject(entity_too_large_response(), "body_too_large")
            return None
        except ValueError as error:
            await self._reject(bad_request_response(), "malformed_request", error)
            return None
        except asyncio.TimeoutError:
            CONNECTION_LOGGER.debug(
                "Keep-alive connection idle too long",
                extra={"event": "idle_timeout", "client": self.client},
            )
            return None
        finally:
            if self._tracked():
                self.context.lifecycle.mark_busy(self.task)

        if request is None:
            CONNECTION_LOGGER.debug(
                "Client closed the connection",
                extra={"event": "client_disconnected", "client": self.client},
            )
        return request

    async def _reject(
        self,
        response: HttpResponse,
        event: str,
        error: Optional[Exception] = None,
    ) -> None:
        details = {
            "event": event,
            "client": self.client,
            "status_code": response.status_code,
        }
        if error is not None:
            details["error"] = str(error)
        CONNECTION_LOGGER.warning("Request rejected", extra=details)
        await send_response(self.writer, response)

    async def _respond(self, request: HttpRequest) -> bool:
        """Serve one request and report whether the connection must close."""
        started = time.perf_counter()
        response = validate_request(request, ALLOWED_METHODS)
        if response is None:
            response = await route_request(request, self.context.config)

        bytes_out = await send_response(
            self.writer, response, include_body=request.method != "HEAD"
        )
        CONNECTION_LOGGER.info(
            "Request completed",
            extra={
                "event": "request_completed",
                "client": self.client,
                "method": request.method,
                "route": request.path,
                "status_code": response.status_code,
                "bytes_out": bytes_out,
                "duration_ms": round((time.perf_counter() - started) * 1000, 3),
            },
        )
        return response.close_connection

    async def _close(self) -> None:
        if self._tracked():
            self.context.lifecycle.cleanup_worker(self.task)
        self.writer.close()
        try:
            await self.writer.wait_closed()
        except OSError as error:
            CONNECTION_LOGGER.debug(
                "Socket reported an error while closing",
                extra={
                    "event": "socket_close_failed",
                    "client": self.client,
                    "error_type": type(error).__name__,
                },
            )
        clear_correlation_id()


async def handle_client(
    reader: asyncio.StreamReader,
    writer: asyncio.StreamWriter,
    context: ConnectionContext,
) -> None:
    """``asyncio.start_server`` callback: serve one client connection."""
    await ClientConnection(reader, writer, context).serve()
