"""HTTP Input/Output operations over asyncio streams."""

import asyncio
import logging
import urllib.parse
from typing import Optional

from server.bootstrap.config import HEADER_DELIMITER, MAX_BODY_BYTES
from server.domain.correlation_id import (
    CorrelationLoggerAdapter,
    get_correlation_id,
)
from server.domain.http_types import HttpRequest, HttpResponse
from server.pipeline.validation import RequestEntityTooLarge

IO_LOGGER = CorrelationLoggerAdapter(logging.getLogger("static_server.io"), {})

SUPPORTED_VERSIONS = {"HTTP/1.0", "HTTP/1.1"}
DISCARD_CHUNK_SIZE = 65536


def parse_headers(lines: list[str]) -> dict[str, str]:
    """Convert raw header lines into a lowercase-keyed dictionary."""
    parsed = {}
    for line in lines:
        if ":" in line:
            name, value = line.split(":", 1)
            parsed[name.strip().lower()] = value.strip()
    return parsed


def parse_request_line(request_line: str) -> tuple[str, str, str, str, str]:
    """Split the request line into method, target, path, query and version."""
    try:
        method, target, version = request_line.split(" ", 2)
    except ValueError as exc:
        raise ValueError("Invalid request line") from exc
    if version not in SUPPORTED_VERSIONS:
        raise ValueError(f"Unsupported protocol version: {version}")

    parsed_target = urllib.parse.urlsplit(target)
    path = urllib.parse.unquote(parsed_target.path)
    if not path.startswith("/") or "\x00" in path:
        raise ValueError("Invalid request target")
    return method, target, path, parsed_target.query, version


def determine_content_length(headers: dict[str, str]) -> int:
    """Validate and return the declared Content-Length for the request."""
    if "transfer-encoding" in headers:
        raise ValueError("Request bodies with Transfer-Encoding are not supported")
    header_value = headers.get("content-length")
    if header_value is None:
        return 0
    try:
        content_length = int(header_value)
    except ValueError as exc:
        raise ValueError("Invalid Content-Length") from exc
    if content_length < 0:
        raise ValueError("Negative Content-Length")
    if content_length > MAX_BODY_BYTES:
        raise RequestEntityTooLarge
    return content_length


async def _discard_body(reader: asyncio.StreamReader, content_length: int) -> None:
    remaining = content_length
    while remaining > 0:
        chunk = await reader.read(min(DISCARD_CHUNK_SIZE, remaining))
        if not chunk:
            raise asyncio.IncompleteReadError(b"", remaining)
        remaining -= len(chunk)


async def receive_request(reader: asyncio.StreamReader) -> Optional[HttpRequest]:
    """Read the next request from the stream, or None once the client is gone."""
    try:
        header_block = await reader.readuntil(HEADER_DELIMITER)
    except asyncio.IncompleteReadError as exc:
        if exc.partial.strip():
            raise ValueError("Connection closed mid-request") from exc
        return None
    except asyncio.LimitOverrunError as exc:
        raise ValueError("Request header block too large") from exc

    header_lines = header_block[: -len(HEADER_DELIMITER)].decode("iso-8859-1")
    lines = header_lines.lstrip("\r\n").split("\r\n")
    method, target, path, query, version = parse_request_line(lines[0])
    headers = parse_headers(lines[1:])

    content_length = determine_content_length(headers)
    if content_length:
        try:
            await _discard_body(reader, content_length)
        except asyncio.IncompleteReadError:
            return None

    IO_LOGGER.debug("Parsed request", extra={"method": method, "route": path})
    return HttpRequest(method, target, path, headers, query, version)


def _serialize_head(response: HttpResponse) -> bytes:
    headers = dict(response.headers)

    correlation_id = get_correlation_id()
    if correlation_id:
        headers["X-Request-ID"] = correlation_id

    # a 304 never carries a body, so it gets no framing headers
    if response.status_code != 304:
        if response.use_chunked:
            headers["Transfer-Encoding"] = "chunked"
        elif response.body_iter is not None:
            headers["Content-Length"] = str(response.content_length or 0)
        else:
            headers["Content-Length"] = str(len(response.body))
    if response.close_connection:
        headers["Connection"] = "close"
    header_lines = [response.status_line]
    header_lines.extend(f"{name}: {value}" for name, value in headers.items())
    return "\r\n".join(header_lines).encode("iso-8859-1") + HEADER_DELIMITER


async def send_response(
    writer: asyncio.StreamWriter, response: HttpResponse, include_body: bool = True
) -> int:
    """Serialize and send the response, returning the body bytes written.

    Streamed bodies are written chunk by chunk, waiting on ``drain()`` so a
    slow client pauses the file reads. The body stream is closed on every
    exit path, including HEAD requests and client disconnects.
    """
    body_bytes = 0
    try:
        writer.write(_serialize_head(response))
        if not include_body:
            await writer.drain()
        elif response.body_iter is not None:
            async for chunk in response.body_iter:
                if not chunk:
                    continue
                if response.use_chunked:
                    writer.write(f"{len(chunk):X}\r\n".encode() + chunk + b"\r\n")
                else:
                    writer.write(chunk)
                body_bytes += len(chunk)
                await writer.drain()
            if response.use_chunked:
                writer.write(b"0\r\n\r\n")
            await writer.drain()
        else:
            writer.write(response.body)
            body_bytes = len(response.body)
            await writer.drain()
    finally:
        if response.body_iter is not None:
            await response.body_iter.aclose()
    IO_LOGGER.debug(
        "Sent response",
        extra={
            "status_code": response.status_code,
            "use_chunked": response.use_chunked,
            "bytes_out": body_bytes,
        },
    )
    return body_bytes
