"""File serving handlers."""

import asyncio
import logging
import mimetypes
import zlib
from pathlib import Path
from typing import BinaryIO, Optional, Union

from server.bootstrap.config import SECURITY_HEADERS, ServerConfig
from server.domain.byte_range import ByteRange
from server.domain.correlation_id import CorrelationLoggerAdapter
from server.domain.http_types import BodyStream, HttpRequest, HttpResponse, should_close
from server.domain.intents import ServeFile, ServeRange

FILE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.handlers.file"), {}
)

CHUNK_SIZE = 65536

# zlib window bits: +16 selects the gzip container, plain MAX_WBITS the zlib one
ENCODING_WBITS = {
    "gzip": zlib.MAX_WBITS | 16,
    "deflate": zlib.MAX_WBITS,
}


def content_type_for_path(filepath: Path) -> str:
    """Look up the MIME type for a path, defaulting to an octet stream."""
    mime_type, _ = mimetypes.guess_type(filepath.as_posix())
    return mime_type or "application/octet-stream"


class FileStream:
    """Chunked async reader over an open file, optionally bounded by a range."""

    def __init__(
        self,
        file_handle: BinaryIO,
        byte_range: Optional[ByteRange] = None,
        chunk_size: int = CHUNK_SIZE,
    ) -> None:
        self._file_handle: Optional[BinaryIO] = file_handle
        self._remaining = byte_range.length if byte_range is not None else None
        self._chunk_size = chunk_size

    @property
    def closed(self) -> bool:
        return self._file_handle is None

    def __aiter__(self) -> "FileStream":
        return self

    async def __anext__(self) -> bytes:
        if self._file_handle is None:
            raise StopAsyncIteration
        size = self._chunk_size
        if self._remaining is not None:
            size = min(size, self._remaining)
        chunk = b""
        if size > 0:
            chunk = await asyncio.to_thread(self._file_handle.read, size)
        if not chunk:
            await self.aclose()
            raise StopAsyncIteration
        if self._remaining is not None:
            self._remaining -= len(chunk)
        if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
            FILE_LOGGER.debug(
                "File chunk read",
                extra={"event": "file_chunk_read", "bytes_out": len(chunk)},
            )
        return chunk

    async def aclose(self) -> None:
        """Release the file handle; safe to call more than once."""
        file_handle, self._file_handle = self._file_handle, None
        if file_handle is not None:
            file_handle.close()


class CompressedStream:
    """Streaming gzip or deflate transform over another body stream."""

    def __init__(self, source: BodyStream, encoding: str) -> None:
        self._source = source
        self._compressor = zlib.compressobj(wbits=ENCODING_WBITS[encoding])
        self._finished = False

    def __aiter__(self) -> "CompressedStream":
        return self

    async def __anext__(self) -> bytes:
        while not self._finished:
            try:
                chunk = await self._source.__anext__()
            except StopAsyncIteration:
                self._finished = True
                return self._compressor.flush()
            compressed = self._compressor.compress(chunk)
            if compressed:
                return compressed
        raise StopAsyncIteration

    async def aclose(self) -> None:
        """Close the underlying source stream."""
        await self._source.aclose()


async def open_stream(path: Path, byte_range: Optional[ByteRange] = None) -> FileStream:
    """Open the file off the event loop, positioned at the range start."""
    file_handle = await asyncio.to_thread(open, path, "rb")
    if byte_range is not None and byte_range.start:
        try:
            await asyncio.to_thread(file_handle.seek, byte_range.start)
        except OSError:
            file_handle.close()
            raise
    return FileStream(file_handle, byte_range)


def _accepted_quality(params: str) -> float:
    quality = 1.0
    for param in params.split(";"):
        key, _, raw_value = param.strip().partition("=")
        if key.lower() == "q" and raw_value:
            try:
                quality = float(raw_value)
            except ValueError:
                quality = 0.0
            break
    return quality


def negotiate_encoding(accept_encoding: str) -> Optional[str]:
    """Pick gzip over deflate when the client accepts either, else None."""
    offered: set[str] = set()
    for token in accept_encoding.split(","):
        value = token.strip()
        if not value:
            continue
        algorithm, _, params = value.partition(";")
        algorithm = algorithm.strip().lower()
        if algorithm in ENCODING_WBITS and _accepted_quality(params) > 0:
            offered.add(algorithm)
    for encoding in ("gzip", "deflate"):
        if encoding in offered:
            return encoding
    return None


def maybe_compress(
    stream: BodyStream, accept_encoding: str
) -> tuple[BodyStream, Optional[str]]:
    """Wrap the stream in the negotiated compressor, if any."""
    encoding = negotiate_encoding(accept_encoding)
    if encoding is None:
        return stream, None
    return CompressedStream(stream, encoding), encoding


async def file_response(
    intent: Union[ServeFile, ServeRange],
    request: HttpRequest,
    config: ServerConfig,
) -> HttpResponse:
    """Stream a whole file (200) or a byte range of it (206)."""
    headers = {
        **intent.headers,
        "Content-Type": content_type_for_path(intent.path),
        "Accept-Ranges": "bytes",
        **SECURITY_HEADERS,
    }
    byte_range = intent.byte_range if isinstance(intent, ServeRange) else None

    if FILE_LOGGER.logger.isEnabledFor(logging.DEBUG):
        FILE_LOGGER.debug(
            "File read started",
            extra={"event": "file_read_started", "path": intent.path.as_posix()},
        )
    # full reads stop at the stat size so a growing file cannot overrun Content-Length
    read_span = byte_range or ByteRange(0, intent.meta.size - 1)
    stream: BodyStream = await open_stream(intent.path, read_span)

    status_line = "HTTP/1.1 200 OK"
    content_length = intent.meta.size
    if byte_range is not None:
        status_line = "HTTP/1.1 206 Partial Content"
        headers["Content-Range"] = byte_range.content_range(intent.meta.size)
        content_length = byte_range.length

    encoding = None
    # ranges are never compressed so Content-Range keeps describing the body
    if byte_range is None and config.is_compressible(intent.path):
        headers["Vary"] = "Accept-Encoding"
        # compressed bodies are chunked, which HTTP/1.0 clients cannot read
        if request.version != "HTTP/1.0":
            stream, encoding = maybe_compress(
                stream, request.headers.get("accept-encoding", "")
            )
    if encoding is not None:
        headers["Content-Encoding"] = encoding
        FILE_LOGGER.info(
            "Compression applied",
            extra={
                "event": "compression_applied",
                "path": intent.path.as_posix(),
                "encoding": encoding,
            },
        )

    return HttpResponse(
        status_line,
        headers,
        b"",
        should_close(request.headers, request.version),
        body_iter=stream,
        use_chunked=encoding is not None,
        content_length=None if encoding is not None else content_length,
    )
