"""Unit tests for response serialization onto a stream writer."""

import asyncio
from pathlib import Path

import pytest

from server.domain.correlation_id import clear_correlation_id, set_correlation_id
from server.domain.http_types import HttpResponse
from server.handlers.file_handler import CHUNK_SIZE, CompressedStream, open_stream
from server.pipeline.io import send_response


class FakeWriter:
    """Collects written bytes in place of an asyncio.StreamWriter."""

    def __init__(self):
        self.data = bytearray()
        self.drains = 0

    def write(self, data: bytes) -> None:
        self.data.extend(data)

    async def drain(self) -> None:
        self.drains += 1


class ListStream:
    """In-memory body stream that records whether it was closed."""

    def __init__(self, chunks):
        self._chunks = list(chunks)
        self.closed = False

    def __aiter__(self):
        return self

    async def __anext__(self) -> bytes:
        if self.closed or not self._chunks:
            raise StopAsyncIteration
        return self._chunks.pop(0)

    async def aclose(self) -> None:
        self.closed = True


def _send(response: HttpResponse, include_body: bool = True):
    writer = FakeWriter()
    written = asyncio.run(send_response(writer, response, include_body))
    head, _, body = bytes(writer.data).partition(b"\r\n\r\n")
    return head.decode("iso-8859-1").split("\r\n"), body, written


def test_in_memory_body_gets_content_length():
    clear_correlation_id()
    lines, body, written = _send(
        HttpResponse("HTTP/1.1 200 OK", {"Content-Type": "text/plain"}, b"abc", False)
    )
    assert lines[0] == "HTTP/1.1 200 OK"
    assert "Content-Length: 3" in lines
    assert "Connection: close" not in lines
    assert body == b"abc"
    assert written == 3


def test_streamed_body_uses_declared_length():
    stream = ListStream([b"hello ", b"world"])
    lines, body, written = _send(
        HttpResponse(
            "HTTP/1.1 200 OK", {}, b"", False, body_iter=stream, content_length=11
        )
    )
    assert "Content-Length: 11" in lines
    assert body == b"hello world"
    assert written == 11
    assert stream.closed


def test_chunked_body_framing():
    stream = ListStream([b"abc", b"", b"0123456789abcdef"])
    lines, body, _ = _send(
        HttpResponse(
            "HTTP/1.1 200 OK", {}, b"", False, body_iter=stream, use_chunked=True
        )
    )
    assert "Transfer-Encoding: chunked" in lines
    assert not any(line.startswith("Content-Length") for line in lines)
    assert body == b"3\r\nabc\r\n10\r\n0123456789abcdef\r\n0\r\n\r\n"


def test_head_request_sends_headers_and_closes_stream():
    stream = ListStream([b"never sent"])
    lines, body, written = _send(
        HttpResponse(
            "HTTP/1.1 200 OK", {}, b"", False, body_iter=stream, content_length=10
        ),
        include_body=False,
    )
    assert "Content-Length: 10" in lines
    assert body == b""
    assert written == 0
    assert stream.closed


def test_not_modified_has_no_framing_headers():
    lines, body, _ = _send(
        HttpResponse("HTTP/1.1 304 Not Modified", {"ETag": 'W/"1-1"'}, b"", False)
    )
    assert not any(line.startswith("Content-Length") for line in lines)
    assert 'ETag: W/"1-1"' in lines
    assert body == b""


def test_close_and_request_id_headers():
    set_correlation_id("req-42")
    try:
        lines, _, _ = _send(HttpResponse("HTTP/1.1 400 Bad Request", {}, b"", True))
    finally:
        clear_correlation_id()
    assert "Connection: close" in lines
    assert "X-Request-ID: req-42" in lines


class ResettingWriter(FakeWriter):
    """A writer whose peer has already gone away."""

    async def drain(self) -> None:
        raise ConnectionResetError("Connection reset by peer")


@pytest.mark.parametrize("compress", [False, True])
def test_client_abort_mid_stream_closes_file(tmp_path: Path, compress):
    target = tmp_path / "big.txt"
    target.write_bytes(b"x" * (CHUNK_SIZE * 3))

    async def run():
        file_stream = await open_stream(target)
        body = CompressedStream(file_stream, "gzip") if compress else file_stream
        response = HttpResponse(
            "HTTP/1.1 200 OK",
            {},
            b"",
            False,
            body_iter=body,
            use_chunked=compress,
            content_length=None if compress else CHUNK_SIZE * 3,
        )
        with pytest.raises(ConnectionResetError):
            await send_response(ResettingWriter(), response)
        return file_stream

    assert asyncio.run(run()).closed
