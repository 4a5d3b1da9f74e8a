"""Shared HTTP type definitions to avoid circular imports."""

from dataclasses import dataclass
from typing import Optional, Protocol


class BodyStream(Protocol):
    """Asynchronous byte source that owns a releasable resource."""

    def __aiter__(self) -> "BodyStream": ...

    async def __anext__(self) -> bytes: ...

    async def aclose(self) -> None: ...


@dataclass
class HttpRequest:
    """Represents a parsed HTTP request."""

    method: str
    target: str
    path: str
    headers: dict[str, str]
    query: str = ""
    version: str = "HTTP/1.1"


@dataclass
class HttpResponse:
    """Represents an HTTP response to be sent to a client."""

    status_line: str
    headers: dict[str, str]
    body: bytes
    close_connection: bool
    body_iter: Optional[BodyStream] = None
    use_chunked: bool = False
    content_length: Optional[int] = None

    @property
    def status_code(self) -> int:
        """Numeric status parsed from the status line."""
        return int(self.status_line.split(" ", 2)[1])


def should_close(headers: dict[str, str], version: str = "HTTP/1.1") -> bool:
    """Determine whether the connection should be closed after responding."""
    connection = headers.get("connection", "").lower()
    if connection == "close":
        return True
    if version == "HTTP/1.0":
        return connection != "keep-alive"
    return False
