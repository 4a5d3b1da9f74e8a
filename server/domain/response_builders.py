"""Pure HTTP response builders."""

import html
from typing import Optional

from server.bootstrap.config import SECURITY_HEADERS
from server.domain.byte_range import unsatisfied_content_range
from server.domain.http_types import HttpRequest, HttpResponse, should_close


def _close_preference(request: HttpRequest) -> bool:
    return should_close(request.headers, request.version)


def html_response(
    status_line: str,
    markup: str,
    request: HttpRequest,
    extra_headers: Optional[dict[str, str]] = None,
) -> HttpResponse:
    """Return a text/html response with an in-memory body."""
    headers = {
        "Content-Type": "text/html; charset=utf-8",
        **(extra_headers or {}),
        **SECURITY_HEADERS,
    }
    return HttpResponse(
        status_line, headers, markup.encode("utf-8"), _close_preference(request)
    )


def not_found_response(request: HttpRequest) -> HttpResponse:
    """Return a 404 page naming the URL the client asked for."""
    markup = (
        "<h1>Not Found</h1>"
        f"<p>The requested URL {html.escape(request.target)} "
        "was not found on this server.</p>"
    )
    return html_response("HTTP/1.1 404 Not Found", markup, request)


def redirect_response(request: HttpRequest, location: str) -> HttpResponse:
    """Return a 301 pointing at the canonical directory URL."""
    escaped = html.escape(location, quote=True)
    markup = f"Redirecting to <a href='{escaped}'>{escaped}</a>"
    return html_response(
        "HTTP/1.1 301 Moved Permanently",
        markup,
        request,
        {"Location": location},
    )


def not_modified_response(
    request: HttpRequest, fresh_headers: dict[str, str]
) -> HttpResponse:
    """Return a bodiless 304 carrying the current validators."""
    headers = {**fresh_headers, **SECURITY_HEADERS}
    return HttpResponse(
        "HTTP/1.1 304 Not Modified", headers, b"", _close_preference(request)
    )


def range_not_satisfiable_response(
    request: HttpRequest, total_size: int, fresh_headers: dict[str, str]
) -> HttpResponse:
    """Return an empty 416 advertising the resource size."""
    headers = {
        **fresh_headers,
        "Accept-Ranges": "bytes",
        "Content-Range": unsatisfied_content_range(total_size),
        **SECURITY_HEADERS,
    }
    return HttpResponse(
        "HTTP/1.1 416 Range Not Satisfiable",
        headers,
        b"",
        _close_preference(request),
    )


def server_error_response(request: HttpRequest, message: str) -> HttpResponse:
    """Return a 500 whose body is the error text."""
    headers = {"Content-Type": "text/plain; charset=utf-8", **SECURITY_HEADERS}
    return HttpResponse(
        "HTTP/1.1 500 Internal Server Error",
        headers,
        message.encode("utf-8"),
        _close_preference(request),
    )


def bad_request_response() -> HttpResponse:
    """Produce a 400 response that closes the connection."""
    return HttpResponse(
        "HTTP/1.1 400 Bad Request", SECURITY_HEADERS.copy(), b"", True
    )


def entity_too_large_response() -> HttpResponse:
    """Produce a 413 response that always closes the connection."""
    return HttpResponse(
        "HTTP/1.1 413 Payload Too Large", SECURITY_HEADERS.copy(), b"", True
    )


def method_not_allowed_response(
    request: HttpRequest, allowed_methods: set[str]
) -> HttpResponse:
    """Produce a 405 response enumerating the supported HTTP methods."""
    allow_header = ", ".join(sorted(allowed_methods))
    headers = {"Allow": allow_header, **SECURITY_HEADERS}
    return HttpResponse(
        "HTTP/1.1 405 Method Not Allowed",
        headers,
        b"",
        _close_preference(request),
    )
