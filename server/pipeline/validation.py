"""Request validation utilities for the static file server."""

from typing import Optional

from server.domain.http_types import HttpRequest, HttpResponse
from server.domain.response_builders import method_not_allowed_response


class RequestEntityTooLarge(Exception):
    """Raised when a request body exceeds configured limits."""


def enforce_allowed_method(
    request: HttpRequest, allowed_methods: set[str]
) -> Optional[HttpResponse]:
    """Ensure the HTTP method is part of the supported allowlist."""
    if request.method in allowed_methods:
        return None
    return method_not_allowed_response(request, allowed_methods)


def validate_request(
    request: HttpRequest, allowed_methods: set[str]
) -> Optional[HttpResponse]:
    """Return an error response when the request fails validation checks."""
    return enforce_allowed_method(request, allowed_methods)
