"""Cache validation headers and conditional request evaluation."""

import time
from email.utils import formatdate
from typing import Optional

from server.bootstrap.config import ServerConfig
from server.domain.intents import ResourceMeta


def generate_etag(meta: ResourceMeta) -> str:
    """Build a weak ETag from the resource size and modification time."""
    return f'W/"{meta.size:x}-{meta.mtime_ms:x}"'


def http_date(timestamp: float) -> str:
    """Format a POSIX timestamp as an RFC 1123 date in GMT."""
    return formatdate(timestamp, usegmt=True)


def compute_fresh_headers(
    meta: ResourceMeta, config: ServerConfig, now: Optional[float] = None
) -> dict[str, str]:
    """Return the cache headers enabled by the server configuration.

    The result is a plain mapping so conditional request evaluation never has
    to read headers back from an outgoing response.
    """
    headers: dict[str, str] = {}
    if config.expires:
        current = time.time() if now is None else now
        headers["Expires"] = http_date(current + config.max_age)
    if config.cache_control:
        headers["Cache-Control"] = f"public, max-age={config.max_age}"
    if config.last_modified:
        headers["Last-Modified"] = http_date(meta.mtime)
    if config.etag:
        headers["ETag"] = generate_etag(meta)
    return headers


def is_fresh(request_headers: dict[str, str], fresh_headers: dict[str, str]) -> bool:
    """Return True when every validator sent by the client still matches."""
    none_match = request_headers.get("if-none-match")
    modified_since = request_headers.get("if-modified-since")
    if not (none_match or modified_since):
        return False
    if none_match and none_match != fresh_headers.get("ETag"):
        return False
    if modified_since and modified_since != fresh_headers.get("Last-Modified"):
        return False
    return True
