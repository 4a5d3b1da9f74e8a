"""Directory index rendering."""

import asyncio
import html
import logging
import os
import urllib.parse
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable

from server.domain.correlation_id import CorrelationLoggerAdapter
from server.domain.http_types import HttpRequest, HttpResponse
from server.domain.response_builders import html_response

LISTING_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.handlers.listing"), {}
)


@dataclass(frozen=True)
class DirectoryEntry:
    name: str
    is_directory: bool


def render_directory_listing(request_path: str, entries: Iterable[DirectoryEntry]) -> str:
    """Render an HTML index of the given entries, sorted by name."""
    base = request_path if request_path.endswith("/") else request_path + "/"
    parts = [f"<h1>Index of {html.escape(request_path)}</h1>"]
    for entry in sorted(entries, key=lambda item: item.name):
        link = urllib.parse.quote(base + entry.name)
        if entry.is_directory:
            link += "/"
        parts.append(
            f"<p><a href='{html.escape(link, quote=True)}'>"
            f"{html.escape(entry.name)}</a></p>"
        )
    return "".join(parts)


def scan_directory(path: Path) -> list[DirectoryEntry]:
    """List a directory, following symlinks to classify entries."""
    with os.scandir(path) as iterator:
        return [DirectoryEntry(item.name, item.is_dir()) for item in iterator]


async def directory_listing_response(
    request: HttpRequest, path: Path, request_path: str
) -> HttpResponse:
    """Read the directory off the event loop and render its index page."""
    entries = await asyncio.to_thread(scan_directory, path)
    LISTING_LOGGER.info(
        "Directory listed",
        extra={
            "event": "directory_listed",
            "path": path.as_posix(),
            "entries": len(entries),
        },
    )
    return html_response(
        "HTTP/1.1 200 OK", render_directory_listing(request_path, entries), request
    )
