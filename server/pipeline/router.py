"""Request routing logic."""

import asyncio
import logging
import os
import posixpath
import urllib.parse
from pathlib import Path
from typing import Optional

from server.bootstrap.config import ServerConfig
from server.domain.byte_range import UnsatisfiableRange, parse_range
from server.domain.correlation_id import CorrelationLoggerAdapter
from server.domain.freshness import compute_fresh_headers, is_fresh
from server.domain.http_types import HttpRequest, HttpResponse
from server.domain.intents import (
    DirectoryListing,
    NotFound,
    NotModified,
    RangeNotSatisfiable,
    Redirect,
    ResourceMeta,
    ResponseIntent,
    ServeFile,
    ServeRange,
    ServerError,
)
from server.domain.response_builders import (
    not_found_response,
    not_modified_response,
    range_not_satisfiable_response,
    redirect_response,
    server_error_response,
)
from server.domain.sandbox import ForbiddenPath, resolve_sandbox_path
from server.handlers.directory_listing import directory_listing_response
from server.handlers.file_handler import file_response

ROUTER_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.pipeline.router"), {}
)


async def stat_resource(path: Path) -> Optional[ResourceMeta]:
    """Stat a path off the event loop, returning None when it is missing."""
    try:
        stat_result = await asyncio.to_thread(os.stat, path)
    except OSError:
        return None
    return ResourceMeta.from_stat(stat_result)


def _redirect_location(request: HttpRequest) -> str:
    location = urllib.parse.urlsplit(request.target).path + "/"
    if request.query:
        location += "?" + request.query
    return location


def _file_intent(
    request: HttpRequest, path: Path, meta: ResourceMeta, config: ServerConfig
) -> ResponseIntent:
    fresh_headers = compute_fresh_headers(meta, config)
    if is_fresh(request.headers, fresh_headers):
        return NotModified(fresh_headers)

    range_header = request.headers.get("range")
    if range_header is None:
        return ServeFile(path, meta, fresh_headers)
    try:
        byte_range = parse_range(range_header, meta.size)
    except UnsatisfiableRange as exc:
        return RangeNotSatisfiable(exc.total_size, fresh_headers)
    return ServeRange(path, meta, fresh_headers, byte_range)


async def _index_intent(
    request: HttpRequest, directory_path: Path, config: ServerConfig
) -> ResponseIntent:
    index_url = posixpath.join(request.path, config.index_page)
    try:
        index_path = resolve_sandbox_path(config.directory, index_url)
    except ForbiddenPath:
        return DirectoryListing(directory_path, request.path)
    index_meta = await stat_resource(index_path)
    if index_meta is None or index_meta.is_directory:
        return DirectoryListing(directory_path, request.path)
    return _file_intent(request, index_path, index_meta, config)


async def resolve_intent(request: HttpRequest, config: ServerConfig) -> ResponseIntent:
    """Decide the single outcome for a request from the filesystem state."""
    try:
        target = resolve_sandbox_path(config.directory, request.path)
    except ForbiddenPath:
        ROUTER_LOGGER.warning(
            "Forbidden path access blocked",
            extra={"event": "forbidden_path", "route": request.path},
        )
        return NotFound(request.target)

    meta = await stat_resource(target)
    if meta is None:
        ROUTER_LOGGER.info(
            "File not found",
            extra={"event": "file_not_found", "route": request.path},
        )
        return NotFound(request.target)

    if meta.is_directory:
        if not request.path.endswith("/"):
            return Redirect(_redirect_location(request))
        return await _index_intent(request, target, config)

    return _file_intent(request, target, meta, config)


async def build_response(
    intent: ResponseIntent, request: HttpRequest, config: ServerConfig
) -> HttpResponse:
    """Turn a routing decision into the response that carries it out."""
    if isinstance(intent, (ServeFile, ServeRange)):
        return await file_response(intent, request, config)
    if isinstance(intent, NotModified):
        ROUTER_LOGGER.info(
            "Resource not modified",
            extra={"event": "not_modified", "route": request.path},
        )
        return not_modified_response(request, intent.headers)
    if isinstance(intent, RangeNotSatisfiable):
        ROUTER_LOGGER.info(
            "Range not satisfiable",
            extra={
                "event": "range_not_satisfiable",
                "route": request.path,
                "range": request.headers.get("range", ""),
            },
        )
        return range_not_satisfiable_response(
            request, intent.total_size, intent.headers
        )
    if isinstance(intent, Redirect):
        return redirect_response(request, intent.location)
    if isinstance(intent, DirectoryListing):
        return await directory_listing_response(
            request, intent.path, intent.request_path
        )
    if isinstance(intent, ServerError):
        return server_error_response(request, intent.message)
    return not_found_response(request)


async def route_request(request: HttpRequest, config: ServerConfig) -> HttpResponse:
    """Route the request and return exactly one response for it."""
    intent = await resolve_intent(request, config)
    if ROUTER_LOGGER.logger.isEnabledFor(logging.DEBUG):
        ROUTER_LOGGER.debug(
            "Route resolved",
            extra={
                "event": "route_resolved",
                "route": request.path,
                "intent": type(intent).__name__,
            },
        )
    try:
        return await build_response(intent, request, config)
    except OSError as error:
        ROUTER_LOGGER.error(
            "Failed to serve resource",
            extra={
                "event": "server_error",
                "route": request.path,
                "error_type": type(error).__name__,
            },
            exc_info=True,
        )
        message = f"{type(error).__name__}: {error.strerror or error}"
        return await build_response(ServerError(message), request, config)
