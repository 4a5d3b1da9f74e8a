"""Routing outcomes and per-request resource metadata."""

import os
import stat
from dataclasses import dataclass
from pathlib import Path
from typing import Union

from server.domain.byte_range import ByteRange


@dataclass(frozen=True)
class ResourceMeta:
    """Filesystem facts about a resource, taken fresh for each request."""

    size: int
    mtime: float
    mtime_ms: int
    is_directory: bool

    @classmethod
    def from_stat(cls, stat_result: os.stat_result) -> "ResourceMeta":
        """Build metadata from an ``os.stat`` result."""
        return cls(
            size=stat_result.st_size,
            mtime=stat_result.st_mtime,
            mtime_ms=stat_result.st_mtime_ns // 1_000_000,
            is_directory=stat.S_ISDIR(stat_result.st_mode),
        )


@dataclass(frozen=True)
class ServeFile:
    """Send the whole file with a 200."""

    path: Path
    meta: ResourceMeta
    headers: dict[str, str]


@dataclass(frozen=True)
class ServeRange:
    """Send one byte range of the file with a 206."""

    path: Path
    meta: ResourceMeta
    headers: dict[str, str]
    byte_range: ByteRange


@dataclass(frozen=True)
class NotModified:
    """The client copy is still fresh; answer 304."""

    headers: dict[str, str]


@dataclass(frozen=True)
class Redirect:
    """Directory requested without a trailing slash; answer 301."""

    location: str


@dataclass(frozen=True)
class DirectoryListing:
    """Directory with no index page; render its entries."""

    path: Path
    request_path: str


@dataclass(frozen=True)
class NotFound:
    """Missing resource or a path outside the root; answer 404."""

    url: str


@dataclass(frozen=True)
class RangeNotSatisfiable:
    """Range header that cannot be served; answer 416."""

    total_size: int
    headers: dict[str, str]


@dataclass(frozen=True)
class ServerError:
    """Filesystem failure while serving; answer 500."""

    message: str


ResponseIntent = Union[
    ServeFile,
    ServeRange,
    NotModified,
    Redirect,
    DirectoryListing,
    NotFound,
    RangeNotSatisfiable,
    ServerError,
]
