"""Filesystem sandbox utilities for safe path resolution."""

import posixpath
from pathlib import Path


class ForbiddenPath(Exception):
    """Raised when a requested path escapes the configured sandbox."""


def normalize_url_path(url_path: str) -> str:
    """Collapse slashes and dot segments, clamping ``..`` at the root."""
    normalized = posixpath.normpath("/" + url_path.lstrip("/"))
    # normpath keeps a leading "//" as-is
    return "/" + normalized.lstrip("/")


def resolve_sandbox_path(directory: str, url_path: str) -> Path:
    """Resolve a decoded URL path inside the configured sandbox."""
    if "\x00" in url_path:
        raise ForbiddenPath

    directory_root = Path(directory).resolve()
    relative_part = normalize_url_path(url_path).lstrip("/")
    if not relative_part:
        return directory_root

    try:
        target = (directory_root / relative_part).resolve()
    except (OSError, RuntimeError) as exc:
        # RuntimeError is how resolve() reports a symlink loop before 3.13
        raise ForbiddenPath from exc
    if not (target == directory_root or directory_root in target.parents):
        raise ForbiddenPath

    return target
