"""Server configuration, config file loading and CLI argument parsing."""

import argparse
import json
import os
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value is not None else default


MAX_BODY_BYTES = _env_int("STATIC_SERVER_MAX_BODY_BYTES", 1024 * 1024)
MAX_HEADER_BYTES = 64 * 1024
DEFAULT_MAX_AGE = _env_int("STATIC_SERVER_MAX_AGE", 3600)
DEFAULT_SOCKET_TIMEOUT = _env_int("STATIC_SERVER_SOCKET_TIMEOUT", 60)
DEFAULT_SHUTDOWN_GRACE_SECONDS = _env_int("STATIC_SERVER_SHUTDOWN_GRACE_SECONDS", 30)
DEFAULT_INDEX_PAGE = "index.html"
DEFAULT_COMPRESS_PATTERN = r"^\.(html?|css|js|mjs|json|txt|svg|xml|md)$"

HEADER_DELIMITER = b"\r\n\r\n"
ALLOWED_METHODS = {"GET", "HEAD"}

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
}

# config file key -> (argparse dest, accepted types)
CONFIG_FILE_KEYS: dict[str, tuple[str, tuple[type, ...]]] = {
    "host": ("host", (str,)),
    "port": ("port", (int,)),
    "root": ("directory", (str,)),
    "indexPage": ("index_page", (str,)),
    "cacheControl": ("cache_control", (bool,)),
    "expires": ("expires", (bool,)),
    "etag": ("etag", (bool,)),
    "lastModified": ("last_modified", (bool,)),
    "maxAge": ("max_age", (int,)),
    "zipMatch": ("compress_pattern", (str,)),
}


class ConfigError(Exception):
    """Raised when a configuration file cannot be used."""


@dataclass(frozen=True)
class ServerConfig:
    """Immutable settings shared read-only by every request."""

    directory: str
    host: str = "localhost"
    port: int = 4221
    index_page: str = DEFAULT_INDEX_PAGE
    cache_control: bool = True
    expires: bool = True
    etag: bool = True
    last_modified: bool = True
    max_age: int = DEFAULT_MAX_AGE
    compress_pattern: str = DEFAULT_COMPRESS_PATTERN
    socket_timeout: int = DEFAULT_SOCKET_TIMEOUT
    shutdown_grace_seconds: int = DEFAULT_SHUTDOWN_GRACE_SECONDS

    def is_compressible(self, path: Path) -> bool:
        """Return True when the file extension matches the compress pattern."""
        return re.search(self.compress_pattern, path.suffix.lower()) is not None


def load_config_file(config_path: str) -> dict[str, Any]:
    """Read a JSON config file and map its keys onto argument names."""
    try:
        with open(config_path, "r", encoding="utf-8") as config_file:
            raw = json.load(config_file)
    except OSError as exc:
        raise ConfigError(f"cannot read {config_path}: {exc.strerror}") from exc
    except json.JSONDecodeError as exc:
        raise ConfigError(f"invalid JSON in {config_path}: {exc.msg}") from exc

    if not isinstance(raw, dict):
        raise ConfigError(f"{config_path} must contain a JSON object")

    values: dict[str, Any] = {}
    for key, value in raw.items():
        if key not in CONFIG_FILE_KEYS:
            raise ConfigError(f"unknown config key: {key}")
        dest, accepted = CONFIG_FILE_KEYS[key]
        # bool is an int subclass
        if isinstance(value, bool) and bool not in accepted:
            raise ConfigError(f"config key {key} has the wrong type")
        if not isinstance(value, accepted):
            raise ConfigError(f"config key {key} has the wrong type")
        if isinstance(value, int) and not isinstance(value, bool) and value < 0:
            raise ConfigError(f"config key {key} must not be negative")
        if dest == "directory":
            # relative roots are taken from the config file's own folder
            value = str(Path(config_path).resolve().parent / value)
        values[dest] = value
    return values


def _non_negative_int(value: str) -> int:
    number = int(value)
    if number < 0:
        raise argparse.ArgumentTypeError(f"expected a non-negative integer: {value}")
    return number


def _regex(value: str) -> str:
    try:
        re.compile(value)
    except re.error as exc:
        raise argparse.ArgumentTypeError(f"invalid pattern {value!r}: {exc}") from exc
    return value


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Static file server configuration")
    parser.add_argument("--config", help="Path to a JSON configuration file")
    parser.add_argument("--directory", default=".", help="Root directory to serve")
    parser.add_argument("--host", default="localhost")
    parser.add_argument("--port", type=int, default=4221)
    parser.add_argument("--index-page", default=DEFAULT_INDEX_PAGE)
    parser.add_argument(
        "--cache-control",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Send Cache-Control headers",
    )
    parser.add_argument(
        "--expires",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Send Expires headers",
    )
    parser.add_argument(
        "--etag",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Send weak ETag validators",
    )
    parser.add_argument(
        "--last-modified",
        action=argparse.BooleanOptionalAction,
        default=True,
        help="Send Last-Modified validators",
    )
    parser.add_argument(
        "--max-age",
        type=_non_negative_int,
        default=DEFAULT_MAX_AGE,
        help="Cache lifetime in seconds for Cache-Control and Expires",
    )
    parser.add_argument(
        "--compress-pattern",
        type=_regex,
        default=DEFAULT_COMPRESS_PATTERN,
        help="Regex matched against file extensions eligible for compression",
    )
    parser.add_argument(
        "--socket-timeout",
        type=_non_negative_int,
        default=DEFAULT_SOCKET_TIMEOUT,
        help="Idle keep-alive timeout in seconds",
    )
    parser.add_argument(
        "--shutdown-grace-seconds",
        type=_non_negative_int,
        default=DEFAULT_SHUTDOWN_GRACE_SECONDS,
        help="Grace period in seconds for graceful shutdown",
    )
    default_log_level = os.getenv("STATIC_SERVER_LOG_LEVEL", "INFO").upper()
    default_destination = os.getenv("STATIC_SERVER_LOG_DESTINATION", "stdout")
    parser.add_argument(
        "--log-level",
        default=default_log_level,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        type=str.upper,
    )
    parser.add_argument(
        "--log-destination",
        default=default_destination,
        help="stdout or a file path",
    )
    return parser


def parse_cli_args(argv: list[str]) -> argparse.Namespace:
    """Return parsed CLI arguments layered over an optional config file."""
    parser = _build_parser()
    preliminary, _ = parser.parse_known_args(argv)
    if preliminary.config:
        try:
            file_values = load_config_file(preliminary.config)
        except ConfigError as exc:
            parser.error(str(exc))
        if "compress_pattern" in file_values:
            try:
                _regex(file_values["compress_pattern"])
            except argparse.ArgumentTypeError as exc:
                parser.error(str(exc))
        parser.set_defaults(**file_values)
    return parser.parse_args(argv)


def build_server_config(args: argparse.Namespace) -> ServerConfig:
    """Freeze parsed arguments into the configuration used by the core."""
    root = Path(args.directory).resolve()
    return ServerConfig(
        directory=str(root),
        host=args.host,
        port=args.port,
        index_page=args.index_page,
        cache_control=args.cache_control,
        expires=args.expires,
        etag=args.etag,
        last_modified=args.last_modified,
        max_age=args.max_age,
        compress_pattern=args.compress_pattern,
        socket_timeout=args.socket_timeout,
        shutdown_grace_seconds=args.shutdown_grace_seconds,
    )
