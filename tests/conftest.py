"""Shared pytest fixtures: a sample document root and a server subprocess."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from tests.utils.server import (
    ServerProcessInfo,
    populate_document_root,
    running_server,
)


@pytest.fixture(autouse=True)
def enable_log_propagation():
    """Let caplog see records from the project logger tree."""
    logger = logging.getLogger("static_server")
    old_propagate = logger.propagate
    logger.propagate = True
    yield
    logger.propagate = old_propagate


@pytest.fixture(name="document_root")
def _document_root(tmp_path_factory: pytest.TempPathFactory) -> Path:
    directory = tmp_path_factory.mktemp("document-root")
    populate_document_root(directory)
    return directory


@pytest.fixture(name="log_file")
def _log_file(tmp_path_factory: pytest.TempPathFactory) -> Path:
    return tmp_path_factory.mktemp("logs") / "server.log"


@pytest.fixture(name="server_process")
def _server_process(document_root: Path, log_file: Path) -> Iterator[ServerProcessInfo]:
    """A server with default settings publishing the sample site."""
    with running_server(document_root, log_file) as info:
        yield info


@pytest.fixture()
def base_url(server_process: ServerProcessInfo) -> str:
    return server_process["base_url"]

