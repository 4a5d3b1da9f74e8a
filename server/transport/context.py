"""Dependencies handed to every connection task."""

from dataclasses import dataclass
from typing import Optional

from server.bootstrap.config import ServerConfig
from server.lifecycle.state import ServerLifecycle


@dataclass(frozen=True)
class ConnectionContext:
    config: ServerConfig
    lifecycle: Optional[ServerLifecycle] = None
