"""Server lifecycle state management."""

import asyncio
import logging

from server.domain.correlation_id import CorrelationLoggerAdapter

LIFECYCLE_LOGGER = CorrelationLoggerAdapter(
    logging.getLogger("static_server.lifecycle"), {}
)


class ServerLifecycle:
    """Tracks connection tasks and coordinates graceful shutdown."""

    def __init__(self) -> None:
        self._draining_event = asyncio.Event()
        self._workers: set[asyncio.Task] = set()
        self._idle: set[asyncio.Task] = set()

    def is_draining(self) -> bool:
        """Check if the server is in draining mode."""
        return self._draining_event.is_set()

    async def wait_for_drain(self) -> None:
        """Suspend until shutdown has been requested."""
        await self._draining_event.wait()

    def register_worker(self, task: asyncio.Task) -> None:
        """Register a connection task for tracking."""
        self._workers.add(task)

    def cleanup_worker(self, task: asyncio.Task) -> None:
        """Remove a connection task from tracking."""
        self._workers.discard(task)
        self._idle.discard(task)

    def has_worker(self, task: asyncio.Task) -> bool:
        """Return True when the task is currently tracked."""
        return task in self._workers

    def active_worker_count(self) -> int:
        """Return the number of currently tracked connection tasks."""
        return len(self._workers)

    def mark_idle(self, task: asyncio.Task) -> None:
        """Flag a task as waiting for its next request."""
        self._idle.add(task)

    def mark_busy(self, task: asyncio.Task) -> None:
        """Flag a task as serving a request."""
        self._idle.discard(task)

    def begin_draining(self) -> None:
        """Signal shutdown and drop keep-alive connections that sit idle."""
        if self._draining_event.is_set():
            return
        self._draining_event.set()
        for task in list(self._idle):
            task.cancel()
        LIFECYCLE_LOGGER.info(
            "Beginning graceful shutdown", extra={"event": "shutdown_started"}
        )

    async def wait_for_workers(self, timeout: float) -> bool:
        """Wait for in-flight requests, cancelling whatever outlives the timeout."""
        pending = {task for task in self._workers if not task.done()}
        if not pending:
            return True
        _, still_running = await asyncio.wait(pending, timeout=timeout)
        if not still_running:
            return True
        LIFECYCLE_LOGGER.warning(
            "Shutdown timeout exceeded",
            extra={
                "event": "shutdown_timeout",
                "remaining_workers": len(still_running),
            },
        )
        for task in still_running:
            task.cancel()
        await asyncio.gather(*still_running, return_exceptions=True)
        return False
