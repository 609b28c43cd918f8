"""
Fire-and-forget tasks for best-effort side effects.

Usage logs and cache writes must never delay or fail the response they
belong to. They run as asyncio tasks held in a set until they finish; a
failure is logged and counted, nothing else.
"""
import asyncio
from typing import Awaitable, Set

from kupado.core.logging import get_logger
from kupado.core.metrics import record_background_failure

logger = get_logger(__name__)


class BackgroundTasks:
    def __init__(self) -> None:
        self._tasks: Set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Awaitable[None], name: str) -> asyncio.Task:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(lambda t: self._finished(t, name))
        return task

    def _finished(self, task: asyncio.Task, name: str) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            record_background_failure(name)
            logger.warning(
                "background_task_failed",
                task=name,
                error=str(exc),
                error_type=type(exc).__name__,
            )

    async def drain(self) -> None:
        """Wait for every pending task (shutdown and tests)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
