"""Fire-and-forget task runner for work scheduled after a webhook is acknowledged.

Tasks run on the event loop detached from the request that scheduled them.
The runner keeps a strong reference to each task until it finishes and
reports any exception to structlog from a done-callback; nothing is sent
back to the request, which has already been answered.
"""

from __future__ import annotations

import asyncio
from collections.abc import Coroutine
from typing import Any

import structlog

logger = structlog.get_logger(__name__)


class BackgroundTaskRunner:
    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def __len__(self) -> int:
        return len(self._tasks)

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str, **context: Any) -> asyncio.Task:
        """Schedule coro and return its task. Failures are logged with context."""
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)

        def _done(t: asyncio.Task) -> None:
            self._tasks.discard(t)
            if t.cancelled():
                logger.info("background.task_cancelled", task=name, **context)
                return
            exc = t.exception()
            if exc is not None:
                logger.error(
                    "background.task_failed",
                    task=name,
                    error=str(exc),
                    exc_info=exc,
                    **context,
                )

        task.add_done_callback(_done)
        return task

    async def drain(self) -> None:
        """Wait for every pending task to finish (used by tests and shutdown)."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def shutdown(self) -> None:
        """Cancel pending tasks and wait for them to unwind."""
        for task in list(self._tasks):
            task.cancel()
        await self.drain()
