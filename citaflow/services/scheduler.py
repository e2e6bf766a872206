"""Clock and scheduled-callback primitives shared by the inbound pipeline.

Components never read the wall clock or touch the event loop directly; they receive a
``Clock`` and a ``Scheduler`` so tests can drive time by hand.
"""

import asyncio
import time
from typing import Any, Callable, Coroutine, Protocol

from citaflow.logging_config import get_logger

logger = get_logger("scheduler")


class Clock(Protocol):
    def now(self) -> float:
        """Seconds since the epoch."""
        ...


class TimerHandle(Protocol):
    def cancel(self) -> None: ...


class SystemClock:
    def now(self) -> float:
        return time.time()


class Scheduler:
    """Timers and fire-and-forget tasks on the running asyncio loop."""

    def __init__(self) -> None:
        self._tasks: set[asyncio.Task] = set()

    def call_later(self, delay: float, callback: Callable[[], None]) -> TimerHandle:
        return asyncio.get_running_loop().call_later(delay, callback)

    def spawn(self, coro: Coroutine[Any, Any, Any]) -> asyncio.Task:
        # The loop only keeps weak references to tasks.
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(
                "Background task failed",
                extra={"context": {"error": str(exc)}},
                exc_info=exc,
            )

    @property
    def pending(self) -> int:
        return len(self._tasks)

    async def drain(self) -> None:
        """Wait until every spawned task, including ones spawned meanwhile, is done."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
