from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Set

logger = logging.getLogger(__name__)


class TimerHandle:
    """Cancellation handle for one periodic timer. Cancelling twice is harmless."""

    def __init__(self, name: str = "") -> None:
        self.name = name
        self.cancelled = False
        self._on_cancel: Optional[Callable[[], None]] = None

    def bind(self, on_cancel: Callable[[], None]) -> None:
        self._on_cancel = on_cancel

    def cancel(self) -> None:
        if self.cancelled:
            return
        self.cancelled = True
        if self._on_cancel is not None:
            self._on_cancel()
            self._on_cancel = None


class AsyncioScheduler:
    """
    Periodic timers and background tasks on the running asyncio loop.

    Every state mutation of the widget happens from callbacks scheduled here, so
    the widget never needs locks.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self._loop = loop
        self._tasks: Set[asyncio.Task] = set()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def time(self) -> float:
        return self.loop.time()

    def call_every(self, interval: float, callback: Callable[[], None], *, name: str = "") -> TimerHandle:
        handle = TimerHandle(name)
        state: dict[str, Any] = {"timer": None}

        def _fire() -> None:
            if handle.cancelled:
                return
            # Re-arm before running so a callback that cancels its own handle wins
            state["timer"] = self.loop.call_later(interval, _fire)
            try:
                callback()
            except Exception:
                logger.exception("timer callback failed name=%s", name)

        state["timer"] = self.loop.call_later(interval, _fire)
        handle.bind(lambda: state["timer"].cancel())
        return handle

    def spawn(self, coro: Awaitable[Any], *, name: str = "") -> asyncio.Task:
        task = self.loop.create_task(coro, name=name or None)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("background task failed name=%s", task.get_name(), exc_info=exc)

    async def shutdown(self) -> None:
        for task in list(self._tasks):
            task.cancel()
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        self._tasks.clear()
