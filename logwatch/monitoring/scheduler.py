"""
Cancellable timer handles on top of the asyncio event loop.

``cancel()`` is synchronous: once it returns, the callback will not start,
and a coroutine already spawned by the timer is cancelled.
"""

import asyncio
from typing import Any, Awaitable, Callable

from logwatch.shared.logger import get_logger

logger = get_logger()

Callback = Callable[[], Awaitable[Any] | Any]


class ScheduledTask:
    """Run a callback once after ``delay`` seconds."""

    def __init__(
        self,
        delay: float,
        callback: Callback,
        name: str = "scheduled-task",
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.delay = delay
        self.name = name
        self._callback = callback
        self._loop = loop or asyncio.get_running_loop()
        self._task: asyncio.Task | None = None
        self._cancelled = False
        self._fired = False
        self._timer = self._loop.call_later(delay, self._fire)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def pending(self) -> bool:
        """True until the callback has started or the handle was cancelled."""
        return not self._cancelled and not self._fired

    @property
    def task(self) -> asyncio.Task | None:
        """Task running an async callback, once fired."""
        return self._task

    def _fire(self) -> None:
        if self._cancelled:
            return
        self._fired = True
        try:
            result = self._callback()
        except Exception as e:
            logger.error(f"{self.name} failed: {e}", exc_info=True)
            return
        if asyncio.iscoroutine(result):
            self._task = self._loop.create_task(result, name=self.name)
            self._task.add_done_callback(self._log_failure)

    def _log_failure(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error(f"{self.name} failed: {exc}")

    def cancel(self) -> None:
        """Cancel the timer and any coroutine it started."""
        self._cancelled = True
        self._timer.cancel()
        if self._task is not None and not self._task.done():
            if self._task is not asyncio.current_task(self._loop):
                self._task.cancel()


class PeriodicTask:
    """Run a synchronous callback every ``interval`` seconds until cancelled."""

    def __init__(
        self,
        interval: float,
        callback: Callable[[], Any],
        name: str = "periodic-task",
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.interval = interval
        self.name = name
        self._callback = callback
        self._loop = loop or asyncio.get_running_loop()
        self._cancelled = False
        self._timer = self._loop.call_later(interval, self._tick)

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def _tick(self) -> None:
        if self._cancelled:
            return
        try:
            self._callback()
        except Exception as e:
            logger.error(f"{self.name} failed: {e}")
        if not self._cancelled:
            self._timer = self._loop.call_later(self.interval, self._tick)

    def cancel(self) -> None:
        self._cancelled = True
        self._timer.cancel()
