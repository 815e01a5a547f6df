"""Schedule-with-cancel-previous timer for debounced work."""
import asyncio
import logging
from typing import Awaitable, Callable, Optional, Union

logger = logging.getLogger("luminascale.scheduler")

Callback = Callable[[], Union[None, Awaitable[None]]]


class DebounceScheduler:
    """
    Runs at most one callback per settle window.

    Each ``schedule`` cancels the pending callback, if any, and restarts the
    window. A callback may return a coroutine; it then runs as a task and the
    scheduler stays busy until it finishes. Must be used from inside a
    running event loop.
    """

    def __init__(self, delay: float):
        self.delay = delay
        self._handle: Optional[asyncio.TimerHandle] = None
        self._callback: Optional[Callback] = None
        self._task: Optional[asyncio.Task] = None
        self._idle = asyncio.Event()
        self._idle.set()

    @property
    def pending(self) -> bool:
        """True while a callback is waiting for its window or still running."""
        return self._handle is not None or self._task is not None

    def schedule(self, callback: Callback) -> None:
        loop = asyncio.get_running_loop()
        if self._handle is not None:
            self._handle.cancel()
            logger.debug("Replaced pending callback")
        self._callback = callback
        self._idle.clear()
        self._handle = loop.call_later(self.delay, self._fire)

    def cancel(self) -> None:
        """Drop the pending callback and abandon a running one."""
        if self._handle is not None:
            self._handle.cancel()
        if self._task is not None:
            self._task.cancel()
        self._handle = None
        self._callback = None
        self._task = None
        self._idle.set()

    def flush(self) -> bool:
        """Run the pending callback now. Returns False if nothing was pending."""
        if self._handle is None:
            return False
        self._handle.cancel()
        self._fire()
        return True

    async def wait_idle(self) -> None:
        await self._idle.wait()

    def _fire(self) -> None:
        callback = self._callback
        self._handle = None
        self._callback = None
        if callback is None:
            self._settle()
            return
        try:
            result = callback()
        except Exception:
            self._settle()
            raise
        if asyncio.iscoroutine(result):
            task = asyncio.ensure_future(result)
            self._task = task
            task.add_done_callback(self._task_done)
        else:
            self._settle()

    def _task_done(self, task: asyncio.Task) -> None:
        if task is self._task:
            self._task = None
        if not task.cancelled() and task.exception() is not None:
            logger.error("Deferred callback failed: %s", task.exception())
        self._settle()

    def _settle(self) -> None:
        if self._handle is None and self._task is None:
            self._idle.set()
