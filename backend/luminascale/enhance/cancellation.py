"""Cooperative cancellation passed explicitly into every asynchronous call."""
import asyncio
from typing import Awaitable, Optional, TypeVar

from luminascale.errors import OperationCancelled

T = TypeVar("T")


class CancellationToken:
    def __init__(self):
        self._event = asyncio.Event()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self) -> None:
        self._event.set()

    async def wait(self) -> None:
        await self._event.wait()

    def raise_if_cancelled(self) -> None:
        if self.cancelled:
            raise OperationCancelled()


async def run_cancellable(
    awaitable: Awaitable[T],
    token: Optional[CancellationToken] = None,
    timeout: Optional[float] = None,
) -> T:
    """
    Await ``awaitable`` unless the token fires or the timeout expires first.
    Either way the in-flight work is cancelled. Raises OperationCancelled
    on cancellation and asyncio.TimeoutError on timeout.
    """
    work = asyncio.ensure_future(awaitable)
    waiters = {work}
    watcher = None
    if token is not None:
        if token.cancelled:
            work.cancel()
            raise OperationCancelled()
        watcher = asyncio.ensure_future(token.wait())
        waiters.add(watcher)
    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for task in waiters:
            if not task.done():
                task.cancel()
    if work in done:
        return work.result()
    if watcher is not None and watcher in done:
        raise OperationCancelled()
    raise asyncio.TimeoutError()
