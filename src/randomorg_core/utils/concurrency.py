"""Async signalling primitives shared by the dispatcher and the caches."""

from __future__ import annotations

import asyncio
from collections import deque
from typing import Generic, TypeVar

T = TypeVar("T")


class WakeSignal:
    """Edge-style wake-up signal backed by ``asyncio.Event``.

    ``notify()`` may be called any number of times before the waiter gets to
    run; the waiter sees a single wake-up and the signal is re-armed.
    """

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def notify(self) -> None:
        self._event.set()

    @property
    def is_set(self) -> bool:
        return self._event.is_set()

    async def wait(self, timeout_seconds: float | None = None) -> bool:
        """Wait for a notification; return ``False`` when the timeout elapsed first."""

        if timeout_seconds is not None and timeout_seconds <= 0:
            notified = self._event.is_set()
            self._event.clear()
            return notified
        try:
            if timeout_seconds is None:
                await self._event.wait()
            else:
                await asyncio.wait_for(self._event.wait(), timeout_seconds)
        except TimeoutError:
            return False
        finally:
            self._event.clear()
        return True


class WaiterQueue(Generic[T]):
    """FIFO queue of futures handed values in arrival order."""

    def __init__(self) -> None:
        self._waiters: deque[asyncio.Future[T]] = deque()

    def __len__(self) -> int:
        self._discard_done()
        return len(self._waiters)

    def enqueue(self) -> asyncio.Future[T]:
        future: asyncio.Future[T] = asyncio.get_running_loop().create_future()
        self._waiters.append(future)
        return future

    def serve(self, value: T) -> bool:
        """Resolve the oldest pending waiter; return ``False`` if none is waiting."""

        self._discard_done()
        if not self._waiters:
            return False
        self._waiters.popleft().set_result(value)
        return True

    def fail_all(self, error: BaseException) -> int:
        failed = 0
        while self._waiters:
            future = self._waiters.popleft()
            if not future.done():
                future.set_exception(error)
                failed += 1
        return failed

    def _discard_done(self) -> None:
        # Cancelled waiters stay in the deque until they reach the head.
        while self._waiters and self._waiters[0].done():
            self._waiters.popleft()


__all__ = ["WaiterQueue", "WakeSignal"]
