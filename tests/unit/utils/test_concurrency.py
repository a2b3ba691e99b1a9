"""Regression tests for the wake signal and FIFO waiter queue."""

from __future__ import annotations

import asyncio

import pytest

from randomorg_core.utils.concurrency import WaiterQueue, WakeSignal


async def test_wake_signal_times_out_without_notification() -> None:
    signal = WakeSignal()

    assert await signal.wait(0.01) is False
    assert signal.is_set is False


async def test_notifications_before_wait_collapse_into_one_wakeup() -> None:
    signal = WakeSignal()
    signal.notify()
    signal.notify()

    assert await signal.wait(1.0) is True
    assert signal.is_set is False
    assert await signal.wait(0) is False


async def test_wake_signal_releases_blocked_waiter() -> None:
    signal = WakeSignal()
    waiter = asyncio.create_task(signal.wait())
    await asyncio.sleep(0)

    signal.notify()

    assert await asyncio.wait_for(waiter, timeout=1.0) is True


async def test_waiter_queue_serves_in_arrival_order() -> None:
    queue: WaiterQueue[str] = WaiterQueue()
    first = queue.enqueue()
    second = queue.enqueue()

    assert len(queue) == 2
    assert queue.serve("a") is True
    assert queue.serve("b") is True
    assert queue.serve("c") is False

    assert await first == "a"
    assert await second == "b"


async def test_cancelled_waiters_are_skipped() -> None:
    queue: WaiterQueue[int] = WaiterQueue()
    abandoned = queue.enqueue()
    live = queue.enqueue()
    abandoned.cancel()

    assert queue.serve(7) is True
    assert await live == 7
    assert len(queue) == 0


async def test_fail_all_raises_in_every_pending_waiter() -> None:
    queue: WaiterQueue[int] = WaiterQueue()
    futures = [queue.enqueue() for _ in range(3)]
    futures[0].cancel()

    failed = queue.fail_all(RuntimeError("paused"))

    assert failed == 2
    assert len(queue) == 0
    for future in futures[1:]:
        with pytest.raises(RuntimeError, match="paused"):
            await future
