"""
randomorg-core — self-populating result cache

File: src/randomorg_core/cache.py

Purpose
- Keep a bounded FIFO supply of result-sets for one fixed request shape,
  replenished by a background task that funnels every request through the
  credential's ``Dispatcher``.

What should be included in this file
- Explicit ``RUNNING``/``PAUSED`` state toggled by ``stop``/``resume`` and by
  allowance or credential failures (auto-pause).
- Bulk vs individual replenishment with batch sizes bounded by the remaining
  bit allowance.
- Non-blocking ``get`` returning a discriminated ``CacheHit``/``CacheMiss``;
  ``get_or_wait`` serving suspended callers in arrival order.
- Per-cache usage accounting (bits and requests consumed by retrieved sets).

Functional requirements
- Transient failures back off with a bounded exponential delay and never drop
  queued entries.
- The loop never busy-spins: idle and paused periods wait on a wake signal.

Non-functional requirements
- Synchronous accessors never await, so each one is atomic on the event loop.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Any, Final, TypeAlias

import structlog

from randomorg_core.dispatcher import Dispatcher
from randomorg_core.errors import (
    CacheEmptyError,
    InsufficientBitsError,
    JSONRPCError,
    RandomOrgError,
    is_transient,
    pauses_cache,
)
from randomorg_core.methods import DEFAULT_CACHE_SIZE, MIN_CACHE_SIZE, CacheShape, bulk_count
from randomorg_core.rpc import JSONValue, RpcResult, new_request
from randomorg_core.utils.backoff import BackoffConfig
from randomorg_core.utils.concurrency import WaiterQueue, WakeSignal

SleepFn: TypeAlias = Callable[[float], Awaitable[None]]

DEFAULT_IDLE_INTERVAL_SECONDS: Final[float] = 1.0


class CacheState(StrEnum):
    RUNNING = "running"
    PAUSED = "paused"


@dataclass(frozen=True, slots=True)
class CacheHit:
    """A result-set taken from the front of the queue."""

    values: list[JSONValue]


@dataclass(frozen=True, slots=True)
class CacheMiss:
    """The queue was empty; ``reason`` is the failure that auto-paused the cache, if any."""

    paused: bool
    reason: BaseException | None = None

    def to_error(self) -> CacheEmptyError:
        if self.paused:
            detail = "the cache is empty and paused; call resume() to restart populating it"
        else:
            detail = "the cache is empty; wait for it to repopulate itself"
        if self.reason is not None:
            detail = f"{detail} (paused after: {self.reason})"
        error = CacheEmptyError(detail, paused=self.paused)
        error.__cause__ = self.reason
        return error


CacheResult: TypeAlias = CacheHit | CacheMiss


@dataclass(frozen=True, slots=True)
class _Entry:
    values: tuple[JSONValue, ...]
    bits: int
    requests: float


class RandomCache:
    """Background-replenished FIFO of result-sets for one request shape.

    Must be constructed while an event loop is running; the replenishment task
    starts immediately.
    """

    def __init__(
        self,
        dispatcher: Dispatcher,
        shape: CacheShape,
        *,
        cache_size: int = DEFAULT_CACHE_SIZE,
        idle_interval_seconds: float = DEFAULT_IDLE_INTERVAL_SECONDS,
        backoff: BackoffConfig | None = None,
        sleep: SleepFn = asyncio.sleep,
        logger: Any | None = None,
    ) -> None:
        if idle_interval_seconds <= 0:
            raise ValueError("idle_interval_seconds must be > 0")

        self._dispatcher = dispatcher
        self._shape = shape
        self._size = max(MIN_CACHE_SIZE, int(cache_size))
        self._bulk_count = bulk_count(self._size) if shape.bulk else 1
        self._idle_interval = float(idle_interval_seconds)
        self._backoff = backoff if backoff is not None else BackoffConfig()
        self._sleep = sleep
        self._logger = (
            logger
            if logger is not None
            else structlog.get_logger(__name__).bind(
                key_fingerprint=dispatcher.fingerprint,
                method=shape.method,
            )
        )

        self._queue: deque[_Entry] = deque()
        self._waiters: WaiterQueue[list[JSONValue]] = WaiterQueue()
        self._wake = WakeSignal()
        self._state = CacheState.RUNNING
        self._pause_reason: BaseException | None = None
        self._bits_used = 0
        self._requests_used = 0.0
        self._batch_limit = self._bulk_count
        self._failures = 0

        self._task = asyncio.get_running_loop().create_task(
            self._run(),
            name=f"randomorg-cache-{shape.method}",
        )

    async def __aenter__(self) -> RandomCache:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    @property
    def shape(self) -> CacheShape:
        return self._shape

    @property
    def size(self) -> int:
        return self._size

    @property
    def bulk_count(self) -> int:
        return self._bulk_count

    @property
    def state(self) -> CacheState:
        return self._state

    @property
    def pause_reason(self) -> BaseException | None:
        return self._pause_reason

    @property
    def closed(self) -> bool:
        return self._task.done()

    def is_paused(self) -> bool:
        return self._state is CacheState.PAUSED

    def cached_values(self) -> int:
        return len(self._queue)

    def bits_used(self) -> int:
        return self._bits_used

    def requests_used(self) -> float:
        return self._requests_used

    def get(self) -> CacheResult:
        """Take the oldest result-set without waiting."""

        if not self._queue:
            return CacheMiss(paused=self.is_paused(), reason=self._pause_reason)
        entry = self._queue.popleft()
        self._account(entry)
        self._wake.notify()
        return CacheHit(values=list(entry.values))

    async def get_or_wait(self) -> list[JSONValue]:
        """Return the oldest result-set, waiting for one if the cache is running.

        Raises ``CacheEmptyError`` when the cache is (or becomes) paused while empty.
        """

        outcome = self.get()
        if isinstance(outcome, CacheHit):
            return outcome.values
        if outcome.paused or self.closed:
            raise outcome.to_error()
        return await self._waiters.enqueue()

    def stop(self) -> None:
        if self._state is CacheState.PAUSED:
            return
        self._state = CacheState.PAUSED
        self._logger.info("cache_stopped", cached=len(self._queue))
        self._fail_waiters()
        self._wake.notify()

    def resume(self) -> None:
        if self._state is CacheState.RUNNING:
            return
        self._state = CacheState.RUNNING
        if isinstance(self._pause_reason, InsufficientBitsError):
            self._dispatcher.invalidate_allowance()
        self._pause_reason = None
        self._failures = 0
        self._logger.info("cache_resumed", cached=len(self._queue))
        self._wake.notify()

    async def aclose(self) -> None:
        """Cancel the replenishment task; queued entries stay retrievable with ``get``."""

        if not self._task.done():
            self._task.cancel()
        await asyncio.gather(self._task, return_exceptions=True)
        self._state = CacheState.PAUSED
        self._fail_waiters()

    async def _run(self) -> None:
        try:
            while True:
                if self._state is CacheState.PAUSED:
                    await self._wake.wait()
                    continue

                deficit = self._size - len(self._queue)
                if deficit <= 0:
                    await self._wake.wait(self._idle_interval)
                    continue

                await self._replenish(deficit)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            self._state = CacheState.PAUSED
            self._pause_reason = exc
            self._logger.exception("cache_loop_crashed", error_type=type(exc).__name__)
            self._fail_waiters()
            raise

    async def _replenish(self, deficit: int) -> None:
        sets = 1
        try:
            sets = await self._next_batch(deficit)
            request = new_request(
                self._shape.method,
                self._shape.request_params(sets),
                api_key=self._dispatcher.api_key,
            )
            result = await self._dispatcher.send(request)
            entries = self._entries_from(result, sets)
        except RandomOrgError as exc:
            await self._handle_failure(exc, sets)
            return

        self._failures = 0
        self._append(entries)

    async def _next_batch(self, deficit: int) -> int:
        if not self._shape.bulk:
            return 1

        allowance = await self._dispatcher.get_allowance()
        affordable = allowance.bits_left // self._shape.bit_cost
        if affordable < 1:
            raise InsufficientBitsError(
                f"{allowance.bits_left} bits left cannot cover one result-set "
                f"of {self._shape.bit_cost} bits",
                bits_left=allowance.bits_left,
            )

        limit = min(self._bulk_count, affordable)
        if limit != self._batch_limit:
            event = "cache_batch_shrunk" if limit < self._batch_limit else "cache_batch_grown"
            self._logger.info(
                event,
                batch_limit=limit,
                previous_limit=self._batch_limit,
                bits_left=allowance.bits_left,
            )
            self._batch_limit = limit
        return min(deficit, limit)

    async def _handle_failure(self, exc: RandomOrgError, sets: int) -> None:
        if isinstance(exc, InsufficientBitsError) and self._can_shrink(exc, sets):
            # The next batch is recomputed from the refreshed allowance.
            self._logger.info("cache_batch_rejected", sets=sets, bits_left=exc.bits_left)
            return

        if pauses_cache(exc):
            self._state = CacheState.PAUSED
            self._pause_reason = exc
            self._logger.warning("cache_auto_paused", error_code=exc.code, detail=exc.detail)
            self._fail_waiters()
            return

        self._failures += 1
        delay = self._backoff.delay_for(self._failures)
        self._logger.warning(
            "cache_transient_failure" if is_transient(exc) else "cache_request_failed",
            error_code=exc.code,
            attempt=self._failures,
            backoff_seconds=delay,
        )
        await self._sleep(delay)

    def _can_shrink(self, exc: InsufficientBitsError, sets: int) -> bool:
        if not self._shape.bulk or exc.bits_left is None:
            return False
        affordable = exc.bits_left // self._shape.bit_cost
        return 1 <= affordable < sets

    def _entries_from(self, result: RpcResult, sets: int) -> list[_Entry]:
        if not isinstance(result, dict):
            raise JSONRPCError("reply result is not an object")
        random_member = result.get("random")
        data = random_member.get("data") if isinstance(random_member, dict) else None
        if not isinstance(data, list):
            raise JSONRPCError("reply carries no random.data array")
        try:
            chunks = self._shape.split(data, sets)
        except ValueError as exc:
            raise JSONRPCError(f"reply does not match the requested shape: {exc}") from exc

        bits_value = result.get("bitsUsed")
        bits = bits_value if isinstance(bits_value, int) and not isinstance(bits_value, bool) else 0
        share, remainder = divmod(max(0, bits), sets)
        return [
            _Entry(
                values=tuple(chunk),
                bits=share + (1 if index < remainder else 0),
                requests=1.0 / sets,
            )
            for index, chunk in enumerate(chunks)
        ]

    def _append(self, entries: Sequence[_Entry]) -> None:
        for entry in entries:
            if self._waiters.serve(list(entry.values)):
                self._account(entry)
                continue
            self._queue.append(entry)
        self._logger.debug("cache_replenished", added=len(entries), cached=len(self._queue))

    def _account(self, entry: _Entry) -> None:
        self._bits_used += entry.bits
        self._requests_used += entry.requests

    def _fail_waiters(self) -> None:
        if self._queue or not len(self._waiters):
            return
        miss = CacheMiss(paused=True, reason=self._pause_reason)
        self._waiters.fail_all(miss.to_error())


__all__ = [
    "CacheHit",
    "CacheMiss",
    "CacheResult",
    "CacheState",
    "DEFAULT_IDLE_INTERVAL_SECONDS",
    "RandomCache",
]
