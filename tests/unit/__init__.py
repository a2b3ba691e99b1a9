"""Shared deterministic fakes for unit tests: clocks and an offline RANDOM.ORG service."""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from typing import Final

TEST_API_KEY: Final[str] = "00000000-1111-2222-3333-444444444444"

_GENERATE_METHODS: Final[frozenset[str]] = frozenset(
    {
        "generateIntegers",
        "generateIntegerSequences",
        "generateDecimalFractions",
        "generateGaussians",
        "generateStrings",
        "generateUUIDs",
        "generateBlobs",
        "generateSignedIntegers",
        "generateSignedIntegerSequences",
        "generateSignedDecimalFractions",
        "generateSignedGaussians",
        "generateSignedStrings",
        "generateSignedUUIDs",
        "generateSignedBlobs",
    }
)


@dataclass(slots=True)
class FakeClock:
    current: float = 1_000.0
    sleep_calls: list[float] = field(default_factory=list)

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds

    async def sleep(self, seconds: float) -> None:
        self.sleep_calls.append(seconds)
        self.current += max(0.0, seconds)
        await asyncio.sleep(0)


@dataclass(slots=True)
class FakeWallClock:
    current: datetime = datetime(2026, 2, 1, 15, 30, 0, tzinfo=UTC)

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta: float) -> None:
        self.current += timedelta(**delta)


@dataclass(slots=True)
class FakeRandomOrgService:
    """In-process stand-in for the JSON-RPC endpoint.

    Generation methods hand out consecutive integers so FIFO order is observable.
    Scripted outcomes are consumed per method before the default behavior applies.
    """

    bits_left: int = 250_000
    requests_left: int = 1_000
    advisory_delay_ms: int | None = 0
    bits_per_value: int = 3
    payloads: list[dict[str, object]] = field(default_factory=list)
    scripted: dict[str, deque[object]] = field(default_factory=dict)
    in_flight: int = 0
    max_in_flight: int = 0
    counter: int = 0

    def queue_error(
        self,
        method: str,
        code: int,
        message: str,
        *,
        data: object = None,
    ) -> None:
        error: dict[str, object] = {"code": code, "message": message, "data": data}
        self.scripted.setdefault(method, deque()).append(error)

    def queue_exception(self, method: str, exc: BaseException) -> None:
        self.scripted.setdefault(method, deque()).append(exc)

    def queue_result(self, method: str, result: object) -> None:
        self.scripted.setdefault(method, deque()).append(_Result(result))

    def calls(self, method: str) -> list[dict[str, object]]:
        return [item for item in self.payloads if item["method"] == method]

    async def exchange(self, payload: Mapping[str, object]) -> object:
        self.payloads.append(dict(payload))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(0)
            return self._reply(payload)
        finally:
            self.in_flight -= 1

    def _reply(self, payload: Mapping[str, object]) -> object:
        method = str(payload["method"])
        request_id = payload["id"]
        pending = self.scripted.get(method)
        if pending:
            outcome = pending.popleft()
            if isinstance(outcome, BaseException):
                raise outcome
            if isinstance(outcome, _Result):
                return {"jsonrpc": "2.0", "result": outcome.value, "id": request_id}
            return {"jsonrpc": "2.0", "error": outcome, "id": request_id}

        if method == "getUsage":
            result: dict[str, object] = {
                "status": "running",
                "creationTime": "2026-01-01 00:00:00Z",
                "bitsLeft": self.bits_left,
                "requestsLeft": self.requests_left,
                "totalBits": 0,
                "totalRequests": 0,
            }
            return {"jsonrpc": "2.0", "result": result, "id": request_id}

        if method in _GENERATE_METHODS:
            params = payload["params"]
            assert isinstance(params, dict)
            n = int(params["n"])
            data = list(range(self.counter, self.counter + n))
            self.counter += n
            bits_used = n * self.bits_per_value
            self.bits_left -= bits_used
            self.requests_left -= 1
            result = {
                "random": {"data": data, "completionTime": "2026-02-01 15:30:00Z"},
                "bitsUsed": bits_used,
                "bitsLeft": self.bits_left,
                "requestsLeft": self.requests_left,
            }
            if self.advisory_delay_ms is not None:
                result["advisoryDelay"] = self.advisory_delay_ms
            if method.startswith("generateSigned"):
                result["random"]["serialNumber"] = 1  # type: ignore[index]
                result["signature"] = "c2lnbmF0dXJl"
            return {"jsonrpc": "2.0", "result": result, "id": request_id}

        raise AssertionError(f"unexpected method in test: {method}")


@dataclass(frozen=True, slots=True)
class _Result:
    value: object


async def wait_until(predicate: Callable[[], bool], *, timeout_seconds: float = 2.0) -> None:
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_seconds
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached before timeout")
        await asyncio.sleep(0.001)


__all__ = [
    "FakeClock",
    "FakeRandomOrgService",
    "FakeWallClock",
    "TEST_API_KEY",
    "wait_until",
]
