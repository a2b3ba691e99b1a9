"""
randomorg-core — per-credential request dispatcher

File: src/randomorg_core/dispatcher.py

Purpose
- The single path by which any request reaches the transport for one API key.

What should be included in this file
- Strictly sequential sends per credential, honoring the server advisory delay.
- Blocking-wait budget enforcement (fail fast with ``SendTimeoutError``).
- Time-bounded allowance snapshot (bits/requests left) with on-demand refresh.
- Requests-exhausted back-off until the next midnight UTC.
- Keyed registry guaranteeing one dispatcher per API key.

Functional requirements
- Never retries; failures propagate to the caller unchanged.
- Must support injected clock/sleep/transport for offline tests.

Non-functional requirements
- Never logs the raw API key.
"""

from __future__ import annotations

import asyncio
import hashlib
import threading
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Any, Final, TypeAlias

import structlog

from randomorg_core.errors import (
    BadResponseError,
    InsufficientBitsError,
    InsufficientRequestsError,
    JSONRPCError,
    RandomOrgError,
    SendTimeoutError,
)
from randomorg_core.rpc import GET_USAGE_METHOD, RpcRequest, RpcResult, decode_reply, new_request
from randomorg_core.transport import HttpTransport, Transport

Clock: TypeAlias = Callable[[], float]
WallClock: TypeAlias = Callable[[], datetime]
SleepFn: TypeAlias = Callable[[float], Awaitable[None]]

DEFAULT_DELAY_SECONDS: Final[float] = 1.0
DEFAULT_BLOCKING_TIMEOUT_SECONDS: Final[float] = 24 * 60 * 60.0
ALLOWANCE_REFRESH_SECONDS: Final[float] = 60 * 60.0


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


def credential_fingerprint(api_key: str) -> str:
    """Short stable identifier for an API key that is safe to log."""

    return hashlib.sha256(api_key.encode("utf-8")).hexdigest()[:12]


@dataclass(frozen=True, slots=True)
class Allowance:
    """Remaining daily allowance as last reported by the server."""

    bits_left: int
    requests_left: int
    captured_at: float

    def age(self, now: float) -> float:
        return max(0.0, now - self.captured_at)

    def is_stale(self, now: float, *, max_age_seconds: float = ALLOWANCE_REFRESH_SECONDS) -> bool:
        return self.age(now) > max_age_seconds

    def to_dict(self) -> dict[str, int]:
        return {"bits_left": self.bits_left, "requests_left": self.requests_left}


class Dispatcher:
    """Owns one credential's request timeline and allowance snapshot."""

    def __init__(
        self,
        api_key: str,
        *,
        transport: Transport | None = None,
        blocking_timeout_seconds: float | None = DEFAULT_BLOCKING_TIMEOUT_SECONDS,
        default_delay_seconds: float = DEFAULT_DELAY_SECONDS,
        allowance_refresh_seconds: float = ALLOWANCE_REFRESH_SECONDS,
        clock: Clock = time.monotonic,
        wall_clock: WallClock = _utcnow,
        sleep: SleepFn = asyncio.sleep,
        logger: Any | None = None,
    ) -> None:
        if not isinstance(api_key, str) or not api_key.strip():
            raise ValueError("api_key cannot be empty")
        if blocking_timeout_seconds is not None and blocking_timeout_seconds < 0:
            raise ValueError("blocking_timeout_seconds must be >= 0 or None")
        if default_delay_seconds < 0:
            raise ValueError("default_delay_seconds must be >= 0")
        if allowance_refresh_seconds <= 0:
            raise ValueError("allowance_refresh_seconds must be > 0")

        self._api_key = api_key
        self.fingerprint = credential_fingerprint(api_key)
        self._transport: Transport = transport if transport is not None else HttpTransport()
        self._blocking_timeout = blocking_timeout_seconds
        self._default_delay = float(default_delay_seconds)
        self._allowance_refresh = float(allowance_refresh_seconds)
        self._clock = clock
        self._wall_clock = wall_clock
        self._sleep = sleep
        self._logger = (
            logger
            if logger is not None
            else structlog.get_logger(__name__).bind(key_fingerprint=self.fingerprint)
        )

        self._send_lock = asyncio.Lock()
        self._refresh_lock = asyncio.Lock()
        self._next_send_at: float | None = None
        self._bits_left: int | None = None
        self._requests_left: int | None = None
        self._captured_at: float | None = None
        self._backoff_until: datetime | None = None
        self._backoff_reason = ""
        self._requests_sent = 0

    @classmethod
    def for_credential(
        cls,
        api_key: str,
        *,
        registry: DispatcherRegistry | None = None,
        **options: Any,
    ) -> Dispatcher:
        """Return the live dispatcher for ``api_key``, creating it on first use.

        ``options`` only apply when a new instance is created.
        """

        target = registry if registry is not None else default_registry()
        return target.get_or_create(api_key, lambda: cls(api_key, **options))

    @property
    def api_key(self) -> str:
        return self._api_key

    @property
    def transport(self) -> Transport:
        return self._transport

    @property
    def blocking_timeout_seconds(self) -> float | None:
        return self._blocking_timeout

    @property
    def default_delay_seconds(self) -> float:
        return self._default_delay

    @property
    def next_send_at(self) -> float | None:
        """Earliest monotonic time the next request may be sent, if known."""

        return self._next_send_at

    @property
    def backoff_until(self) -> datetime | None:
        return self._backoff_until

    @property
    def requests_sent(self) -> int:
        return self._requests_sent

    @property
    def allowance(self) -> Allowance | None:
        """Last allowance snapshot regardless of age, or ``None`` if incomplete."""

        if self._bits_left is None or self._requests_left is None or self._captured_at is None:
            return None
        return Allowance(
            bits_left=self._bits_left,
            requests_left=self._requests_left,
            captured_at=self._captured_at,
        )

    async def send(self, request: RpcRequest) -> RpcResult:
        """Send ``request`` once the advisory delay allows it and return its result."""

        async with self._send_lock:
            self._check_backoff()

            wait_seconds = self._required_wait()
            if self._blocking_timeout is not None and wait_seconds > self._blocking_timeout:
                raise SendTimeoutError(
                    f"the server advisory delay of {wait_seconds:.3f}s is greater than the "
                    f"maximum allowed blocking time of {self._blocking_timeout:.3f}s",
                    wait_seconds=wait_seconds,
                )
            if wait_seconds > 0:
                await self._sleep(wait_seconds)

            self._requests_sent += 1
            self._logger.debug(
                "dispatcher_request_sent",
                method=request.method,
                request_id=request.id,
                waited_seconds=round(wait_seconds, 6),
            )
            try:
                body = await self._transport.exchange(request.to_payload())
                result = decode_reply(request, body)
            except RandomOrgError as exc:
                self._record_failure(request, exc)
                raise
            except Exception as exc:  # noqa: BLE001 - transport boundary normalization.
                wrapped = BadResponseError(f"transport failure: {type(exc).__name__}: {exc}")
                self._record_failure(request, wrapped)
                raise wrapped from exc

            self._record_success(request, result)
            return result

    async def get_allowance(self) -> Allowance:
        """Return the allowance snapshot, refreshing it from the server when stale."""

        snapshot = self._fresh_allowance()
        if snapshot is not None:
            return snapshot

        async with self._refresh_lock:
            snapshot = self._fresh_allowance()
            if snapshot is not None:
                return snapshot
            await self.send(new_request(GET_USAGE_METHOD, api_key=self._api_key))
            snapshot = self.allowance
            if snapshot is None:
                raise JSONRPCError("usage reply did not report bitsLeft and requestsLeft")
            return snapshot

    def invalidate_allowance(self) -> None:
        """Forget the snapshot age so the next ``get_allowance`` asks the server."""

        self._captured_at = None

    async def bits_left(self) -> int:
        return (await self.get_allowance()).bits_left

    async def requests_left(self) -> int:
        return (await self.get_allowance()).requests_left

    async def aclose(self) -> None:
        closer = getattr(self._transport, "aclose", None)
        if closer is not None:
            await closer()

    def _fresh_allowance(self) -> Allowance | None:
        snapshot = self.allowance
        if snapshot is None:
            return None
        if snapshot.is_stale(self._clock(), max_age_seconds=self._allowance_refresh):
            return None
        return snapshot

    def _required_wait(self) -> float:
        if self._next_send_at is None:
            return 0.0
        return max(0.0, self._next_send_at - self._clock())

    def _check_backoff(self) -> None:
        if self._backoff_until is None:
            return
        if self._wall_clock() < self._backoff_until:
            raise InsufficientRequestsError(self._backoff_reason, requests_left=0)
        self._logger.info("dispatcher_backoff_cleared")
        self._backoff_until = None
        self._backoff_reason = ""

    def _record_success(self, request: RpcRequest, result: RpcResult) -> None:
        now = self._clock()
        if request.is_independent or not isinstance(result, dict):
            self._next_send_at = now + self._default_delay
            return

        bits_left = _as_count(result.get("bitsLeft"))
        requests_left = _as_count(result.get("requestsLeft"))
        if bits_left is not None:
            self._bits_left = bits_left
        if requests_left is not None:
            self._requests_left = requests_left
        if bits_left is not None or requests_left is not None:
            self._captured_at = now

        advisory_ms = result.get("advisoryDelay")
        if isinstance(advisory_ms, (int, float)) and not isinstance(advisory_ms, bool):
            delay = max(0.0, float(advisory_ms) / 1000.0)
        else:
            delay = self._default_delay
        self._next_send_at = now + delay

    def _record_failure(self, request: RpcRequest, error: RandomOrgError) -> None:
        now = self._clock()
        self._next_send_at = now + self._default_delay

        if isinstance(error, InsufficientRequestsError):
            if error.requests_left is not None:
                self._requests_left = error.requests_left
                self._captured_at = now
            self._backoff_until = _next_midnight_utc(self._wall_clock())
            self._backoff_reason = error.detail
            self._logger.warning(
                "dispatcher_requests_exhausted",
                method=request.method,
                backoff_until=self._backoff_until.isoformat(),
            )
            return

        if isinstance(error, InsufficientBitsError) and error.bits_left is not None:
            self._bits_left = error.bits_left
            self._captured_at = now

        self._logger.info(
            "dispatcher_request_failed",
            method=request.method,
            request_id=request.id,
            error_code=error.code,
            retryable=error.retryable,
        )


class DispatcherRegistry:
    """Process-wide keyed registry: one live dispatcher per API key."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._instances: dict[str, Dispatcher] = {}

    def __len__(self) -> int:
        with self._lock:
            return len(self._instances)

    def __contains__(self, api_key: object) -> bool:
        with self._lock:
            return api_key in self._instances

    def get(self, api_key: str) -> Dispatcher | None:
        with self._lock:
            return self._instances.get(api_key)

    def get_or_create(self, api_key: str, factory: Callable[[], Dispatcher]) -> Dispatcher:
        with self._lock:
            existing = self._instances.get(api_key)
            if existing is not None:
                return existing
            created = factory()
            if created.api_key != api_key:
                raise ValueError("factory returned a dispatcher for a different api_key")
            self._instances[api_key] = created
            return created

    def discard(self, api_key: str) -> Dispatcher | None:
        with self._lock:
            return self._instances.pop(api_key, None)

    def reset(self) -> None:
        with self._lock:
            self._instances.clear()


_DEFAULT_REGISTRY = DispatcherRegistry()


def default_registry() -> DispatcherRegistry:
    return _DEFAULT_REGISTRY


def _next_midnight_utc(now: datetime) -> datetime:
    current = now.astimezone(UTC) if now.tzinfo is not None else now.replace(tzinfo=UTC)
    tomorrow = current + timedelta(days=1)
    return tomorrow.replace(hour=0, minute=0, second=0, microsecond=0)


def _as_count(value: object) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        return None
    return max(0, value)


__all__ = [
    "ALLOWANCE_REFRESH_SECONDS",
    "Allowance",
    "DEFAULT_BLOCKING_TIMEOUT_SECONDS",
    "DEFAULT_DELAY_SECONDS",
    "Dispatcher",
    "DispatcherRegistry",
    "credential_fingerprint",
    "default_registry",
]
