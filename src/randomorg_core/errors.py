"""
randomorg-core — error taxonomy

File: src/randomorg_core/errors.py

Purpose
- Typed failures surfaced by the dispatcher, the transport and the caches.

What should be included in this file
- One base error with deterministic machine-readable fields.
- One subclass per failure kind so callers branch on type, never on text.
- Retryability classification used by the cache replenishment loop.

Functional requirements
- Allowance failures carry the last known remaining count.
- Cache-empty failures carry whether the cache was paused.
"""

from __future__ import annotations


class RandomOrgError(RuntimeError):
    """Base normalized error with deterministic machine-readable fields."""

    def __init__(
        self,
        *,
        code: str,
        detail: str,
        retryable: bool,
        http_status: int | None = None,
        server_code: int | None = None,
    ) -> None:
        self.code = _validate_code(code)
        self.detail = _normalize_detail(detail)
        self.retryable = bool(retryable)
        self.http_status = http_status
        self.server_code = server_code

        parts = [
            f"code={self.code}",
            f"retryable={str(self.retryable).lower()}",
        ]
        if self.http_status is not None:
            parts.append(f"http_status={self.http_status}")
        if self.server_code is not None:
            parts.append(f"server_code={self.server_code}")
        parts.append(f"detail={self.detail}")
        super().__init__(" ".join(parts))


class SendTimeoutError(RandomOrgError):
    """The advisory delay is longer than the allowed blocking time."""

    def __init__(self, detail: str, *, wait_seconds: float | None = None) -> None:
        super().__init__(code="send_timeout", detail=detail, retryable=False)
        self.wait_seconds = wait_seconds


class KeyNotRunningError(RandomOrgError):
    """The API key has been stopped."""

    def __init__(self, detail: str) -> None:
        super().__init__(code="key_not_running", detail=detail, retryable=False, server_code=401)


class InsufficientRequestsError(RandomOrgError):
    """The daily request allowance of the API key is used up."""

    def __init__(self, detail: str, *, requests_left: int | None = None) -> None:
        super().__init__(
            code="insufficient_requests",
            detail=detail,
            retryable=False,
            server_code=402,
        )
        self.requests_left = requests_left


class InsufficientBitsError(RandomOrgError):
    """The daily bit allowance cannot cover the request."""

    def __init__(self, detail: str, *, bits_left: int | None = None) -> None:
        super().__init__(
            code="insufficient_bits",
            detail=detail,
            retryable=False,
            server_code=403,
        )
        self.bits_left = bits_left


class BadResponseError(RandomOrgError):
    """The transport did not yield a well-formed success response."""

    def __init__(self, detail: str, *, http_status: int | None = None) -> None:
        super().__init__(
            code="bad_response",
            detail=detail,
            retryable=True,
            http_status=http_status,
        )


class TransportTimeoutError(BadResponseError):
    """The server did not answer within the per-exchange timeout."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.code = "timeout"


class ServerError(RandomOrgError):
    """The service executed the request but rejected it with a RANDOM.ORG code."""

    def __init__(self, detail: str, *, server_code: int | None = None) -> None:
        super().__init__(
            code="server_error",
            detail=detail,
            retryable=False,
            server_code=server_code,
        )


class UrlTooLongError(ServerError):
    """A signature verification URL is longer than the service accepts."""

    def __init__(self, detail: str) -> None:
        super().__init__(detail)
        self.code = "url_too_long"


class JSONRPCError(RandomOrgError):
    """The reply could not be correlated or parsed as a JSON-RPC reply."""

    def __init__(self, detail: str, *, rpc_code: int | None = None) -> None:
        super().__init__(code="protocol", detail=detail, retryable=False)
        self.rpc_code = rpc_code


class CacheEmptyError(RandomOrgError):
    """No result-set is available in a cache."""

    def __init__(self, detail: str, *, paused: bool = False) -> None:
        super().__init__(code="cache_empty", detail=detail, retryable=False)
        self.paused = bool(paused)

    def was_paused(self) -> bool:
        return self.paused


def is_transient(error: BaseException) -> bool:
    """Return ``True`` when a cache may back off and retry after ``error``."""

    return isinstance(error, RandomOrgError) and error.retryable


def pauses_cache(error: BaseException) -> bool:
    """Return ``True`` when ``error`` should stop a cache from replenishing."""

    return isinstance(
        error,
        (InsufficientBitsError, InsufficientRequestsError, KeyNotRunningError),
    )


def _validate_code(code: str) -> str:
    if not isinstance(code, str):
        raise TypeError("code must be a string")
    normalized = code.strip()
    if not normalized:
        raise ValueError("code cannot be empty")
    return normalized


def _normalize_detail(value: object) -> str:
    text = str(value).strip()
    if not text:
        return "unknown error"
    return " ".join(text.split())


__all__ = [
    "BadResponseError",
    "CacheEmptyError",
    "InsufficientBitsError",
    "InsufficientRequestsError",
    "JSONRPCError",
    "KeyNotRunningError",
    "RandomOrgError",
    "SendTimeoutError",
    "ServerError",
    "TransportTimeoutError",
    "UrlTooLongError",
    "is_transient",
    "pauses_cache",
]
