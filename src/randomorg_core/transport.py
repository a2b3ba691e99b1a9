"""
randomorg-core — HTTP transport

File: src/randomorg_core/transport.py

Purpose
- Perform exactly one request/response exchange with the JSON-RPC endpoint.

Functional requirements
- No retries; every failure is reported as a typed error.
- Timeouts surface as ``TransportTimeoutError``, non-2xx as ``BadResponseError``.

Non-functional requirements
- Must never log or echo the request payload (it carries the API key).
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import Final, Protocol, runtime_checkable

import httpx

from randomorg_core.errors import BadResponseError, JSONRPCError, TransportTimeoutError

DEFAULT_ENDPOINT: Final[str] = "https://api.random.org/json-rpc/4/invoke"
DEFAULT_HTTP_TIMEOUT_SECONDS: Final[float] = 120.0


@runtime_checkable
class Transport(Protocol):
    """One request/response exchange with the remote service."""

    async def exchange(self, payload: Mapping[str, object]) -> object:
        """Send ``payload`` and return the decoded JSON reply body."""


class HttpTransport:
    """httpx-backed transport posting JSON-RPC envelopes to the RANDOM.ORG endpoint."""

    def __init__(
        self,
        *,
        endpoint: str = DEFAULT_ENDPOINT,
        timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        if not isinstance(endpoint, str) or not endpoint.strip():
            raise ValueError("endpoint cannot be empty")
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self.endpoint = endpoint.strip()
        self.timeout_seconds = float(timeout_seconds)
        self._client = client
        self._owns_client = client is None

    async def exchange(self, payload: Mapping[str, object]) -> object:
        client = self._ensure_client()
        try:
            response = await client.post(
                self.endpoint,
                json=dict(payload),
                headers={"Content-Type": "application/json"},
                timeout=self.timeout_seconds,
            )
        except httpx.TimeoutException as exc:
            raise TransportTimeoutError(
                f"no response within {self.timeout_seconds:g}s"
            ) from exc
        except httpx.HTTPError as exc:
            raise BadResponseError(f"transport failure: {type(exc).__name__}: {exc}") from exc

        if not response.is_success:
            raise BadResponseError(
                f"Error: {response.status_code}",
                http_status=response.status_code,
            )

        try:
            return response.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as exc:
            raise JSONRPCError("reply body is not valid JSON") from exc

    async def aclose(self) -> None:
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client


__all__ = [
    "DEFAULT_ENDPOINT",
    "DEFAULT_HTTP_TIMEOUT_SECONDS",
    "HttpTransport",
    "Transport",
]
