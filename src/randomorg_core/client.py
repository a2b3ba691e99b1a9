"""
randomorg-core — RANDOM.ORG client

File: src/randomorg_core/client.py

Purpose
- One-shot generation calls (basic and signed), ticket and signature helpers,
  allowance queries and cache factories for one API key.

Functional requirements
- Every request goes through the credential's shared ``Dispatcher``.
- Failures surface unchanged; this layer never retries.
"""

from __future__ import annotations

import base64
import json
import re
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Final

from randomorg_core import methods
from randomorg_core.cache import RandomCache
from randomorg_core.config.schema import blocking_timeout
from randomorg_core.dispatcher import (
    DEFAULT_BLOCKING_TIMEOUT_SECONDS,
    DEFAULT_DELAY_SECONDS,
    Dispatcher,
    DispatcherRegistry,
)
from randomorg_core.errors import JSONRPCError, UrlTooLongError
from randomorg_core.methods import CacheShape, MethodCall, SignedOptions
from randomorg_core.rpc import (
    CREATE_TICKETS_METHOD,
    GET_RESULT_METHOD,
    GET_TICKET_METHOD,
    JSONValue,
    LIST_TICKETS_METHOD,
    VERIFY_SIGNATURE_METHOD,
    RpcResult,
    new_request,
)
from randomorg_core.transport import (
    DEFAULT_ENDPOINT,
    DEFAULT_HTTP_TIMEOUT_SECONDS,
    HttpTransport,
    Transport,
)
from randomorg_core.utils.backoff import BackoffConfig

SIGNATURE_FORM_URL: Final[str] = "https://api.random.org/signatures/form"
MAX_URL_LENGTH: Final[int] = 2046
TICKET_TYPES: Final[frozenset[str]] = frozenset({"singleton", "head", "tail"})

_BASE64_PATTERN = re.compile(r"^([0-9a-zA-Z+/]{4})*(([0-9a-zA-Z+/]{2}==)|([0-9a-zA-Z+/]{3}=))?$")


@dataclass(frozen=True, slots=True)
class SignedResult:
    """Values plus the signed ``random`` object and its signature."""

    data: list[JSONValue]
    random: dict[str, JSONValue]
    signature: str


class RandomOrgClient:
    """Entry point for one API key. Clients built for the same key share one dispatcher."""

    def __init__(
        self,
        api_key: str,
        *,
        transport: Transport | None = None,
        endpoint: str = DEFAULT_ENDPOINT,
        http_timeout_seconds: float = DEFAULT_HTTP_TIMEOUT_SECONDS,
        blocking_timeout_seconds: float | None = DEFAULT_BLOCKING_TIMEOUT_SECONDS,
        default_delay_seconds: float = DEFAULT_DELAY_SECONDS,
        registry: DispatcherRegistry | None = None,
        cache_options: Mapping[str, Any] | None = None,
    ) -> None:
        self._dispatcher = Dispatcher.for_credential(
            api_key,
            registry=registry,
            transport=(
                transport
                if transport is not None
                else HttpTransport(endpoint=endpoint, timeout_seconds=http_timeout_seconds)
            ),
            blocking_timeout_seconds=blocking_timeout_seconds,
            default_delay_seconds=default_delay_seconds,
        )
        self._cache_options = dict(cache_options or {})
        self._caches: list[RandomCache] = []

    @classmethod
    def from_config(
        cls,
        api_key: str,
        config: Mapping[str, Any],
        *,
        transport: Transport | None = None,
        registry: DispatcherRegistry | None = None,
    ) -> RandomOrgClient:
        client_section = config["client"]
        cache_section = config["cache"]
        return cls(
            api_key,
            transport=transport,
            endpoint=client_section["endpoint"],
            http_timeout_seconds=client_section["http_timeout_seconds"],
            blocking_timeout_seconds=blocking_timeout(config),
            default_delay_seconds=client_section["default_delay_seconds"],
            registry=registry,
            cache_options={
                "idle_interval_seconds": cache_section["idle_interval_seconds"],
                "backoff": BackoffConfig(
                    initial_delay_seconds=cache_section["backoff_initial_seconds"],
                    multiplier=cache_section["backoff_multiplier"],
                    max_delay_seconds=cache_section["backoff_max_seconds"],
                ),
            },
        )

    @property
    def dispatcher(self) -> Dispatcher:
        return self._dispatcher

    async def __aenter__(self) -> RandomOrgClient:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        """Close every cache this client created, then the dispatcher transport."""

        caches, self._caches = self._caches, []
        for cache in caches:
            await cache.aclose()
        await self._dispatcher.aclose()

    # Basic API

    async def generate_integers(
        self,
        n: int,
        min: int,
        max: int,
        *,
        replacement: bool = True,
        base: int = 10,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    ) -> list[JSONValue]:
        call = methods.integers(
            n, min, max, replacement=replacement, base=base,
            pregenerated_randomization=pregenerated_randomization,
        )  # fmt: skip
        return _random_data(await self._call(call))

    async def generate_integer_sequences(
        self,
        n: int,
        length: methods.IntOrList,
        min: methods.IntOrList,
        max: methods.IntOrList,
        *,
        replacement: methods.BoolOrList = True,
        base: methods.IntOrList = 10,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    ) -> list[JSONValue]:
        call = methods.integer_sequences(
            n, length, min, max, replacement=replacement, base=base,
            pregenerated_randomization=pregenerated_randomization,
        )  # fmt: skip
        return _random_data(await self._call(call))

    async def generate_decimal_fractions(
        self,
        n: int,
        decimal_places: int,
        *,
        replacement: bool = True,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    ) -> list[JSONValue]:
        call = methods.decimal_fractions(
            n, decimal_places, replacement=replacement,
            pregenerated_randomization=pregenerated_randomization,
        )  # fmt: skip
        return _random_data(await self._call(call))

    async def generate_gaussians(
        self,
        n: int,
        mean: float,
        standard_deviation: float,
        significant_digits: int,
        *,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    ) -> list[JSONValue]:
        call = methods.gaussians(
            n, mean, standard_deviation, significant_digits,
            pregenerated_randomization=pregenerated_randomization,
        )  # fmt: skip
        return _random_data(await self._call(call))

    async def generate_strings(
        self,
        n: int,
        length: int,
        characters: str,
        *,
        replacement: bool = True,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    ) -> list[JSONValue]:
        call = methods.strings(
            n, length, characters, replacement=replacement,
            pregenerated_randomization=pregenerated_randomization,
        )  # fmt: skip
        return _random_data(await self._call(call))

    async def generate_uuids(
        self,
        n: int,
        *,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    ) -> list[JSONValue]:
        call = methods.uuids(n, pregenerated_randomization=pregenerated_randomization)
        return _random_data(await self._call(call))

    async def generate_blobs(
        self,
        n: int,
        size: int,
        *,
        format: str = "base64",
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    ) -> list[JSONValue]:
        call = methods.blobs(
            n, size, format=format, pregenerated_randomization=pregenerated_randomization
        )
        return _random_data(await self._call(call))

    # Signed API

    async def generate_signed_integers(
        self,
        n: int,
        min: int,
        max: int,
        *,
        replacement: bool = True,
        base: int = 10,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
        license_data: Mapping[str, JSONValue] | None = None,
        user_data: JSONValue = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        call = methods.integers(
            n, min, max, replacement=replacement, base=base,
            pregenerated_randomization=pregenerated_randomization,
            signed=SignedOptions(license_data, user_data, ticket_id),
        )  # fmt: skip
        return _signed(await self._call(call))

    async def generate_signed_integer_sequences(
        self,
        n: int,
        length: methods.IntOrList,
        min: methods.IntOrList,
        max: methods.IntOrList,
        *,
        replacement: methods.BoolOrList = True,
        base: methods.IntOrList = 10,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
        license_data: Mapping[str, JSONValue] | None = None,
        user_data: JSONValue = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        call = methods.integer_sequences(
            n, length, min, max, replacement=replacement, base=base,
            pregenerated_randomization=pregenerated_randomization,
            signed=SignedOptions(license_data, user_data, ticket_id),
        )  # fmt: skip
        return _signed(await self._call(call))

    async def generate_signed_decimal_fractions(
        self,
        n: int,
        decimal_places: int,
        *,
        replacement: bool = True,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
        license_data: Mapping[str, JSONValue] | None = None,
        user_data: JSONValue = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        call = methods.decimal_fractions(
            n, decimal_places, replacement=replacement,
            pregenerated_randomization=pregenerated_randomization,
            signed=SignedOptions(license_data, user_data, ticket_id),
        )  # fmt: skip
        return _signed(await self._call(call))

    async def generate_signed_gaussians(
        self,
        n: int,
        mean: float,
        standard_deviation: float,
        significant_digits: int,
        *,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
        license_data: Mapping[str, JSONValue] | None = None,
        user_data: JSONValue = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        call = methods.gaussians(
            n, mean, standard_deviation, significant_digits,
            pregenerated_randomization=pregenerated_randomization,
            signed=SignedOptions(license_data, user_data, ticket_id),
        )  # fmt: skip
        return _signed(await self._call(call))

    async def generate_signed_strings(
        self,
        n: int,
        length: int,
        characters: str,
        *,
        replacement: bool = True,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
        license_data: Mapping[str, JSONValue] | None = None,
        user_data: JSONValue = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        call = methods.strings(
            n, length, characters, replacement=replacement,
            pregenerated_randomization=pregenerated_randomization,
            signed=SignedOptions(license_data, user_data, ticket_id),
        )  # fmt: skip
        return _signed(await self._call(call))

    async def generate_signed_uuids(
        self,
        n: int,
        *,
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
        license_data: Mapping[str, JSONValue] | None = None,
        user_data: JSONValue = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        call = methods.uuids(
            n,
            pregenerated_randomization=pregenerated_randomization,
            signed=SignedOptions(license_data, user_data, ticket_id),
        )
        return _signed(await self._call(call))

    async def generate_signed_blobs(
        self,
        n: int,
        size: int,
        *,
        format: str = "base64",
        pregenerated_randomization: Mapping[str, JSONValue] | None = None,
        license_data: Mapping[str, JSONValue] | None = None,
        user_data: JSONValue = None,
        ticket_id: str | None = None,
    ) -> SignedResult:
        call = methods.blobs(
            n, size, format=format,
            pregenerated_randomization=pregenerated_randomization,
            signed=SignedOptions(license_data, user_data, ticket_id),
        )  # fmt: skip
        return _signed(await self._call(call))

    async def get_result(self, serial_number: int) -> SignedResult:
        """Fetch a previously generated signed result by its serial number."""

        return _signed(await self._call(MethodCall(GET_RESULT_METHOD, {"serialNumber": serial_number})))

    async def create_tickets(self, n: int, show_result: bool) -> list[JSONValue]:
        result = await self._call(MethodCall(CREATE_TICKETS_METHOD, {"n": n, "showResult": show_result}))
        return _result_list(result)

    async def list_tickets(self, ticket_type: str) -> list[JSONValue]:
        if ticket_type not in TICKET_TYPES:
            raise ValueError(f"ticket_type must be one of {sorted(TICKET_TYPES)}")
        result = await self._call(MethodCall(LIST_TICKETS_METHOD, {"ticketType": ticket_type}))
        return _result_list(result)

    async def get_ticket(self, ticket_id: str) -> dict[str, JSONValue]:
        result = await self._call(MethodCall(GET_TICKET_METHOD, {"ticketId": ticket_id}), keyed=False)
        return _result_object(result)

    async def verify_signature(self, random: Mapping[str, JSONValue], signature: str) -> bool:
        result = await self._call(
            MethodCall(VERIFY_SIGNATURE_METHOD, {"random": dict(random), "signature": signature}),
            keyed=False,
        )
        authenticity = _result_object(result).get("authenticity")
        if not isinstance(authenticity, bool):
            raise JSONRPCError("verifySignature reply carries no authenticity flag")
        return authenticity

    async def bits_left(self) -> int:
        return await self._dispatcher.bits_left()

    async def requests_left(self) -> int:
        return await self._dispatcher.requests_left()

    def create_url(self, random: Mapping[str, JSONValue], signature: str) -> str:
        """Build a signature verification form URL for a signed result."""

        url = (
            f"{SIGNATURE_FORM_URL}?format=json"
            f"&random={_format_url_value(_compact_json(random))}"
            f"&signature={_format_url_value(signature)}"
        )
        if len(url) > MAX_URL_LENGTH:
            raise UrlTooLongError(
                f"Error: URL exceeds maximum length ({MAX_URL_LENGTH} characters)."
            )
        return url

    def create_html(self, random: Mapping[str, JSONValue], signature: str) -> str:
        """Build the HTML form that posts a signed result to the verification page."""

        return "\n".join(
            [
                f"<form action='{SIGNATURE_FORM_URL}' method='post'>",
                "  " + _input_html("hidden", "format", "json"),
                "  " + _input_html("hidden", "random", _compact_json(random)),
                "  " + _input_html("hidden", "signature", signature),
                "  <input type='submit' value='Validate' />",
                "</form>",
            ]
        )

    # Caches

    def create_integer_cache(
        self,
        n: int,
        min: int,
        max: int,
        *,
        replacement: bool = True,
        base: int = 10,
        cache_size: int | None = None,
    ) -> RandomCache:
        shape = methods.integer_shape(n, min, max, replacement=replacement, base=base)
        return self._cache(shape, cache_size, methods.DEFAULT_CACHE_SIZE)

    def create_integer_sequence_cache(
        self,
        n: int,
        length: methods.IntOrList,
        min: methods.IntOrList,
        max: methods.IntOrList,
        *,
        replacement: methods.BoolOrList = True,
        base: methods.IntOrList = 10,
        cache_size: int | None = None,
    ) -> RandomCache:
        shape = methods.integer_sequence_shape(
            n, length, min, max, replacement=replacement, base=base
        )
        return self._cache(shape, cache_size, methods.DEFAULT_CACHE_SIZE)

    def create_decimal_fraction_cache(
        self,
        n: int,
        decimal_places: int,
        *,
        replacement: bool = True,
        cache_size: int | None = None,
    ) -> RandomCache:
        shape = methods.decimal_fraction_shape(n, decimal_places, replacement=replacement)
        return self._cache(shape, cache_size, methods.DEFAULT_CACHE_SIZE)

    def create_gaussian_cache(
        self,
        n: int,
        mean: float,
        standard_deviation: float,
        significant_digits: int,
        *,
        cache_size: int | None = None,
    ) -> RandomCache:
        shape = methods.gaussian_shape(n, mean, standard_deviation, significant_digits)
        return self._cache(shape, cache_size, methods.DEFAULT_CACHE_SIZE)

    def create_string_cache(
        self,
        n: int,
        length: int,
        characters: str,
        *,
        replacement: bool = True,
        cache_size: int | None = None,
    ) -> RandomCache:
        shape = methods.string_shape(n, length, characters, replacement=replacement)
        return self._cache(shape, cache_size, methods.DEFAULT_CACHE_SIZE)

    def create_uuid_cache(self, n: int, *, cache_size: int | None = None) -> RandomCache:
        return self._cache(methods.uuid_shape(n), cache_size, methods.DEFAULT_SMALL_CACHE_SIZE)

    def create_blob_cache(
        self,
        n: int,
        size: int,
        *,
        format: str = "base64",
        cache_size: int | None = None,
    ) -> RandomCache:
        shape = methods.blob_shape(n, size, format=format)
        return self._cache(shape, cache_size, methods.DEFAULT_SMALL_CACHE_SIZE)

    def _cache(self, shape: CacheShape, cache_size: int | None, default: int) -> RandomCache:
        cache = RandomCache(
            self._dispatcher,
            shape,
            cache_size=methods.normalize_cache_size(cache_size, default),
            **self._cache_options,
        )
        self._caches.append(cache)
        return cache

    async def _call(self, call: MethodCall, *, keyed: bool = True) -> RpcResult:
        request = new_request(
            call.method,
            call.params,
            api_key=self._dispatcher.api_key if keyed else None,
        )
        return await self._dispatcher.send(request)


def _result_object(result: RpcResult) -> dict[str, JSONValue]:
    if not isinstance(result, dict):
        raise JSONRPCError("reply result is not an object")
    return result


def _random_member(result: RpcResult) -> dict[str, JSONValue]:
    random = _result_object(result).get("random")
    if not isinstance(random, dict):
        raise JSONRPCError("reply carries no random object")
    return random


def _random_data(result: RpcResult) -> list[JSONValue]:
    data = _random_member(result).get("data")
    if not isinstance(data, list):
        raise JSONRPCError("reply carries no random.data array")
    return data


def _signed(result: RpcResult) -> SignedResult:
    signature = _result_object(result).get("signature")
    if not isinstance(signature, str):
        raise JSONRPCError("reply carries no signature")
    return SignedResult(
        data=_random_data(result),
        random=_random_member(result),
        signature=signature,
    )


def _result_list(result: RpcResult) -> list[JSONValue]:
    if not isinstance(result, list):
        raise JSONRPCError("reply result is not an array")
    return result


def _compact_json(value: Mapping[str, JSONValue]) -> str:
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False)


def _format_url_value(text: str) -> str:
    if not _BASE64_PATTERN.fullmatch(text):
        text = base64.b64encode(text.encode("utf-8")).decode("ascii")
    return text.replace("=", "%3D").replace("+", "%2B").replace("/", "%2F")


def _input_html(input_type: str, name: str, value: str) -> str:
    return f"<input type='{input_type}' name='{name}' value='{value}' />"


__all__ = [
    "MAX_URL_LENGTH",
    "RandomOrgClient",
    "SIGNATURE_FORM_URL",
    "SignedResult",
    "TICKET_TYPES",
]
