"""
randomorg-core — unit tests for the client facade

File: tests/unit/test_client.py

Purpose
- Validate one-shot calls, signed results, ticket and signature helpers, verification
  URL/HTML rendering and cache factories against an in-process service fake.

Functional requirements
- No real network calls.
"""

from __future__ import annotations

import asyncio

import pytest

from randomorg_core.client import MAX_URL_LENGTH, RandomOrgClient, SignedResult
from randomorg_core.config import default_config
from randomorg_core.dispatcher import DispatcherRegistry
from randomorg_core.errors import JSONRPCError, UrlTooLongError

from . import TEST_API_KEY, FakeRandomOrgService


def _client(
    service: FakeRandomOrgService,
    registry: DispatcherRegistry | None = None,
) -> RandomOrgClient:
    return RandomOrgClient(
        TEST_API_KEY,
        transport=service,
        default_delay_seconds=0.0,
        registry=registry if registry is not None else DispatcherRegistry(),
    )


async def test_generate_integers_returns_values_and_sends_keyed_request() -> None:
    service = FakeRandomOrgService()
    client = _client(service)

    values = await client.generate_integers(3, 1, 6, replacement=False)

    assert values == [0, 1, 2]
    payload = service.payloads[0]
    assert payload["method"] == "generateIntegers"
    assert payload["params"] == {
        "n": 3,
        "min": 1,
        "max": 6,
        "replacement": False,
        "base": 10,
        "pregeneratedRandomization": None,
        "apiKey": TEST_API_KEY,
    }


async def test_basic_methods_route_to_expected_rpc_methods() -> None:
    service = FakeRandomOrgService()
    client = _client(service)

    await client.generate_integer_sequences(2, 3, 1, 6)
    await client.generate_decimal_fractions(2, 4)
    await client.generate_gaussians(2, 0.0, 1.0, 5)
    await client.generate_strings(2, 5, "abcdef")
    await client.generate_uuids(2)
    await client.generate_blobs(2, 16, format="hex")

    assert [payload["method"] for payload in service.payloads] == [
        "generateIntegerSequences",
        "generateDecimalFractions",
        "generateGaussians",
        "generateStrings",
        "generateUUIDs",
        "generateBlobs",
    ]


async def test_signed_call_returns_signed_result_with_signed_params() -> None:
    service = FakeRandomOrgService()
    client = _client(service)

    result = await client.generate_signed_uuids(2, user_data={"draw": 1}, ticket_id="t-9")

    assert isinstance(result, SignedResult)
    assert result.data == [0, 1]
    assert result.signature == "c2lnbmF0dXJl"
    assert result.random["serialNumber"] == 1
    params = service.payloads[0]["params"]
    assert service.payloads[0]["method"] == "generateSignedUUIDs"
    assert params["userData"] == {"draw": 1}  # type: ignore[index]
    assert params["ticketId"] == "t-9"  # type: ignore[index]
    assert params["licenseData"] is None  # type: ignore[index]


async def test_signed_reply_without_signature_is_protocol_error() -> None:
    service = FakeRandomOrgService()
    service.queue_result("generateSignedIntegers", {"random": {"data": [1]}, "bitsUsed": 3})
    client = _client(service)

    with pytest.raises(JSONRPCError, match="no signature"):
        await client.generate_signed_integers(1, 1, 6)


async def test_get_result_fetches_by_serial_number() -> None:
    service = FakeRandomOrgService()
    service.queue_result(
        "getResult",
        {"random": {"data": [4], "serialNumber": 77}, "signature": "c2ln"},
    )
    client = _client(service)

    result = await client.get_result(77)

    assert result.data == [4]
    assert service.payloads[0]["params"] == {"serialNumber": 77, "apiKey": TEST_API_KEY}


async def test_ticket_helpers_handle_array_and_object_results() -> None:
    service = FakeRandomOrgService()
    service.queue_result("createTickets", [{"ticketId": "a"}, {"ticketId": "b"}])
    service.queue_result("listTickets", [{"ticketId": "a"}])
    service.queue_result("getTicket", {"ticketId": "a", "result": None})
    client = _client(service)

    created = await client.create_tickets(2, True)
    listed = await client.list_tickets("singleton")
    ticket = await client.get_ticket("a")

    assert created == [{"ticketId": "a"}, {"ticketId": "b"}]
    assert listed == [{"ticketId": "a"}]
    assert ticket == {"ticketId": "a", "result": None}
    assert service.payloads[0]["params"] == {"n": 2, "showResult": True, "apiKey": TEST_API_KEY}
    assert service.payloads[2]["params"] == {"ticketId": "a"}


async def test_list_tickets_rejects_unknown_type() -> None:
    client = _client(FakeRandomOrgService())

    with pytest.raises(ValueError, match="ticket_type"):
        await client.list_tickets("middle")


async def test_verify_signature_is_unkeyed_and_returns_authenticity() -> None:
    service = FakeRandomOrgService()
    service.queue_result("verifySignature", {"authenticity": True})
    client = _client(service)

    assert await client.verify_signature({"data": [1]}, "c2ln") is True
    assert service.payloads[0]["params"] == {"random": {"data": [1]}, "signature": "c2ln"}


async def test_verify_signature_requires_boolean_authenticity() -> None:
    service = FakeRandomOrgService()
    service.queue_result("verifySignature", {"authenticity": "yes"})
    client = _client(service)

    with pytest.raises(JSONRPCError, match="authenticity"):
        await client.verify_signature({"data": [1]}, "c2ln")


async def test_allowance_queries_use_usage_request() -> None:
    service = FakeRandomOrgService(bits_left=1234, requests_left=56)
    client = _client(service)

    assert await client.bits_left() == 1234
    assert await client.requests_left() == 56
    assert len(service.calls("getUsage")) == 1


def test_clients_for_same_key_share_one_dispatcher() -> None:
    registry = DispatcherRegistry()
    first = _client(FakeRandomOrgService(), registry)
    second = _client(FakeRandomOrgService(), registry)
    other = RandomOrgClient("another-key", transport=FakeRandomOrgService(), registry=registry)

    assert first.dispatcher is second.dispatcher
    assert other.dispatcher is not first.dispatcher


def test_from_config_applies_client_section() -> None:
    config = default_config()
    config["client"]["blocking_timeout_seconds"] = float("inf")
    config["client"]["default_delay_seconds"] = 2.5

    client = RandomOrgClient.from_config(
        TEST_API_KEY,
        config,
        transport=FakeRandomOrgService(),
        registry=DispatcherRegistry(),
    )

    assert client.dispatcher.blocking_timeout_seconds is None
    assert client.dispatcher.default_delay_seconds == 2.5


def test_create_url_base64_encodes_random_and_escapes_signature() -> None:
    client = _client(FakeRandomOrgService())

    url = client.create_url({"a": 1}, "abcd+/==")

    assert url == (
        "https://api.random.org/signatures/form?format=json"
        "&random=eyJhIjoxfQ%3D%3D"
        "&signature=abcd%2B%2F%3D%3D"
    )


def test_create_url_rejects_overlong_urls() -> None:
    client = _client(FakeRandomOrgService())

    with pytest.raises(UrlTooLongError, match=str(MAX_URL_LENGTH)):
        client.create_url({"data": "x" * 3000}, "c2ln")


def test_create_html_renders_verification_form() -> None:
    client = _client(FakeRandomOrgService())

    html = client.create_html({"a": 1}, "c2ln")

    assert html == "\n".join(
        [
            "<form action='https://api.random.org/signatures/form' method='post'>",
            "  <input type='hidden' name='format' value='json' />",
            "  <input type='hidden' name='random' value='{\"a\":1}' />",
            "  <input type='hidden' name='signature' value='c2ln' />",
            "  <input type='submit' value='Validate' />",
            "</form>",
        ]
    )


async def test_cache_factories_apply_default_sizes() -> None:
    client = _client(FakeRandomOrgService())

    integer_cache = client.create_integer_cache(2, 1, 6)
    uuid_cache = client.create_uuid_cache(1)
    blob_cache = client.create_blob_cache(1, 64, cache_size=1)
    try:
        assert integer_cache.size == 20
        assert integer_cache.bulk_count == 10
        assert uuid_cache.size == 10
        assert blob_cache.size == 2
        assert integer_cache.shape.method == "generateIntegers"
        assert uuid_cache.shape.bit_cost == 122
    finally:
        integer_cache.stop()
        uuid_cache.stop()
        blob_cache.stop()
        await integer_cache.aclose()
        await uuid_cache.aclose()
        await blob_cache.aclose()


async def test_caches_from_one_client_share_the_dispatcher() -> None:
    service = FakeRandomOrgService()
    client = _client(service)

    first = client.create_string_cache(1, 4, "abcd", cache_size=2)
    second = client.create_decimal_fraction_cache(1, 3, cache_size=2)
    try:
        values = await first.get_or_wait()
        other = await second.get_or_wait()
    finally:
        await first.aclose()
        await second.aclose()

    assert len(values) == 1
    assert len(other) == 1
    assert service.max_in_flight == 1


async def test_aclose_stops_caches_created_by_the_client() -> None:
    service = FakeRandomOrgService()
    client = _client(service)
    cache = client.create_integer_cache(1, 1, 6, cache_size=2)
    await cache.get_or_wait()

    await client.aclose()
    sent = len(service.payloads)
    cache.get()
    for _ in range(20):
        await asyncio.sleep(0)

    assert cache.closed
    assert len(service.payloads) == sent
    await client.aclose()
