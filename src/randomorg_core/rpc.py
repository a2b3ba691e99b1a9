"""JSON-RPC 2.0 envelope encoding and reply classification for the RANDOM.ORG API."""

from __future__ import annotations

import uuid
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final, TypeAlias

from randomorg_core.errors import (
    InsufficientBitsError,
    InsufficientRequestsError,
    JSONRPCError,
    KeyNotRunningError,
    ServerError,
)

JSONScalar: TypeAlias = str | int | float | bool | None
JSONValue: TypeAlias = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
IdFactory: TypeAlias = Callable[[], str]
RpcResult: TypeAlias = dict[str, JSONValue] | list[JSONValue]

JSONRPC_VERSION: Final[str] = "2.0"

# Basic API
INTEGER_METHOD: Final[str] = "generateIntegers"
INTEGER_SEQUENCE_METHOD: Final[str] = "generateIntegerSequences"
DECIMAL_FRACTION_METHOD: Final[str] = "generateDecimalFractions"
GAUSSIAN_METHOD: Final[str] = "generateGaussians"
STRING_METHOD: Final[str] = "generateStrings"
UUID_METHOD: Final[str] = "generateUUIDs"
BLOB_METHOD: Final[str] = "generateBlobs"
GET_USAGE_METHOD: Final[str] = "getUsage"

# Signed API
SIGNED_INTEGER_METHOD: Final[str] = "generateSignedIntegers"
SIGNED_INTEGER_SEQUENCE_METHOD: Final[str] = "generateSignedIntegerSequences"
SIGNED_DECIMAL_FRACTION_METHOD: Final[str] = "generateSignedDecimalFractions"
SIGNED_GAUSSIAN_METHOD: Final[str] = "generateSignedGaussians"
SIGNED_STRING_METHOD: Final[str] = "generateSignedStrings"
SIGNED_UUID_METHOD: Final[str] = "generateSignedUUIDs"
SIGNED_BLOB_METHOD: Final[str] = "generateSignedBlobs"
GET_RESULT_METHOD: Final[str] = "getResult"
CREATE_TICKETS_METHOD: Final[str] = "createTickets"
LIST_TICKETS_METHOD: Final[str] = "listTickets"
GET_TICKET_METHOD: Final[str] = "getTicket"
VERIFY_SIGNATURE_METHOD: Final[str] = "verifySignature"

# Replies to these methods carry no usage figures or advisory delay.
INDEPENDENT_METHODS: Final[frozenset[str]] = frozenset(
    {
        VERIFY_SIGNATURE_METHOD,
        GET_RESULT_METHOD,
        CREATE_TICKETS_METHOD,
        LIST_TICKETS_METHOD,
        GET_TICKET_METHOD,
    }
)

# https://api.random.org/json-rpc/4/error-codes
RANDOM_ORG_ERROR_CODES: Final[frozenset[int]] = frozenset(
    {
        100, 101,
        200, 201, 202, 203, 204,
        300, 301, 302, 303, 304, 305, 306, 307,
        400, 401, 402, 403, 404, 405,
        420, 421, 422, 423, 424, 425,
        500,
        32000,
    }
)  # fmt: skip


@dataclass(frozen=True, slots=True)
class RpcRequest:
    """One JSON-RPC request envelope."""

    method: str
    params: Mapping[str, JSONValue] = field(default_factory=dict)
    id: str = field(default_factory=lambda: str(uuid.uuid4()))

    def __post_init__(self) -> None:
        if not isinstance(self.method, str) or not self.method.strip():
            raise ValueError("RpcRequest.method cannot be empty")
        object.__setattr__(self, "params", dict(self.params))

    @property
    def is_independent(self) -> bool:
        return self.method in INDEPENDENT_METHODS

    def with_params(self, **overrides: JSONValue) -> RpcRequest:
        """Return a copy with some params replaced and a fresh id."""

        params = dict(self.params)
        params.update(overrides)
        return RpcRequest(method=self.method, params=params)

    def to_payload(self) -> dict[str, JSONValue]:
        return {
            "jsonrpc": JSONRPC_VERSION,
            "method": self.method,
            "params": dict(self.params),
            "id": self.id,
        }


def new_request(
    method: str,
    params: Mapping[str, JSONValue] | None = None,
    *,
    api_key: str | None = None,
    id_factory: IdFactory | None = None,
) -> RpcRequest:
    """Build a request envelope; keyed methods get ``apiKey`` added to params."""

    payload: dict[str, JSONValue] = dict(params or {})
    if api_key is not None:
        payload["apiKey"] = api_key
    if id_factory is None:
        return RpcRequest(method=method, params=payload)
    return RpcRequest(method=method, params=payload, id=id_factory())


def decode_reply(request: RpcRequest, body: object) -> RpcResult:
    """Return the ``result`` member of ``body`` or raise the classified failure.

    Most methods reply with an object; the ticket methods reply with an array.
    """

    if not isinstance(body, Mapping):
        raise JSONRPCError("reply is not a JSON object")
    if body.get("jsonrpc") != JSONRPC_VERSION:
        raise JSONRPCError(f"unexpected jsonrpc version: {body.get('jsonrpc')!r}")

    error = body.get("error")
    if error is not None:
        raise classify_error(error)

    reply_id = body.get("id")
    if reply_id != request.id:
        raise JSONRPCError(f"reply id {reply_id!r} does not match request id {request.id!r}")

    result = body.get("result")
    if isinstance(result, Mapping):
        return dict(result)
    if isinstance(result, list):
        return list(result)
    raise JSONRPCError("reply carries neither result nor error")


def classify_error(error: object) -> Exception:
    """Map a JSON-RPC ``error`` member to a typed failure."""

    if not isinstance(error, Mapping):
        return JSONRPCError("malformed error member")

    code = error.get("code")
    message = str(error.get("message") or "no message")
    data = error.get("data")
    text = f"Error {code}: {message}"

    if code == 401:
        return KeyNotRunningError(text)
    if code == 402:
        return InsufficientRequestsError(text, requests_left=_data_count(data))
    if code == 403:
        return InsufficientBitsError(text, bits_left=_data_count(data))
    if isinstance(code, int) and code in RANDOM_ORG_ERROR_CODES:
        return ServerError(text, server_code=code)
    return JSONRPCError(text, rpc_code=code if isinstance(code, int) else None)


def _data_count(data: object) -> int | None:
    # Allowance errors report [apiKey, remaining] in ``data``.
    if isinstance(data, Sequence) and not isinstance(data, (str, bytes)) and len(data) > 1:
        value = data[1]
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    return None


__all__ = [
    "BLOB_METHOD",
    "CREATE_TICKETS_METHOD",
    "DECIMAL_FRACTION_METHOD",
    "GAUSSIAN_METHOD",
    "GET_RESULT_METHOD",
    "GET_TICKET_METHOD",
    "GET_USAGE_METHOD",
    "INDEPENDENT_METHODS",
    "INTEGER_METHOD",
    "INTEGER_SEQUENCE_METHOD",
    "JSONRPC_VERSION",
    "JSONValue",
    "LIST_TICKETS_METHOD",
    "RANDOM_ORG_ERROR_CODES",
    "RpcRequest",
    "RpcResult",
    "SIGNED_BLOB_METHOD",
    "SIGNED_DECIMAL_FRACTION_METHOD",
    "SIGNED_GAUSSIAN_METHOD",
    "SIGNED_INTEGER_METHOD",
    "SIGNED_INTEGER_SEQUENCE_METHOD",
    "SIGNED_STRING_METHOD",
    "SIGNED_UUID_METHOD",
    "STRING_METHOD",
    "UUID_METHOD",
    "VERIFY_SIGNATURE_METHOD",
    "classify_error",
    "decode_reply",
    "new_request",
]
