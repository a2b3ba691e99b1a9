"""
randomorg-core — request shaping

File: src/randomorg_core/methods.py

Purpose
- Build the ``params`` member for every generation method (basic and signed).
- Describe cacheable request shapes: bulk eligibility, per-set bit cost, and how
  a reply is cut back into result-sets.

Functional requirements
- Pure data shaping; no I/O and no shared state.
- ``pregeneratedRandomization`` is sent with every generation method; signed
  methods also carry ``licenseData``, ``userData`` and ``ticketId``.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Final, TypeAlias

from randomorg_core.rpc import (
    BLOB_METHOD,
    DECIMAL_FRACTION_METHOD,
    GAUSSIAN_METHOD,
    INTEGER_METHOD,
    INTEGER_SEQUENCE_METHOD,
    JSONValue,
    SIGNED_BLOB_METHOD,
    SIGNED_DECIMAL_FRACTION_METHOD,
    SIGNED_GAUSSIAN_METHOD,
    SIGNED_INTEGER_METHOD,
    SIGNED_INTEGER_SEQUENCE_METHOD,
    SIGNED_STRING_METHOD,
    SIGNED_UUID_METHOD,
    STRING_METHOD,
    UUID_METHOD,
)

SUPPORTED_BASES: Final[frozenset[int]] = frozenset({2, 8, 10, 16})
BLOB_FORMATS: Final[frozenset[str]] = frozenset({"base64", "hex"})
UUID_BITS: Final[int] = 122

DEFAULT_CACHE_SIZE: Final[int] = 20
DEFAULT_SMALL_CACHE_SIZE: Final[int] = 10
MIN_CACHE_SIZE: Final[int] = 2

IntOrList: TypeAlias = int | Sequence[int]
BoolOrList: TypeAlias = bool | Sequence[bool]


@dataclass(frozen=True, slots=True)
class MethodCall:
    """A method name plus its ``params`` member, ready for ``new_request``."""

    method: str
    params: Mapping[str, JSONValue] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class SignedOptions:
    """Optional parameters accepted only by the Signed API."""

    license_data: Mapping[str, JSONValue] | None = None
    user_data: JSONValue = None
    ticket_id: str | None = None


@dataclass(frozen=True, slots=True)
class CacheShape:
    """A fixed request shape that a cache replenishes.

    ``params`` describe exactly one result-set of ``set_size`` values.
    ``repeated_params`` name per-value list params (multiform sequences) that
    must be repeated once per result-set in a bulk request.
    """

    method: str
    params: Mapping[str, JSONValue]
    set_size: int
    bulk: bool
    bit_cost: int
    repeated_params: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if self.set_size <= 0:
            raise ValueError("set_size must be > 0")
        if self.bit_cost <= 0:
            raise ValueError("bit_cost must be > 0")
        object.__setattr__(self, "params", dict(self.params))
        object.__setattr__(self, "repeated_params", tuple(self.repeated_params))

    def request_params(self, sets: int = 1) -> dict[str, JSONValue]:
        """Params asking for ``sets`` result-sets in a single exchange."""

        if sets <= 0:
            raise ValueError("sets must be > 0")
        if sets > 1 and not self.bulk:
            raise ValueError("shape does not allow bulk requests")
        params = dict(self.params)
        params["n"] = self.set_size * sets
        for name in self.repeated_params:
            value = params.get(name)
            if isinstance(value, list):
                params[name] = value * sets
        return params

    def split(self, data: Sequence[JSONValue], sets: int) -> list[list[JSONValue]]:
        """Cut a reply's ``random.data`` back into ``sets`` result-sets, in order."""

        expected = self.set_size * sets
        if len(data) != expected:
            raise ValueError(f"expected {expected} values, got {len(data)}")
        return [list(data[i : i + self.set_size]) for i in range(0, expected, self.set_size)]


def normalize_cache_size(cache_size: int | None, default: int = DEFAULT_CACHE_SIZE) -> int:
    if not cache_size:
        return default
    return max(MIN_CACHE_SIZE, int(cache_size))


def bulk_count(cache_size: int) -> int:
    return max(1, normalize_cache_size(cache_size) // 2)


# Basic and signed request builders.


def integers(
    n: int,
    min: int,
    max: int,
    *,
    replacement: bool = True,
    base: int = 10,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    signed: SignedOptions | None = None,
) -> MethodCall:
    _require_count(n)
    _require_base(base)
    params: dict[str, JSONValue] = {
        "n": n,
        "min": min,
        "max": max,
        "replacement": replacement,
        "base": base,
    }
    return _finish(INTEGER_METHOD, SIGNED_INTEGER_METHOD, params, pregenerated_randomization, signed)


def integer_sequences(
    n: int,
    length: IntOrList,
    min: IntOrList,
    max: IntOrList,
    *,
    replacement: BoolOrList = True,
    base: IntOrList = 10,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    signed: SignedOptions | None = None,
) -> MethodCall:
    """Uniform sequences take scalars; multiform sequences take one list entry per sequence."""

    _require_count(n)
    for name, value in (("length", length), ("min", min), ("max", max), ("replacement", replacement)):
        _require_list_len(name, value, n)
    _require_list_len("base", base, n)
    for value in _as_list(base):
        _require_base(value)
    params: dict[str, JSONValue] = {
        "n": n,
        "length": _json_value(length),
        "min": _json_value(min),
        "max": _json_value(max),
        "replacement": _json_value(replacement),
        "base": _json_value(base),
    }
    return _finish(
        INTEGER_SEQUENCE_METHOD,
        SIGNED_INTEGER_SEQUENCE_METHOD,
        params,
        pregenerated_randomization,
        signed,
    )


def decimal_fractions(
    n: int,
    decimal_places: int,
    *,
    replacement: bool = True,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    signed: SignedOptions | None = None,
) -> MethodCall:
    _require_count(n)
    _require_count(decimal_places, name="decimal_places")
    params: dict[str, JSONValue] = {
        "n": n,
        "decimalPlaces": decimal_places,
        "replacement": replacement,
    }
    return _finish(
        DECIMAL_FRACTION_METHOD,
        SIGNED_DECIMAL_FRACTION_METHOD,
        params,
        pregenerated_randomization,
        signed,
    )


def gaussians(
    n: int,
    mean: float,
    standard_deviation: float,
    significant_digits: int,
    *,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    signed: SignedOptions | None = None,
) -> MethodCall:
    _require_count(n)
    _require_count(significant_digits, name="significant_digits")
    params: dict[str, JSONValue] = {
        "n": n,
        "mean": mean,
        "standardDeviation": standard_deviation,
        "significantDigits": significant_digits,
    }
    return _finish(GAUSSIAN_METHOD, SIGNED_GAUSSIAN_METHOD, params, pregenerated_randomization, signed)


def strings(
    n: int,
    length: int,
    characters: str,
    *,
    replacement: bool = True,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    signed: SignedOptions | None = None,
) -> MethodCall:
    _require_count(n)
    _require_count(length, name="length")
    if not isinstance(characters, str) or not characters:
        raise ValueError("characters cannot be empty")
    params: dict[str, JSONValue] = {
        "n": n,
        "length": length,
        "characters": characters,
        "replacement": replacement,
    }
    return _finish(STRING_METHOD, SIGNED_STRING_METHOD, params, pregenerated_randomization, signed)


def uuids(
    n: int,
    *,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    signed: SignedOptions | None = None,
) -> MethodCall:
    _require_count(n)
    return _finish(UUID_METHOD, SIGNED_UUID_METHOD, {"n": n}, pregenerated_randomization, signed)


def blobs(
    n: int,
    size: int,
    *,
    format: str = "base64",
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
    signed: SignedOptions | None = None,
) -> MethodCall:
    """``size`` is in bits and must be divisible by 8."""

    _require_count(n)
    _require_count(size, name="size")
    if size % 8 != 0:
        raise ValueError("size must be divisible by 8")
    if format not in BLOB_FORMATS:
        raise ValueError(f"format must be one of {sorted(BLOB_FORMATS)}")
    params: dict[str, JSONValue] = {"n": n, "size": size, "format": format}
    return _finish(BLOB_METHOD, SIGNED_BLOB_METHOD, params, pregenerated_randomization, signed)


# Cache shapes.


def integer_shape(
    n: int,
    min: int,
    max: int,
    *,
    replacement: bool = True,
    base: int = 10,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
) -> CacheShape:
    call = integers(
        n,
        min,
        max,
        replacement=replacement,
        base=base,
        pregenerated_randomization=pregenerated_randomization,
    )
    return CacheShape(
        method=call.method,
        params=call.params,
        set_size=n,
        bulk=replacement is True,
        bit_cost=_bits(math.log2(max - min + 1) * n),
    )


def integer_sequence_shape(
    n: int,
    length: IntOrList,
    min: IntOrList,
    max: IntOrList,
    *,
    replacement: BoolOrList = True,
    base: IntOrList = 10,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
) -> CacheShape:
    call = integer_sequences(
        n,
        length,
        min,
        max,
        replacement=replacement,
        base=base,
        pregenerated_randomization=pregenerated_randomization,
    )
    span = _largest(max) - _smallest(min) + 1
    repeated = tuple(
        name
        for name in ("length", "min", "max", "replacement", "base")
        if isinstance(call.params[name], list)
    )
    return CacheShape(
        method=call.method,
        params=call.params,
        set_size=n,
        bulk=all(value is True for value in _as_list(replacement)),
        bit_cost=_bits(math.log2(span) * n * _largest(length)),
        repeated_params=repeated,
    )


def decimal_fraction_shape(
    n: int,
    decimal_places: int,
    *,
    replacement: bool = True,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
) -> CacheShape:
    call = decimal_fractions(
        n,
        decimal_places,
        replacement=replacement,
        pregenerated_randomization=pregenerated_randomization,
    )
    return CacheShape(
        method=call.method,
        params=call.params,
        set_size=n,
        bulk=replacement is True,
        bit_cost=_bits(math.log2(10) * decimal_places * n),
    )


def gaussian_shape(
    n: int,
    mean: float,
    standard_deviation: float,
    significant_digits: int,
    *,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
) -> CacheShape:
    call = gaussians(
        n,
        mean,
        standard_deviation,
        significant_digits,
        pregenerated_randomization=pregenerated_randomization,
    )
    return CacheShape(
        method=call.method,
        params=call.params,
        set_size=n,
        bulk=True,
        bit_cost=_bits(math.log2(10**significant_digits) * n),
    )


def string_shape(
    n: int,
    length: int,
    characters: str,
    *,
    replacement: bool = True,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
) -> CacheShape:
    call = strings(
        n,
        length,
        characters,
        replacement=replacement,
        pregenerated_randomization=pregenerated_randomization,
    )
    return CacheShape(
        method=call.method,
        params=call.params,
        set_size=n,
        bulk=replacement is True,
        bit_cost=_bits(math.log2(len(characters)) * length * n),
    )


def uuid_shape(
    n: int,
    *,
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
) -> CacheShape:
    call = uuids(n, pregenerated_randomization=pregenerated_randomization)
    return CacheShape(
        method=call.method,
        params=call.params,
        set_size=n,
        bulk=True,
        bit_cost=UUID_BITS * n,
    )


def blob_shape(
    n: int,
    size: int,
    *,
    format: str = "base64",
    pregenerated_randomization: Mapping[str, JSONValue] | None = None,
) -> CacheShape:
    call = blobs(n, size, format=format, pregenerated_randomization=pregenerated_randomization)
    return CacheShape(
        method=call.method,
        params=call.params,
        set_size=n,
        bulk=True,
        bit_cost=size * n,
    )


def _finish(
    basic_method: str,
    signed_method: str,
    params: dict[str, JSONValue],
    pregenerated_randomization: Mapping[str, JSONValue] | None,
    signed: SignedOptions | None,
) -> MethodCall:
    params["pregeneratedRandomization"] = (
        dict(pregenerated_randomization) if pregenerated_randomization is not None else None
    )
    if signed is None:
        return MethodCall(method=basic_method, params=params)
    params["licenseData"] = dict(signed.license_data) if signed.license_data is not None else None
    params["userData"] = signed.user_data
    params["ticketId"] = signed.ticket_id
    return MethodCall(method=signed_method, params=params)


def _bits(value: float) -> int:
    # A set drawn from a single possible value still costs one bit of accounting.
    return max(1, math.ceil(value))


def _require_count(value: int, *, name: str = "n") -> None:
    if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
        raise ValueError(f"{name} must be a positive integer")


def _require_base(base: int) -> None:
    if base not in SUPPORTED_BASES:
        raise ValueError(f"base must be one of {sorted(SUPPORTED_BASES)}")


def _require_list_len(name: str, value: object, n: int) -> None:
    if isinstance(value, (list, tuple)) and len(value) != n:
        raise ValueError(f"{name} must have exactly n={n} entries")


def _as_list(value: object) -> list[object]:
    if isinstance(value, (list, tuple)):
        return list(value)
    return [value]


def _json_value(value: object) -> JSONValue:
    if isinstance(value, tuple):
        return list(value)
    return value  # type: ignore[return-value]


def _largest(value: IntOrList) -> int:
    return max(_as_list(value))  # type: ignore[type-var]


def _smallest(value: IntOrList) -> int:
    return min(_as_list(value))  # type: ignore[type-var]


__all__ = [
    "BLOB_FORMATS",
    "CacheShape",
    "DEFAULT_CACHE_SIZE",
    "DEFAULT_SMALL_CACHE_SIZE",
    "MIN_CACHE_SIZE",
    "MethodCall",
    "SUPPORTED_BASES",
    "SignedOptions",
    "UUID_BITS",
    "blob_shape",
    "blobs",
    "bulk_count",
    "decimal_fraction_shape",
    "decimal_fractions",
    "gaussian_shape",
    "gaussians",
    "integer_sequence_shape",
    "integer_sequences",
    "integer_shape",
    "integers",
    "normalize_cache_size",
    "string_shape",
    "strings",
    "uuid_shape",
    "uuids",
]
