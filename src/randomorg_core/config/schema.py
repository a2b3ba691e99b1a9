"""
randomorg-core — configuration schema and validation.

File: src/randomorg_core/config/schema.py

Purpose
- Define the ``randomorg.toml`` shape, built-in defaults and strict validation.

What should be included in this file
- Typed section definitions and deterministic defaults.
- Structured validation issues with dotted paths.
- Rejection of embedded secrets (API keys come from the environment only).

Non-functional requirements
- Validation must be deterministic: same input, same issues, same order.
"""

from __future__ import annotations

import copy
import math
import re
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

LOG_LEVELS: Final[tuple[str, ...]] = ("CRITICAL", "DEBUG", "ERROR", "INFO", "WARNING")

_ENV_NAME_PATTERN = re.compile(r"^[A-Z_][A-Z0-9_]*$")
_SENSITIVE_KEY_TOKENS: Final[frozenset[str]] = frozenset(
    {"apikey", "key", "password", "secret", "token"}
)


class ClientSection(TypedDict):
    endpoint: str
    api_key_env: str
    blocking_timeout_seconds: float
    http_timeout_seconds: float
    default_delay_seconds: float


class CacheSection(TypedDict):
    idle_interval_seconds: float
    backoff_initial_seconds: float
    backoff_max_seconds: float
    backoff_multiplier: float


class LoggingSection(TypedDict):
    level: str
    json: bool


class RandomOrgConfig(TypedDict):
    client: ClientSection
    cache: CacheSection
    logging: LoggingSection


DEFAULT_CONFIG: Final[RandomOrgConfig] = {
    "client": {
        "endpoint": "https://api.random.org/json-rpc/4/invoke",
        "api_key_env": "RANDOMORG_API_KEY",
        "blocking_timeout_seconds": 24 * 60 * 60.0,
        "http_timeout_seconds": 120.0,
        "default_delay_seconds": 1.0,
    },
    "cache": {
        "idle_interval_seconds": 1.0,
        "backoff_initial_seconds": 0.25,
        "backoff_max_seconds": 4.0,
        "backoff_multiplier": 2.0,
    },
    "logging": {
        "level": "INFO",
        "json": True,
    },
}


class ConfigError(ValueError):
    """Base class for configuration failures."""


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


class ConfigValidationError(ConfigError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> RandomOrgConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deep-merge ``overlay`` onto a copy of ``base``."""

    merged: dict[str, Any] = copy.deepcopy(dict(base))
    for key in sorted(overlay):
        value = overlay[key]
        current = merged.get(key)
        if isinstance(value, Mapping) and isinstance(current, Mapping):
            merged[key] = merge_config(current, value)
        else:
            merged[key] = copy.deepcopy(value)
    return merged


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate a fully merged config and raise ``ConfigValidationError`` on failure."""

    issues = _IssueCollector()
    if not isinstance(config, Mapping):
        issues.add("<root>", f"expected object, got {type(config).__name__}")
        raise ConfigValidationError(issues.items())

    _reject_unknown_keys(config, {"client", "cache", "logging"}, "", issues)
    out: dict[str, Any] = {}
    out["client"] = _validate_client(_section(config, "client", issues), issues)
    out["cache"] = _validate_cache(_section(config, "cache", issues), issues)
    out["logging"] = _validate_logging(_section(config, "logging", issues), issues)

    if issues.has_issues:
        raise ConfigValidationError(issues.items())
    return out


def blocking_timeout(config: Mapping[str, Any]) -> float | None:
    """Blocking-wait budget in seconds; ``None`` when configured as ``inf``."""

    value = float(config["client"]["blocking_timeout_seconds"])
    return None if math.isinf(value) else value


def _validate_client(section: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(section, set(DEFAULT_CONFIG["client"]), "client", issues)
    return {
        "endpoint": _as_url(section.get("endpoint"), "client.endpoint", issues),
        "api_key_env": _as_env_name(section.get("api_key_env"), "client.api_key_env", issues),
        "blocking_timeout_seconds": _as_float(
            section.get("blocking_timeout_seconds"),
            "client.blocking_timeout_seconds",
            issues,
            minimum=0.0,
            allow_infinite=True,
        ),
        "http_timeout_seconds": _as_float(
            section.get("http_timeout_seconds"),
            "client.http_timeout_seconds",
            issues,
            minimum=0.001,
        ),
        "default_delay_seconds": _as_float(
            section.get("default_delay_seconds"),
            "client.default_delay_seconds",
            issues,
            minimum=0.0,
        ),
    }


def _validate_cache(section: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(section, set(DEFAULT_CONFIG["cache"]), "cache", issues)
    out = {
        "idle_interval_seconds": _as_float(
            section.get("idle_interval_seconds"), "cache.idle_interval_seconds", issues, minimum=0.001
        ),
        "backoff_initial_seconds": _as_float(
            section.get("backoff_initial_seconds"), "cache.backoff_initial_seconds", issues, minimum=0.0
        ),
        "backoff_max_seconds": _as_float(
            section.get("backoff_max_seconds"), "cache.backoff_max_seconds", issues, minimum=0.0
        ),
        "backoff_multiplier": _as_float(
            section.get("backoff_multiplier"), "cache.backoff_multiplier", issues, minimum=1.0
        ),
    }
    initial = out["backoff_initial_seconds"]
    ceiling = out["backoff_max_seconds"]
    if initial is not None and ceiling is not None and initial > ceiling:
        issues.add("cache.backoff_initial_seconds", "must be <= cache.backoff_max_seconds")
    return out


def _validate_logging(section: Mapping[str, object], issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(section, set(DEFAULT_CONFIG["logging"]), "logging", issues)
    level = section.get("level")
    if isinstance(level, str):
        level = level.strip().upper()
    if level not in LOG_LEVELS:
        issues.add("logging.level", f"invalid value {level!r}; expected one of: {', '.join(LOG_LEVELS)}")
        level = None
    json_enabled = section.get("json")
    if not isinstance(json_enabled, bool):
        issues.add("logging.json", f"expected boolean, got {type(json_enabled).__name__}")
        json_enabled = None
    return {"level": level, "json": json_enabled}


def _section(config: Mapping[str, object], key: str, issues: _IssueCollector) -> Mapping[str, object]:
    raw = config.get(key)
    if not isinstance(raw, Mapping):
        issues.add(key, f"expected object, got {type(raw).__name__}")
        return {}
    return raw


def _as_url(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str) or not value.strip():
        issues.add(path, "expected non-empty string")
        return None
    parsed = value.strip()
    if not parsed.startswith(("https://", "http://")):
        issues.add(path, "must be an http(s) URL")
        return None
    return parsed


def _as_env_name(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str) or not _ENV_NAME_PATTERN.fullmatch(value.strip()):
        issues.add(path, "must be an env var name (example: RANDOMORG_API_KEY)")
        return None
    return value.strip()


def _as_float(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: float | None = None,
    allow_infinite: bool = False,
) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if math.isnan(parsed) or (math.isinf(parsed) and not allow_infinite):
        issues.add(path, "must be finite")
        return None
    if minimum is not None and parsed < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key in allowed:
            continue
        key_path = f"{path}.{key}" if path else key
        if _looks_sensitive_key(key):
            issues.add(key_path, "embedded secret values are forbidden; use client.api_key_env")
        else:
            issues.add(key_path, "unknown field")


def _looks_sensitive_key(key: str) -> bool:
    normalized = re.sub(r"[^a-z0-9]+", "_", key.strip().lower())
    if normalized.endswith("_env"):
        return False
    if normalized.replace("_", "") in _SENSITIVE_KEY_TOKENS:
        return True
    return any(token in _SENSITIVE_KEY_TOKENS for token in normalized.split("_") if token)


__all__ = [
    "CacheSection",
    "ClientSection",
    "ConfigError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_CONFIG",
    "LOG_LEVELS",
    "LoggingSection",
    "RandomOrgConfig",
    "assert_valid_config",
    "blocking_timeout",
    "default_config",
    "merge_config",
]
