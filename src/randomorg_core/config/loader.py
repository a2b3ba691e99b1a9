"""
randomorg-core — runtime config loader.

File: src/randomorg_core/config/loader.py

Purpose
- Load effective runtime config from defaults, TOML file, env vars, and explicit overrides.

What should be included in this file
- Precedence logic: overrides > env (RANDOMORG_) > file > defaults.
- TOML loading via ``tomllib``.
- Deterministic environment variable mapping and coercion.
- API key resolution from the environment variable named by ``client.api_key_env``.

Functional requirements
- Reject invalid or embedded-secret config via schema validation.
"""

from __future__ import annotations

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Final, Literal

from randomorg_core.config.schema import (
    ConfigError,
    assert_valid_config,
    default_config,
    merge_config,
)

DEFAULT_CONFIG_FILE: Final[str] = "randomorg.toml"
ENV_PREFIX: Final[str] = "RANDOMORG_"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})

ValueKind = Literal["str", "float", "bool"]


class ConfigLoadError(ConfigError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with precedence: overrides > env > file > defaults.

    ``overrides`` keys are dotted paths such as ``"client.http_timeout_seconds"``.
    A missing default file is ignored; a missing explicit file is an error.
    """

    resolved_path = _resolve_config_path(config_path)
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_toml_file(resolved_path, required=config_path is not None)
    merged = merge_config(default_config(), file_payload)
    merged = merge_config(merged, _collect_env_overrides(env_map))
    merged = merge_config(merged, _materialize_overrides(overrides or {}))
    return assert_valid_config(merged)


def resolve_api_key(config: Mapping[str, Any], environ: Mapping[str, str] | None = None) -> str:
    """Read the API key from the env var named by ``client.api_key_env``."""

    env_map = os.environ if environ is None else environ
    env_name = config["client"]["api_key_env"]
    value = env_map.get(env_name, "").strip()
    if not value:
        raise ConfigLoadError(f"missing required secret environment variable value: {env_name}")
    return value


def env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _collect_env_overrides(environ: Mapping[str, str]) -> dict[str, Any]:
    overrides: dict[str, Any] = {}
    for path, kind in _bindings():
        env_name = env_name_for_path(path)
        raw = environ.get(env_name)
        if raw is None:
            continue
        _set_nested(overrides, path, _coerce_env(raw, kind, env_name, path))
    return overrides


def _bindings() -> list[tuple[tuple[str, ...], ValueKind]]:
    pairs: list[tuple[tuple[str, ...], ValueKind]] = []
    defaults = default_config()
    for section in sorted(defaults):
        values = defaults[section]  # type: ignore[literal-required]
        for key in sorted(values):
            pairs.append(((section, key), _kind_for_value(values[key])))
    return pairs


def _kind_for_value(value: object) -> ValueKind:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, (int, float)):
        return "float"
    return "str"


def _coerce_env(raw: str, kind: ValueKind, env_name: str, path: tuple[str, ...]) -> object:
    value = raw.strip()
    if kind == "str":
        return value
    if kind == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {'.'.join(path)} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(
        f"{env_name} -> {'.'.join(path)} must be a boolean (true/false/1/0/yes/no/on/off)"
    )


def _materialize_overrides(overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(overrides):
        path = tuple(part for part in key.split(".") if part)
        if len(path) != 2:
            raise ConfigLoadError(f"invalid override key {key!r}; expected 'section.field'")
        _set_nested(payload, path, overrides[key])
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "env_name_for_path",
    "load_config",
    "resolve_api_key",
]
