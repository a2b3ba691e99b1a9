"""
randomorg-core — unit tests for config loader

File: tests/unit/config/test_loader.py

Purpose
- Validate deterministic config loading from defaults, TOML, env overrides, and explicit overrides.

What this test file should cover
- Precedence: overrides > env > file > defaults.
- Deterministic env var path mapping and type coercion.
- Rejection of embedded secrets and unknown fields.
- API key resolution from the environment.

Functional requirements
- Works without an API key or network.
"""

from __future__ import annotations

import math
from pathlib import Path

import pytest

from randomorg_core.config import (
    ConfigLoadError,
    ConfigValidationError,
    blocking_timeout,
    env_name_for_path,
    load_config,
    resolve_api_key,
)


def _write_config(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


def test_loader_precedence_default_file_env_overrides(tmp_path: Path) -> None:
    config_path = tmp_path / "randomorg.toml"
    default_path = tmp_path / "empty.toml"
    _write_config(default_path, "")
    _write_config(
        config_path,
        """
[client]
http_timeout_seconds = 30
""".strip(),
    )
    env = {"RANDOMORG_CLIENT_HTTP_TIMEOUT_SECONDS": "45"}

    default_loaded = load_config(default_path, environ={})
    file_loaded = load_config(config_path, environ={})
    env_loaded = load_config(config_path, environ=env)
    override_loaded = load_config(
        config_path,
        environ=env,
        overrides={"client.http_timeout_seconds": 60},
    )

    assert default_loaded["client"]["http_timeout_seconds"] == 120.0
    assert file_loaded["client"]["http_timeout_seconds"] == 30.0
    assert env_loaded["client"]["http_timeout_seconds"] == 45.0
    assert override_loaded["client"]["http_timeout_seconds"] == 60.0


def test_missing_default_file_falls_back_to_defaults(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.chdir(tmp_path)

    loaded = load_config(environ={})

    assert loaded["client"]["endpoint"] == "https://api.random.org/json-rpc/4/invoke"
    assert loaded["client"]["api_key_env"] == "RANDOMORG_API_KEY"
    assert loaded["cache"]["backoff_initial_seconds"] == 0.25
    assert loaded["logging"] == {"level": "INFO", "json": True}


def test_missing_explicit_file_is_an_error(tmp_path: Path) -> None:
    with pytest.raises(ConfigLoadError, match="config file not found"):
        load_config(tmp_path / "absent.toml", environ={})


def test_invalid_toml_is_reported(tmp_path: Path) -> None:
    config_path = tmp_path / "randomorg.toml"
    _write_config(config_path, "[client\nendpoint = 1")

    with pytest.raises(ConfigLoadError, match="invalid TOML"):
        load_config(config_path, environ={})


def test_env_values_are_coerced_by_default_type(tmp_path: Path) -> None:
    config_path = tmp_path / "randomorg.toml"
    _write_config(config_path, "")

    loaded = load_config(
        config_path,
        environ={
            "RANDOMORG_LOGGING_JSON": "off",
            "RANDOMORG_LOGGING_LEVEL": "debug",
            "RANDOMORG_CACHE_IDLE_INTERVAL_SECONDS": "0.5",
            "RANDOMORG_CLIENT_BLOCKING_TIMEOUT_SECONDS": "inf",
        },
    )

    assert loaded["logging"] == {"level": "DEBUG", "json": False}
    assert loaded["cache"]["idle_interval_seconds"] == 0.5
    assert math.isinf(loaded["client"]["blocking_timeout_seconds"])
    assert blocking_timeout(loaded) is None


@pytest.mark.parametrize(
    ("name", "value", "message"),
    [
        ("RANDOMORG_CLIENT_HTTP_TIMEOUT_SECONDS", "soon", "must be a number"),
        ("RANDOMORG_LOGGING_JSON", "maybe", "must be a boolean"),
    ],
)
def test_env_coercion_failures_name_the_variable(
    tmp_path: Path, name: str, value: str, message: str
) -> None:
    config_path = tmp_path / "randomorg.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match=message) as exc_info:
        load_config(config_path, environ={name: value})

    assert name in str(exc_info.value)


def test_env_name_mapping_is_deterministic() -> None:
    assert env_name_for_path(("client", "endpoint")) == "RANDOMORG_CLIENT_ENDPOINT"
    assert env_name_for_path(("cache", "backoff_max_seconds")) == "RANDOMORG_CACHE_BACKOFF_MAX_SECONDS"


def test_embedded_api_key_is_rejected(tmp_path: Path) -> None:
    config_path = tmp_path / "randomorg.toml"
    _write_config(
        config_path,
        """
[client]
api_key = "00000000-0000-0000-0000-000000000000"
""".strip(),
    )

    with pytest.raises(ConfigValidationError) as exc_info:
        load_config(config_path, environ={})

    issues = {issue.path: issue.message for issue in exc_info.value.issues}
    assert "client.api_key" in issues
    assert "embedded secret values are forbidden" in issues["client.api_key"]


def test_validation_collects_every_issue(tmp_path: Path) -> None:
    config_path = tmp_path / "randomorg.toml"
    _write_config(
        config_path,
        """
[client]
endpoint = "ftp://example.invalid"
http_timeout_seconds = 0

[cache]
backoff_initial_seconds = 10.0
colour = "blue"

[logging]
level = "LOUD"
""".strip(),
    )

    with pytest.raises(ConfigValidationError) as exc_info:
        load_config(config_path, environ={})

    paths = [issue.path for issue in exc_info.value.issues]
    assert paths == [
        "client.endpoint",
        "client.http_timeout_seconds",
        "cache.colour",
        "cache.backoff_initial_seconds",
        "logging.level",
    ]


def test_override_keys_must_be_dotted_section_fields(tmp_path: Path) -> None:
    config_path = tmp_path / "randomorg.toml"
    _write_config(config_path, "")

    with pytest.raises(ConfigLoadError, match="section.field"):
        load_config(config_path, environ={}, overrides={"endpoint": "https://x"})


def test_resolve_api_key_reads_named_environment_variable(tmp_path: Path) -> None:
    config_path = tmp_path / "randomorg.toml"
    _write_config(config_path, '[client]\napi_key_env = "MY_RANDOM_KEY"\n')
    config = load_config(config_path, environ={})

    assert resolve_api_key(config, {"MY_RANDOM_KEY": "  key-123  "}) == "key-123"
    with pytest.raises(ConfigLoadError, match="MY_RANDOM_KEY"):
        resolve_api_key(config, {"RANDOMORG_API_KEY": "wrong-variable"})
