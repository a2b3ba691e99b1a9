"""Unit tests for config schema defaults, merging and strict validation."""

from __future__ import annotations

import pytest

from randomorg_core.config.schema import (
    DEFAULT_CONFIG,
    ConfigValidationError,
    assert_valid_config,
    blocking_timeout,
    default_config,
    merge_config,
)


def test_default_config_is_valid_and_a_deep_copy() -> None:
    config = default_config()
    config["client"]["endpoint"] = "https://example.invalid"

    assert DEFAULT_CONFIG["client"]["endpoint"] == "https://api.random.org/json-rpc/4/invoke"
    assert assert_valid_config(default_config()) == default_config()


def test_merge_config_is_deep_and_does_not_mutate_inputs() -> None:
    base = {"client": {"endpoint": "https://a", "http_timeout_seconds": 1.0}}
    overlay = {"client": {"http_timeout_seconds": 2.0}, "logging": {"json": False}}

    merged = merge_config(base, overlay)

    assert merged == {
        "client": {"endpoint": "https://a", "http_timeout_seconds": 2.0},
        "logging": {"json": False},
    }
    assert base["client"]["http_timeout_seconds"] == 1.0


def test_root_must_be_mapping() -> None:
    with pytest.raises(ConfigValidationError) as exc_info:
        assert_valid_config(["not", "a", "mapping"])

    assert exc_info.value.issues[0].path == "<root>"


@pytest.mark.parametrize("key", ["password", "token", "apiKey", "client_secret"])
def test_secret_looking_keys_are_rejected_anywhere(key: str) -> None:
    config = merge_config(default_config(), {"cache": {key: "value"}})

    with pytest.raises(ConfigValidationError) as exc_info:
        assert_valid_config(config)

    assert exc_info.value.issues[0].path == f"cache.{key}"
    assert "embedded secret" in exc_info.value.issues[0].message


def test_booleans_are_not_accepted_as_numbers() -> None:
    config = merge_config(default_config(), {"client": {"default_delay_seconds": True}})

    with pytest.raises(ConfigValidationError, match="client.default_delay_seconds"):
        assert_valid_config(config)


def test_only_blocking_timeout_may_be_infinite() -> None:
    unbounded = merge_config(default_config(), {"client": {"blocking_timeout_seconds": float("inf")}})
    assert blocking_timeout(assert_valid_config(unbounded)) is None
    assert blocking_timeout(default_config()) == 86400.0

    invalid = merge_config(default_config(), {"client": {"http_timeout_seconds": float("inf")}})
    with pytest.raises(ConfigValidationError, match="must be finite"):
        assert_valid_config(invalid)
