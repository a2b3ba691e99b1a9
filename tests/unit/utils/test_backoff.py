"""Unit tests for replenishment retry pacing."""

from __future__ import annotations

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from randomorg_core.utils.backoff import BackoffConfig


def test_delays_double_until_capped() -> None:
    config = BackoffConfig()

    delays = [config.delay_for(failures) for failures in range(1, 8)]

    assert delays == [0.25, 0.5, 1.0, 2.0, 4.0, 4.0, 4.0]


def test_jitter_uses_injected_random_source() -> None:
    config = BackoffConfig(initial_delay_seconds=1.0, max_delay_seconds=10.0, jitter_ratio=0.5)

    assert config.delay_for(1, random_fn=lambda: 0.0) == 0.5
    assert config.delay_for(1, random_fn=lambda: 1.0) == 1.5


def test_long_outages_stay_at_the_cap() -> None:
    assert BackoffConfig().delay_for(5_000) == 4.0


@settings(max_examples=80, deadline=None)
@given(
    failures=st.integers(min_value=1, max_value=200),
    random_value=st.floats(min_value=0.0, max_value=1.0),
)
def test_delay_never_exceeds_ceiling(failures: int, random_value: float) -> None:
    config = BackoffConfig(jitter_ratio=1.0)

    delay = config.delay_for(failures, random_fn=lambda: random_value)

    assert 0.0 <= delay <= config.max_delay_seconds


@pytest.mark.parametrize(
    "kwargs",
    [
        {"initial_delay_seconds": -1.0},
        {"multiplier": 0.5},
        {"initial_delay_seconds": 5.0, "max_delay_seconds": 1.0},
        {"jitter_ratio": 1.5},
    ],
)
def test_config_validation(kwargs: dict[str, float]) -> None:
    with pytest.raises(ValueError):
        BackoffConfig(**kwargs)


def test_failures_are_counted_from_one() -> None:
    with pytest.raises(ValueError, match="failures must be >= 1"):
        BackoffConfig().delay_for(0)
