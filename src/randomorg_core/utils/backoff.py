"""Retry pacing for cache replenishment after a failed batch."""

from __future__ import annotations

import random
from collections.abc import Callable
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BackoffConfig:
    """Pause of ``initial * multiplier ** (failures - 1)`` seconds, capped at ``max``.

    ``jitter_ratio`` spreads each pause uniformly over ``delay * (1 +/- ratio)``;
    the cap still applies afterwards.
    """

    initial_delay_seconds: float = 0.25
    multiplier: float = 2.0
    max_delay_seconds: float = 4.0
    jitter_ratio: float = 0.0

    def __post_init__(self) -> None:
        problems: list[str] = []
        if self.initial_delay_seconds < 0:
            problems.append("initial_delay_seconds must be >= 0")
        if self.multiplier < 1.0:
            problems.append("multiplier must be >= 1.0")
        if self.max_delay_seconds < self.initial_delay_seconds:
            problems.append("max_delay_seconds must be >= initial_delay_seconds")
        if not 0.0 <= self.jitter_ratio <= 1.0:
            problems.append("jitter_ratio must be within [0.0, 1.0]")
        if problems:
            raise ValueError("; ".join(problems))

    def delay_for(
        self,
        failures: int,
        *,
        random_fn: Callable[[], float] = random.random,
    ) -> float:
        """Seconds to pause after ``failures`` consecutive failed batches."""

        if failures < 1:
            raise ValueError(f"failures must be >= 1, got {failures}")

        try:
            delay = self.initial_delay_seconds * self.multiplier ** (failures - 1)
        except OverflowError:
            delay = self.max_delay_seconds
        delay = min(delay, self.max_delay_seconds)
        if not self.jitter_ratio:
            return delay

        spread = delay * self.jitter_ratio * (2.0 * random_fn() - 1.0)
        return min(self.max_delay_seconds, max(0.0, delay + spread))


__all__ = ["BackoffConfig"]
