"""Utility exports for backoff and async signalling helpers."""

from randomorg_core.utils.backoff import BackoffConfig
from randomorg_core.utils.concurrency import WaiterQueue, WakeSignal

__all__ = [
    "BackoffConfig",
    "WaiterQueue",
    "WakeSignal",
]
