"""
randomorg-core — RANDOM.ORG JSON-RPC access layer

File: src/randomorg_core/__init__.py

Purpose
- Package root. Exports the client, the per-credential dispatcher, the
  self-populating cache and the error taxonomy.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from randomorg_core.cache import CacheHit, CacheMiss, CacheResult, CacheState, RandomCache
from randomorg_core.client import RandomOrgClient, SignedResult
from randomorg_core.dispatcher import Allowance, Dispatcher, DispatcherRegistry, default_registry
from randomorg_core.errors import (
    BadResponseError,
    CacheEmptyError,
    InsufficientBitsError,
    InsufficientRequestsError,
    JSONRPCError,
    KeyNotRunningError,
    RandomOrgError,
    SendTimeoutError,
    ServerError,
    TransportTimeoutError,
    UrlTooLongError,
)
from randomorg_core.transport import HttpTransport, Transport

__version__ = "0.1.0"

__all__ = [
    "Allowance",
    "BadResponseError",
    "CacheEmptyError",
    "CacheHit",
    "CacheMiss",
    "CacheResult",
    "CacheState",
    "Dispatcher",
    "DispatcherRegistry",
    "HttpTransport",
    "InsufficientBitsError",
    "InsufficientRequestsError",
    "JSONRPCError",
    "KeyNotRunningError",
    "RandomCache",
    "RandomOrgClient",
    "RandomOrgError",
    "SendTimeoutError",
    "ServerError",
    "SignedResult",
    "Transport",
    "TransportTimeoutError",
    "UrlTooLongError",
    "__version__",
    "default_registry",
]
