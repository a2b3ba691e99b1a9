"""
randomorg-core — structured logging

File: src/randomorg_core/observability/logging.py

Purpose
- Route structlog events from the dispatcher, caches and CLI onto one stdlib
  logger tree rooted at ``randomorg_core``.
- Deliver records through a bounded queue so the event loop never blocks on I/O.
- Render JSON lines (default) or ``timestamp LEVEL event key=value`` lines.
- Scrub API keys, bearer tokens and similar secrets before anything is written.

Record layout (JSON)
- ``timestamp`` ISO-8601 UTC with ``Z``; ``level`` upper case; ``logger``;
  ``event``; optional ``fields`` (all bound/call key-values); optional
  ``exception`` (formatted traceback).
"""

from __future__ import annotations

import atexit
import json
import logging
import logging.handlers
import math
import queue
import re
import sys
import threading
import time
from collections.abc import Callable, Mapping, MutableMapping
from dataclasses import dataclass
from datetime import UTC, datetime
from typing import IO, Any, Final

import structlog

JSONScalar = str | int | float | bool | None
JSONValue = JSONScalar | list["JSONValue"] | dict[str, "JSONValue"]
LogRedactor = Callable[[JSONValue], JSONValue]
EventDict = MutableMapping[str, Any]

REDACTED: Final[str] = "***REDACTED***"
PACKAGE_LOGGER: Final[str] = "randomorg_core"

_RESERVED_KEYS: Final[frozenset[str]] = frozenset(
    {"event", "level", "logger", "timestamp", "exception"}
)
_SECRET_KEY_PARTS: Final[tuple[str, ...]] = (
    "apikey",
    "api_key",
    "authorization",
    "credential",
    "password",
    "secret",
    "token",
)
_INLINE_SECRET: Final[re.Pattern[str]] = re.compile(
    r"(?i)\b(api[_-]?key|token|password|secret|authorization)(\"?\s*[:=]\s*\"?)([^\s,;\"}]+)"
)
_BEARER: Final[re.Pattern[str]] = re.compile(r"(?i)\bbearer\s+[A-Za-z0-9._~+/-]+=*")

_active_lock = threading.Lock()
_active: StructuredLoggingHandle | None = None
_atexit_hooked = False


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    logger_name: str = PACKAGE_LOGGER
    level: int | str = "INFO"
    json_lines: bool = True
    queue_size: int = 4096
    stream: IO[str] | None = None
    redactor: LogRedactor | None = None


class _DroppingQueueHandler(logging.handlers.QueueHandler):
    """Enqueues records untouched; a full queue drops the record and counts it."""

    def __init__(self, log_queue: queue.Queue[logging.LogRecord]) -> None:
        super().__init__(log_queue)
        self._dropped = 0
        self._dropped_lock = threading.Lock()

    @property
    def dropped(self) -> int:
        with self._dropped_lock:
            return self._dropped

    def prepare(self, record: logging.LogRecord) -> logging.LogRecord:
        # Rendering happens on the listener thread.
        return record

    def enqueue(self, record: logging.LogRecord) -> None:
        try:
            self.queue.put_nowait(record)
        except queue.Full:
            with self._dropped_lock:
                self._dropped += 1


class StructuredLoggingHandle:
    """Owns the queue listener and sink installed by ``setup_structured_logging``."""

    def __init__(
        self,
        logger: logging.Logger,
        log_queue: queue.Queue[logging.LogRecord],
        queue_handler: _DroppingQueueHandler,
        sink: logging.Handler,
    ) -> None:
        self.logger = logger
        self._queue = log_queue
        self._queue_handler = queue_handler
        self._sink = sink
        self._listener = logging.handlers.QueueListener(log_queue, sink, respect_handler_level=True)
        self._closed = False
        self._close_lock = threading.Lock()

    @property
    def dropped_records(self) -> int:
        return self._queue_handler.dropped

    @property
    def is_shutdown(self) -> bool:
        return self._closed

    def start(self) -> None:
        self._listener.start()
        self.logger.addHandler(self._queue_handler)

    def flush(self, *, timeout_seconds: float = 2.0) -> None:
        """Wait until queued records are written, or the timeout expires."""

        deadline = time.monotonic() + max(0.0, timeout_seconds)
        while self._queue.unfinished_tasks and time.monotonic() < deadline:
            time.sleep(0.005)
        self._sink.flush()

    def shutdown(self, *, timeout_seconds: float = 2.0) -> None:
        with self._close_lock:
            if self._closed:
                return
            self.flush(timeout_seconds=timeout_seconds)
            self._listener.stop()
            self.logger.removeHandler(self._queue_handler)
            self._queue_handler.close()
            self._sink.close()
            self._closed = True


def setup_logging(section: Mapping[str, object] | None = None) -> logging.Logger:
    """Apply the ``[logging]`` config section and return the package logger."""

    options = dict(section or {})
    level = options.get("level", "INFO")
    handle = setup_structured_logging(
        LoggingConfig(
            level=level if isinstance(level, (int, str)) else "INFO",
            json_lines=bool(options.get("json", True)),
        )
    )
    return handle.logger


def setup_structured_logging(config: LoggingConfig) -> StructuredLoggingHandle:
    """Install queue-backed output on ``config.logger_name`` and point structlog at it.

    Any previously active setup is shut down first.
    """

    if config.queue_size <= 0:
        raise ValueError("queue_size must be > 0")
    level = _level_number(config.level)
    redactor = config.redactor or default_log_redactor

    global _active
    with _active_lock:
        previous, _active = _active, None
    if previous is not None:
        previous.shutdown()

    renderer: Callable[..., str]
    if config.json_lines:
        renderer = structlog.processors.JSONRenderer(
            sort_keys=True, separators=(",", ":"), ensure_ascii=False
        )
    else:
        renderer = _render_key_value
    sink = logging.StreamHandler(config.stream if config.stream is not None else sys.stderr)
    sink.setLevel(level)
    sink.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=[
                structlog.stdlib.add_logger_name,
                structlog.stdlib.add_log_level,
                structlog.processors.TimeStamper(fmt="iso", utc=True),
                structlog.processors.format_exc_info,
            ],
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                _upper_level,
                _nest_fields,
                _Redact(redactor),
                renderer,
            ],
        )
    )

    logger = logging.getLogger(config.logger_name)
    logger.setLevel(level)
    logger.propagate = False
    for stale in list(logger.handlers):
        logger.removeHandler(stale)
        stale.close()

    log_queue: queue.Queue[logging.LogRecord] = queue.Queue(maxsize=config.queue_size)
    handle = StructuredLoggingHandle(logger, log_queue, _DroppingQueueHandler(log_queue), sink)
    handle.start()

    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.format_exc_info,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )

    with _active_lock:
        _active = handle
    _hook_atexit()
    return handle


def shutdown_logging(
    handle: StructuredLoggingHandle | None = None,
    *,
    timeout_seconds: float = 2.0,
) -> None:
    """Stop delivery, close the sink and put structlog back on its defaults. Idempotent."""

    global _active
    target = handle if handle is not None else get_active_logging_handle()
    if target is None:
        return
    target.shutdown(timeout_seconds=timeout_seconds)
    with _active_lock:
        if _active is target:
            _active = None
            structlog.reset_defaults()


def get_active_logging_handle() -> StructuredLoggingHandle | None:
    with _active_lock:
        return _active


def default_log_redactor(value: JSONValue) -> JSONValue:
    """Mask secret-named keys at any depth and inline ``key=value`` / bearer secrets."""

    return _scrub(_jsonable(value), secret_key=False)


def _hook_atexit() -> None:
    global _atexit_hooked
    if not _atexit_hooked:
        atexit.register(shutdown_logging)
        _atexit_hooked = True


def _level_number(level: int | str) -> int:
    if isinstance(level, int):
        return level
    number = logging.getLevelName(level.strip().upper())
    if not isinstance(number, int):
        raise ValueError(f"unsupported logging level {level!r}")
    return number


def _upper_level(_logger: object, _name: str, event_dict: EventDict) -> EventDict:
    level = str(event_dict.get("level", "info")).upper()
    event_dict["level"] = "WARNING" if level == "WARN" else level
    return event_dict


def _nest_fields(_logger: object, _name: str, event_dict: EventDict) -> EventDict:
    fields = {
        key: _jsonable(event_dict.pop(key))
        for key in [key for key in event_dict if key not in _RESERVED_KEYS]
    }
    if fields:
        event_dict["fields"] = fields
    event_dict["event"] = str(event_dict.get("event", ""))
    return event_dict


class _Redact:
    __slots__ = ("_redactor",)

    def __init__(self, redactor: LogRedactor) -> None:
        self._redactor = redactor

    def __call__(self, _logger: object, _name: str, event_dict: EventDict) -> EventDict:
        for key in ("event", "fields", "exception"):
            if key in event_dict:
                event_dict[key] = self._redactor(event_dict[key])
        return event_dict


def _render_key_value(_logger: object, _name: str, event_dict: EventDict) -> str:
    parts = [str(event_dict.get("timestamp", "")), str(event_dict["level"]), str(event_dict["event"])]
    fields = event_dict.get("fields") or {}
    parts.extend(f"{key}={_plain(fields[key])}" for key in sorted(fields))
    line = " ".join(parts)
    if "exception" in event_dict:
        line = f"{line}\n{event_dict['exception']}"
    return line


def _plain(value: object) -> str:
    if isinstance(value, str):
        return value
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


def _jsonable(value: object) -> JSONValue:
    if value is None or isinstance(value, (bool, int, str)):
        return value
    if isinstance(value, float):
        return value if math.isfinite(value) else str(value)
    if isinstance(value, datetime):
        aware = value if value.tzinfo is not None else value.replace(tzinfo=UTC)
        return aware.astimezone(UTC).isoformat().replace("+00:00", "Z")
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    if isinstance(value, Mapping):
        return {str(key): _jsonable(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_jsonable(item) for item in value]
    return repr(value)


def _scrub(value: JSONValue, *, secret_key: bool) -> JSONValue:
    if secret_key:
        return REDACTED
    if isinstance(value, str):
        masked = _INLINE_SECRET.sub(lambda m: f"{m.group(1)}{m.group(2)}{REDACTED}", value)
        return _BEARER.sub(f"Bearer {REDACTED}", masked)
    if isinstance(value, list):
        return [_scrub(item, secret_key=False) for item in value]
    if isinstance(value, dict):
        return {key: _scrub(item, secret_key=_is_secret_key(key)) for key, item in value.items()}
    return value


def _is_secret_key(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in _SECRET_KEY_PARTS)


__all__ = [
    "JSONScalar",
    "JSONValue",
    "LogRedactor",
    "LoggingConfig",
    "PACKAGE_LOGGER",
    "REDACTED",
    "StructuredLoggingHandle",
    "default_log_redactor",
    "get_active_logging_handle",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
