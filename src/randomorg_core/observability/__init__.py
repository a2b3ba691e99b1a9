"""Public observability primitives: structured logging setup and redaction."""

from randomorg_core.observability.logging import (
    LoggingConfig,
    LogRedactor,
    StructuredLoggingHandle,
    default_log_redactor,
    get_active_logging_handle,
    setup_logging,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LogRedactor",
    "LoggingConfig",
    "StructuredLoggingHandle",
    "default_log_redactor",
    "get_active_logging_handle",
    "setup_logging",
    "setup_structured_logging",
    "shutdown_logging",
]
