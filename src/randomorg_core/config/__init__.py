"""
randomorg-core config package public API.

File: src/randomorg_core/config/__init__.py

Purpose
- Export config loading/validation entrypoints and public error types.

Functional requirements
- Support loading from ``randomorg.toml`` + ``RANDOMORG_`` env overrides.
- Fail fast with clear structured validation/load errors.
"""

from randomorg_core.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    env_name_for_path,
    load_config,
    resolve_api_key,
)
from randomorg_core.config.schema import (
    DEFAULT_CONFIG,
    ConfigError,
    ConfigValidationError,
    ConfigValidationIssue,
    RandomOrgConfig,
    assert_valid_config,
    blocking_timeout,
    default_config,
    merge_config,
)

__all__ = [
    "ConfigError",
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_CONFIG",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "RandomOrgConfig",
    "assert_valid_config",
    "blocking_timeout",
    "default_config",
    "env_name_for_path",
    "load_config",
    "merge_config",
    "resolve_api_key",
]
