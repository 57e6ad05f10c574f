"""Configuration loading and validation for ``verus.toml``."""

from verus_orchestrator.config.loader import (
    DEFAULT_CONFIG_FILE,
    ENV_PREFIX,
    ConfigLoadError,
    RuntimeSettings,
    dump_effective_config,
    load_config,
    runtime_settings,
)
from verus_orchestrator.config.schema import (
    ConfigValidationError,
    ConfigValidationIssue,
    assert_valid_config,
    default_config,
    merge_config,
    validate_config,
)

__all__ = [
    "ConfigLoadError",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "RuntimeSettings",
    "assert_valid_config",
    "default_config",
    "dump_effective_config",
    "load_config",
    "merge_config",
    "runtime_settings",
    "validate_config",
]
