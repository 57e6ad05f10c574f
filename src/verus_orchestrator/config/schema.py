"""
verus-orchestrator: configuration schema and validation.

File: src/verus_orchestrator/config/schema.py

Purpose
- Define authoritative configuration defaults and strict validation rules.

Functional requirements
- Validate config payloads and return structured errors (field path + message).
- Reject unknown keys at every level.
- Deterministic deep-merge for layering defaults, file, env, and CLI values.
"""

from __future__ import annotations

import copy
import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Any, Final, TypedDict

from verus_orchestrator.constants import (
    CACHE_DIR,
    CONFIG_SCHEMA_VERSION,
    DEFAULT_MANIFEST,
    LOG_DIR,
    OUTPUT_DIR,
)
from verus_orchestrator.sandbox.environment import DEFAULT_EXTRA_BIN_DIRS, DEFAULT_MANAGER_BIN_DIRS
from verus_orchestrator.toolchain.acquisition import DEFAULT_VERSION
from verus_orchestrator.toolchain.platforms import Platform
from verus_orchestrator.utils.hashing import normalize_sha256

ConfigSchemaVersion: Final[int] = CONFIG_SCHEMA_VERSION
HOST_PLATFORM: Final[str] = "host"
LOG_LEVELS: Final[tuple[str, ...]] = ("DEBUG", "INFO", "WARNING", "ERROR")

# Config paths normalized relative to the config file location.
PATH_FIELDS: Final[tuple[tuple[str, ...], ...]] = (
    ("toolchain", "root"),
    ("paths", "manifest"),
    ("paths", "output_dir"),
    ("paths", "cache_dir"),
    ("observability", "log_dir"),
)


class MetaConfig(TypedDict):
    schema_version: int


class ToolchainConfig(TypedDict):
    version: str
    platform: str
    root: str
    rust_toolchain: str
    sha256: str


class PathsConfig(TypedDict):
    manifest: str
    output_dir: str
    cache_dir: str


class ExecutionConfig(TypedDict):
    max_workers: int
    timeout_seconds: float
    keep_going: bool


class EnvironmentConfig(TypedDict):
    manager_bin_dirs: list[str]
    extra_bin_dirs: list[str]


class ObservabilityConfig(TypedDict):
    log_level: str
    log_dir: str
    log_to_stdout: bool


class VerusConfig(TypedDict):
    meta: MetaConfig
    toolchain: ToolchainConfig
    paths: PathsConfig
    execution: ExecutionConfig
    environment: EnvironmentConfig
    observability: ObservabilityConfig


DEFAULT_CONFIG: Final[VerusConfig] = {
    "meta": {"schema_version": CONFIG_SCHEMA_VERSION},
    "toolchain": {
        "version": DEFAULT_VERSION,
        "platform": HOST_PLATFORM,
        "root": "",
        "rust_toolchain": "",
        "sha256": "",
    },
    "paths": {
        "manifest": DEFAULT_MANIFEST.as_posix(),
        "output_dir": OUTPUT_DIR.as_posix(),
        "cache_dir": CACHE_DIR.as_posix(),
    },
    "execution": {
        "max_workers": 4,
        "timeout_seconds": 3600.0,
        "keep_going": True,
    },
    "environment": {
        "manager_bin_dirs": list(DEFAULT_MANAGER_BIN_DIRS),
        "extra_bin_dirs": list(DEFAULT_EXTRA_BIN_DIRS),
    },
    "observability": {
        "log_level": "INFO",
        "log_dir": (CACHE_DIR / LOG_DIR).as_posix(),
        "log_to_stdout": False,
    },
}


@dataclass(frozen=True, slots=True)
class ConfigValidationIssue:
    """Single structured validation failure."""

    path: str
    message: str


@dataclass(frozen=True, slots=True)
class ConfigValidationResult:
    config: dict[str, Any] | None
    issues: tuple[ConfigValidationIssue, ...]

    @property
    def is_valid(self) -> bool:
        return self.config is not None and not self.issues


class ConfigValidationError(ValueError):
    """Raised when strict config validation fails."""

    def __init__(self, issues: Sequence[ConfigValidationIssue]) -> None:
        self.issues = tuple(issues)
        if not self.issues:
            rendered = "unknown validation failure"
        else:
            rendered = "\n".join(f"- {item.path}: {item.message}" for item in self.issues)
        super().__init__(f"invalid config:\n{rendered}")


class _IssueCollector:
    __slots__ = ("_items",)

    def __init__(self) -> None:
        self._items: list[ConfigValidationIssue] = []

    def add(self, path: str, message: str) -> None:
        self._items.append(ConfigValidationIssue(path=path, message=message))

    def items(self) -> tuple[ConfigValidationIssue, ...]:
        return tuple(self._items)

    @property
    def has_issues(self) -> bool:
        return bool(self._items)


def default_config() -> VerusConfig:
    """Return a deep copy of the built-in defaults."""

    return copy.deepcopy(DEFAULT_CONFIG)


def migration_guidance(found_version: int) -> str:
    if found_version < ConfigSchemaVersion:
        return (
            f"schema version {found_version} is older than supported {ConfigSchemaVersion}; "
            "upgrade verus.toml to the current schema"
        )
    if found_version > ConfigSchemaVersion:
        return (
            f"schema version {found_version} is newer than supported {ConfigSchemaVersion}; "
            "upgrade verus-orchestrator"
        )
    return "schema version is current"


def merge_config(base: Mapping[str, object], overlay: Mapping[str, object]) -> dict[str, Any]:
    """Deterministically deep-merge ``overlay`` onto ``base``; lists are replaced."""

    merged = _deep_copy_mapping(base)
    _merge_into(merged, overlay)
    return merged


def validate_config(config: Mapping[str, object] | object) -> ConfigValidationResult:
    """Validate a complete config and return structured issues."""

    issues = _IssueCollector()
    root = _as_object(config, "<root>", issues)
    if root is None:
        return ConfigValidationResult(config=None, issues=issues.items())

    _reject_unknown_keys(root, set(DEFAULT_CONFIG), "", issues)
    out: dict[str, Any] = {}
    for key, validator in _SECTION_VALIDATORS:
        section = _as_object(root.get(key, {}), key, issues)
        if section is not None:
            out[key] = validator(section, key, issues)

    if issues.has_issues:
        return ConfigValidationResult(config=None, issues=issues.items())
    return ConfigValidationResult(config=out, issues=())


def assert_valid_config(config: Mapping[str, object] | object) -> dict[str, Any]:
    """Validate config and raise ``ConfigValidationError`` on failure."""

    result = validate_config(config)
    if result.config is None:
        raise ConfigValidationError(result.issues)
    return result.config


def _validate_meta(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    _reject_unknown_keys(payload, {"schema_version"}, path, issues)
    _require_keys(payload, {"schema_version"}, path, issues)
    out: dict[str, Any] = {}
    if "schema_version" in payload:
        parsed = _as_int(payload["schema_version"], _join(path, "schema_version"), issues, minimum=1)
        if parsed is not None:
            out["schema_version"] = parsed
            if parsed != ConfigSchemaVersion:
                issues.add(_join(path, "schema_version"), migration_guidance(parsed))
    return out


def _validate_toolchain(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"version", "platform", "root", "rust_toolchain", "sha256"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}

    if "version" in payload:
        version = _as_str(payload["version"], _join(path, "version"), issues)
        if version is not None:
            out["version"] = version

    if "platform" in payload:
        platform = _as_enum(
            payload["platform"],
            _join(path, "platform"),
            issues,
            allowed_values=(HOST_PLATFORM, *(item.value for item in Platform)),
        )
        if platform is not None:
            out["platform"] = platform

    for key in ("root", "rust_toolchain"):
        if key in payload:
            parsed = _as_optional_str(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed

    if "sha256" in payload:
        raw_sha = _as_optional_str(payload["sha256"], _join(path, "sha256"), issues)
        if raw_sha:
            try:
                out["sha256"] = normalize_sha256(raw_sha, field_name=_join(path, "sha256"))
            except ValueError as exc:
                issues.add(_join(path, "sha256"), str(exc))
        elif raw_sha is not None:
            out["sha256"] = ""
    return out


def _validate_paths(payload: Mapping[str, object], path: str, issues: _IssueCollector) -> dict[str, Any]:
    allowed = {"manifest", "output_dir", "cache_dir"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_path_text(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_execution(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"max_workers", "timeout_seconds", "keep_going"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}

    if "max_workers" in payload:
        workers = _as_int(payload["max_workers"], _join(path, "max_workers"), issues, minimum=1)
        if workers is not None:
            out["max_workers"] = workers

    if "timeout_seconds" in payload:
        timeout = _as_float(payload["timeout_seconds"], _join(path, "timeout_seconds"), issues)
        if timeout is not None:
            if timeout <= 0:
                issues.add(_join(path, "timeout_seconds"), "must be > 0")
            else:
                out["timeout_seconds"] = timeout

    if "keep_going" in payload:
        keep_going = _as_bool(payload["keep_going"], _join(path, "keep_going"), issues)
        if keep_going is not None:
            out["keep_going"] = keep_going
    return out


def _validate_environment(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"manager_bin_dirs", "extra_bin_dirs"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}
    for key in sorted(allowed):
        if key in payload:
            parsed = _as_str_list(payload[key], _join(path, key), issues)
            if parsed is not None:
                out[key] = parsed
    return out


def _validate_observability(
    payload: Mapping[str, object], path: str, issues: _IssueCollector
) -> dict[str, Any]:
    allowed = {"log_level", "log_dir", "log_to_stdout"}
    _reject_unknown_keys(payload, allowed, path, issues)
    _require_keys(payload, allowed, path, issues)
    out: dict[str, Any] = {}

    if "log_level" in payload:
        level = _as_enum(
            payload["log_level"], _join(path, "log_level"), issues, allowed_values=LOG_LEVELS
        )
        if level is not None:
            out["log_level"] = level

    if "log_dir" in payload:
        log_dir = _as_path_text(payload["log_dir"], _join(path, "log_dir"), issues)
        if log_dir is not None:
            out["log_dir"] = log_dir

    if "log_to_stdout" in payload:
        to_stdout = _as_bool(payload["log_to_stdout"], _join(path, "log_to_stdout"), issues)
        if to_stdout is not None:
            out["log_to_stdout"] = to_stdout
    return out


_SECTION_VALIDATORS: Final = (
    ("meta", _validate_meta),
    ("toolchain", _validate_toolchain),
    ("paths", _validate_paths),
    ("execution", _validate_execution),
    ("environment", _validate_environment),
    ("observability", _validate_observability),
)


def _as_object(value: object, path: str, issues: _IssueCollector) -> dict[str, object] | None:
    if not isinstance(value, Mapping):
        issues.add(path, f"expected object, got {type(value).__name__}")
        return None
    out: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            issues.add(path, f"object key must be string, got {type(key).__name__}")
            continue
        out[key] = item
    return out


def _as_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    parsed = value.strip()
    if not parsed:
        issues.add(path, "must not be empty")
        return None
    return parsed


def _as_optional_str(value: object, path: str, issues: _IssueCollector) -> str | None:
    if not isinstance(value, str):
        issues.add(path, f"expected string, got {type(value).__name__}")
        return None
    return value.strip()


def _as_path_text(value: object, path: str, issues: _IssueCollector) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if "\x00" in parsed:
        issues.add(path, "must not contain NUL bytes")
        return None
    return parsed


def _as_str_list(value: object, path: str, issues: _IssueCollector) -> list[str] | None:
    if not isinstance(value, list):
        issues.add(path, f"expected array of strings, got {type(value).__name__}")
        return None
    out: list[str] = []
    for index, item in enumerate(value):
        parsed = _as_path_text(item, f"{path}[{index}]", issues)
        if parsed is None:
            return None
        out.append(parsed)
    return out


def _as_bool(value: object, path: str, issues: _IssueCollector) -> bool | None:
    if isinstance(value, bool):
        return value
    issues.add(path, f"expected boolean, got {type(value).__name__}")
    return None


def _as_int(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    minimum: int | None = None,
) -> int | None:
    if isinstance(value, bool) or not isinstance(value, int):
        issues.add(path, f"expected integer, got {type(value).__name__}")
        return None
    if minimum is not None and value < minimum:
        issues.add(path, f"must be >= {minimum}")
        return None
    return value


def _as_float(value: object, path: str, issues: _IssueCollector) -> float | None:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        issues.add(path, f"expected number, got {type(value).__name__}")
        return None
    parsed = float(value)
    if not math.isfinite(parsed):
        issues.add(path, "must be finite")
        return None
    return parsed


def _as_enum(
    value: object,
    path: str,
    issues: _IssueCollector,
    *,
    allowed_values: tuple[str, ...],
) -> str | None:
    parsed = _as_str(value, path, issues)
    if parsed is None:
        return None
    if parsed not in allowed_values:
        expected = ", ".join(sorted(allowed_values))
        issues.add(path, f"invalid value {parsed!r}; expected one of: {expected}")
        return None
    return parsed


def _reject_unknown_keys(
    payload: Mapping[str, object],
    allowed: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(payload):
        if key not in allowed:
            issues.add(_join(path, key), "unknown field")


def _require_keys(
    payload: Mapping[str, object],
    required: set[str],
    path: str,
    issues: _IssueCollector,
) -> None:
    for key in sorted(required):
        if key not in payload:
            issues.add(_join(path, key), "missing required field")


def _join(path: str, key: str) -> str:
    if not path:
        return key
    return f"{path}.{key}"


def _merge_into(target: dict[str, Any], overlay: Mapping[str, object]) -> None:
    for key in sorted(overlay):
        value = overlay[key]
        if isinstance(value, Mapping):
            existing = target.get(key)
            nested = existing if isinstance(existing, dict) else {}
            _merge_into(nested, value)
            target[key] = nested
        else:
            target[key] = _deep_copy_value(value)


def _deep_copy_mapping(value: Mapping[str, object]) -> dict[str, Any]:
    return {key: _deep_copy_value(value[key]) for key in sorted(value)}


def _deep_copy_value(value: object) -> Any:
    if isinstance(value, Mapping):
        return {key: _deep_copy_value(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_deep_copy_value(item) for item in value]
    return value


__all__ = [
    "ConfigSchemaVersion",
    "ConfigValidationError",
    "ConfigValidationIssue",
    "ConfigValidationResult",
    "DEFAULT_CONFIG",
    "HOST_PLATFORM",
    "PATH_FIELDS",
    "VerusConfig",
    "assert_valid_config",
    "default_config",
    "merge_config",
    "migration_guidance",
    "validate_config",
]
