"""
verus-orchestrator: runtime config loader.

File: src/verus_orchestrator/config/loader.py

Purpose
- Load effective runtime config from defaults, TOML file, env vars, and CLI overrides.

What should be included in this file
- Precedence logic: CLI > env (VERUS_ORCH_) > file > defaults.
- TOML loading via ``tomllib``.
- Deterministic environment variable mapping and coercion.
- Path normalization relative to config file location.
- A typed settings view consumed by the CLI.

Functional requirements
- An explicitly named config file must exist; the default one is optional.
- Invalid values fail with every issue listed at once.
"""

from __future__ import annotations

import json
import os
import tomllib
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Final, Literal

from verus_orchestrator.config.schema import (
    HOST_PLATFORM,
    PATH_FIELDS,
    assert_valid_config,
    default_config,
    merge_config,
)
from verus_orchestrator.toolchain.platforms import Platform, detect_host_platform, parse_platform

DEFAULT_CONFIG_FILE: Final[str] = "verus.toml"
ENV_PREFIX: Final[str] = "VERUS_ORCH_"
TOOLCHAINS_DIRNAME: Final[str] = "toolchains"

_BOOLEAN_TRUE: Final[frozenset[str]] = frozenset({"1", "true", "t", "yes", "y", "on"})
_BOOLEAN_FALSE: Final[frozenset[str]] = frozenset({"0", "false", "f", "no", "n", "off"})


@dataclass(frozen=True, slots=True)
class _Binding:
    path: tuple[str, ...]
    value_type: Literal["str", "int", "float", "bool", "list"]


class ConfigLoadError(ValueError):
    """Raised when config cannot be loaded or overrides cannot be coerced."""


def load_config(
    config_path: str | Path | None = None,
    *,
    cli_overrides: Mapping[str, object] | None = None,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """Load effective config with deterministic precedence: CLI > env > file > defaults."""

    resolved_path = _resolve_config_path(config_path)
    explicit_path = config_path is not None
    env_map = dict(os.environ if environ is None else environ)

    file_payload = _load_toml_file(resolved_path, required=explicit_path)
    merged = merge_config(default_config(), file_payload)
    merged = assert_valid_config(merged)

    merged = merge_config(merged, _collect_env_overrides(merged, env_map))
    merged = merge_config(merged, _materialize_cli_overrides(cli_overrides or {}))
    merged = assert_valid_config(merged)

    return normalize_paths(merged, base_dir=resolved_path.parent)


def normalize_paths(config: Mapping[str, object], *, base_dir: Path) -> dict[str, Any]:
    """Normalize configured path fields relative to ``base_dir``; empty values stay empty."""

    materialized = merge_config({}, config)
    for field_path in PATH_FIELDS:
        value = _get_nested(materialized, field_path)
        if isinstance(value, str) and value:
            _set_nested(materialized, field_path, _normalize_one_path(value, base_dir))
    return materialized


def dump_effective_config(config: Mapping[str, object]) -> str:
    """Return deterministic JSON dump of the effective config."""

    return json.dumps(config, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True, slots=True)
class RuntimeSettings:
    """Typed view over a validated, path-normalized config mapping."""

    toolchain_version: str
    platform: Platform
    toolchain_root: Path
    rust_toolchain: str | None
    sha256: str | None
    manifest: Path
    output_dir: Path
    cache_dir: Path
    max_workers: int
    timeout_seconds: float
    keep_going: bool
    manager_bin_dirs: tuple[str, ...]
    extra_bin_dirs: tuple[str, ...]
    log_level: str
    log_dir: Path
    log_to_stdout: bool

    @property
    def toolchains_dir(self) -> Path:
        return self.cache_dir / TOOLCHAINS_DIRNAME


def runtime_settings(config: Mapping[str, Any], *, host: Platform | None = None) -> RuntimeSettings:
    toolchain = config["toolchain"]
    paths = config["paths"]
    execution = config["execution"]
    environment = config["environment"]
    observability = config["observability"]

    raw_platform = toolchain["platform"]
    if raw_platform == HOST_PLATFORM:
        platform = host if host is not None else detect_host_platform()
    else:
        platform = parse_platform(raw_platform)

    cache_dir = Path(paths["cache_dir"])
    version = toolchain["version"]
    root = (
        Path(toolchain["root"])
        if toolchain["root"]
        else cache_dir / TOOLCHAINS_DIRNAME / version / platform.value
    )
    return RuntimeSettings(
        toolchain_version=version,
        platform=platform,
        toolchain_root=root,
        rust_toolchain=toolchain["rust_toolchain"] or None,
        sha256=toolchain["sha256"] or None,
        manifest=Path(paths["manifest"]),
        output_dir=Path(paths["output_dir"]),
        cache_dir=cache_dir,
        max_workers=execution["max_workers"],
        timeout_seconds=execution["timeout_seconds"],
        keep_going=execution["keep_going"],
        manager_bin_dirs=tuple(environment["manager_bin_dirs"]),
        extra_bin_dirs=tuple(environment["extra_bin_dirs"]),
        log_level=observability["log_level"],
        log_dir=Path(observability["log_dir"]),
        log_to_stdout=observability["log_to_stdout"],
    )


def _resolve_config_path(config_path: str | Path | None) -> Path:
    if config_path is None:
        return (Path.cwd() / DEFAULT_CONFIG_FILE).resolve()
    return Path(config_path).expanduser().resolve()


def _load_toml_file(path: Path, *, required: bool) -> dict[str, Any]:
    if not path.exists():
        if required:
            raise ConfigLoadError(f"config file not found: {path}")
        return {}

    try:
        with path.open("rb") as handle:
            parsed = tomllib.load(handle)
    except tomllib.TOMLDecodeError as exc:
        raise ConfigLoadError(f"invalid TOML in {path}: {exc}") from exc
    except OSError as exc:
        raise ConfigLoadError(f"unable to read config file {path}: {exc}") from exc

    return parsed


def _collect_env_overrides(
    config: Mapping[str, object], environ: Mapping[str, str]
) -> dict[str, Any]:
    bindings = _build_bindings(config)
    overrides: dict[str, Any] = {}
    for env_name in sorted(bindings):
        raw = environ.get(env_name)
        if raw is None:
            continue
        binding = bindings[env_name]
        _set_nested(overrides, binding.path, _coerce_env(raw, binding, env_name))
    return overrides


def _build_bindings(config: Mapping[str, object]) -> dict[str, _Binding]:
    bindings: dict[str, _Binding] = {}
    for path, value in _iter_scalar_paths(config):
        if path == ("meta", "schema_version"):
            continue
        kind = _kind_for_value(value)
        if kind is not None:
            bindings[_env_name_for_path(path)] = _Binding(path=path, value_type=kind)
    return bindings


def _iter_scalar_paths(
    payload: Mapping[str, object],
    prefix: tuple[str, ...] = (),
) -> list[tuple[tuple[str, ...], object]]:
    pairs: list[tuple[tuple[str, ...], object]] = []
    for key in sorted(payload):
        value = payload[key]
        path = (*prefix, key)
        if isinstance(value, Mapping):
            pairs.extend(_iter_scalar_paths(value, path))
        else:
            pairs.append((path, value))
    return pairs


def _kind_for_value(value: object) -> Literal["str", "int", "float", "bool", "list"] | None:
    if isinstance(value, bool):
        return "bool"
    if isinstance(value, int):
        return "int"
    if isinstance(value, float):
        return "float"
    if isinstance(value, str):
        return "str"
    if isinstance(value, list):
        return "list"
    return None


def _coerce_env(raw: str, binding: _Binding, env_name: str) -> object:
    value = raw.strip()
    dotted = ".".join(binding.path)
    if binding.value_type == "str":
        return value
    if binding.value_type == "list":
        # PATH-style list: entries separated by os.pathsep.
        return [item for item in value.split(os.pathsep) if item]
    if binding.value_type == "int":
        try:
            return int(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be an integer") from exc
    if binding.value_type == "float":
        try:
            return float(value)
        except ValueError as exc:
            raise ConfigLoadError(f"{env_name} -> {dotted} must be a number") from exc

    lowered = value.lower()
    if lowered in _BOOLEAN_TRUE:
        return True
    if lowered in _BOOLEAN_FALSE:
        return False
    raise ConfigLoadError(f"{env_name} -> {dotted} must be a boolean (true/false/1/0/yes/no/on/off)")


def _materialize_cli_overrides(cli_overrides: Mapping[str, object]) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for key in sorted(cli_overrides):
        value = cli_overrides[key]
        if value is None:
            continue
        path = tuple(part for part in key.split(".") if part)
        if not path:
            raise ConfigLoadError(f"invalid CLI override key {key!r}")
        _set_nested(payload, path, value)
    return payload


def _set_nested(target: dict[str, Any], path: tuple[str, ...], value: object) -> None:
    cursor = target
    for part in path[:-1]:
        next_node = cursor.get(part)
        if not isinstance(next_node, dict):
            next_node = {}
            cursor[part] = next_node
        cursor = next_node
    cursor[path[-1]] = value


def _get_nested(payload: Mapping[str, object], path: tuple[str, ...]) -> object | None:
    cursor: object = payload
    for part in path:
        if not isinstance(cursor, Mapping) or part not in cursor:
            return None
        cursor = cursor[part]
    return cursor


def _normalize_one_path(raw: str, base_dir: Path) -> str:
    expanded = os.path.expandvars(raw)
    candidate = Path(expanded).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return Path(os.path.normpath(str(candidate))).as_posix()


def _env_name_for_path(path: tuple[str, ...]) -> str:
    return ENV_PREFIX + "_".join(part.upper() for part in path)


__all__ = [
    "ConfigLoadError",
    "DEFAULT_CONFIG_FILE",
    "ENV_PREFIX",
    "RuntimeSettings",
    "dump_effective_config",
    "load_config",
    "normalize_paths",
    "runtime_settings",
]
