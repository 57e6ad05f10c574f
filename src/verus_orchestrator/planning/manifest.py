"""YAML unit manifest loading (``verify.yaml``)."""

from __future__ import annotations

from pathlib import Path
from typing import TYPE_CHECKING, Final, cast

import yaml

from verus_orchestrator.constants import MANIFEST_SCHEMA_VERSION
from verus_orchestrator.domain.models import UnitDeclaration, UnitKind
from verus_orchestrator.errors import ConfigurationError, ManifestError
from verus_orchestrator.planning.resolver import BuildGraph, resolve_units

if TYPE_CHECKING:
    from collections.abc import Mapping

_TOP_LEVEL_FIELDS: Final[frozenset[str]] = frozenset({"schema_version", "units"})
_REQUIRED_UNIT_FIELDS: Final[frozenset[str]] = frozenset({"name", "srcs"})
_ALLOWED_UNIT_FIELDS: Final[frozenset[str]] = frozenset(
    {"name", "kind", "srcs", "crate_root", "crate_name", "deps", "extra_flags"}
)


def load_manifest(path: Path | str) -> tuple[UnitDeclaration, ...]:
    """Parse ``path`` into declarations; source paths resolve against its directory."""

    manifest_path = Path(path)
    try:
        with manifest_path.open("r", encoding="utf-8") as handle:
            loaded = cast("object", yaml.safe_load(handle))
    except FileNotFoundError as exc:
        raise ManifestError(f"manifest not found: {manifest_path}") from exc
    except OSError as exc:
        raise ManifestError(f"{manifest_path}: unable to read manifest ({exc})") from exc
    except yaml.YAMLError as exc:
        raise ManifestError(f"{manifest_path}: invalid YAML ({exc})") from exc

    return parse_manifest(loaded, base_dir=manifest_path.parent, source=manifest_path.name)


def load_build_graph(path: Path | str, *, output_dir: Path) -> BuildGraph:
    return resolve_units(load_manifest(path), output_dir=output_dir)


def parse_manifest(
    payload: object,
    *,
    base_dir: Path,
    source: str = "manifest",
) -> tuple[UnitDeclaration, ...]:
    root = _as_mapping(payload, source)
    unknown = sorted(set(root) - _TOP_LEVEL_FIELDS)
    if unknown:
        raise ManifestError(f"{source}: unexpected fields: {unknown}")

    version = root.get("schema_version", MANIFEST_SCHEMA_VERSION)
    if isinstance(version, bool) or version != MANIFEST_SCHEMA_VERSION:
        raise ManifestError(
            f"{source}.schema_version: expected {MANIFEST_SCHEMA_VERSION}, got {version!r}"
        )

    raw_units = root.get("units")
    if not isinstance(raw_units, list):
        raise ManifestError(f"{source}.units: expected a sequence of unit mappings")

    return tuple(
        _parse_unit(item, base_dir=base_dir, location=f"{source}.units[{index}]")
        for index, item in enumerate(raw_units)
    )


def _parse_unit(value: object, *, base_dir: Path, location: str) -> UnitDeclaration:
    parsed = _as_mapping(value, location)
    keys = set(parsed)

    missing = sorted(_REQUIRED_UNIT_FIELDS - keys)
    if missing:
        raise ManifestError(f"{location}: missing required fields: {missing}")
    unknown = sorted(keys - _ALLOWED_UNIT_FIELDS)
    if unknown:
        raise ManifestError(
            f"{location}: unexpected fields: {unknown}; allowed fields: "
            f"{sorted(_ALLOWED_UNIT_FIELDS)}"
        )

    name = _coerce_non_empty_str(parsed["name"], f"{location}.name")
    location = f"{location}({name})"
    sources = tuple(
        _resolve_path(base_dir, item)
        for item in _coerce_str_list(parsed["srcs"], f"{location}.srcs")
    )
    if not sources:
        raise ManifestError(f"{location}.srcs: at least one source is required")

    raw_kind = parsed.get("kind", UnitKind.LIBRARY.value)
    try:
        kind = UnitKind(_coerce_non_empty_str(raw_kind, f"{location}.kind"))
    except ValueError as exc:
        allowed = [item.value for item in UnitKind]
        raise ManifestError(f"{location}.kind: expected one of {allowed}, got {raw_kind!r}") from exc

    crate_root = _coerce_optional_str(parsed.get("crate_root"), f"{location}.crate_root")
    crate_name = _coerce_optional_str(parsed.get("crate_name"), f"{location}.crate_name")

    try:
        return UnitDeclaration(
            name=name,
            sources=sources,
            kind=kind,
            entry_override=_resolve_path(base_dir, crate_root) if crate_root else None,
            identity_override=crate_name,
            dependencies=tuple(_coerce_str_list(parsed.get("deps", []), f"{location}.deps")),
            extra_arguments=tuple(
                _coerce_str_list(parsed.get("extra_flags", []), f"{location}.extra_flags")
            ),
        )
    except ConfigurationError:
        raise
    except ValueError as exc:
        raise ManifestError(f"{location}: {exc}") from exc


def _resolve_path(base_dir: Path, value: str) -> Path:
    candidate = Path(value).expanduser()
    if not candidate.is_absolute():
        candidate = base_dir / candidate
    return candidate.resolve(strict=False)


def _as_mapping(value: object, location: str) -> Mapping[str, object]:
    if not isinstance(value, dict):
        raise ManifestError(f"{location}: expected mapping, got {type(value).__name__}")
    for key in value:
        if not isinstance(key, str):
            raise ManifestError(f"{location}: mapping keys must be strings")
    return cast("Mapping[str, object]", value)


def _coerce_non_empty_str(value: object, location: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ManifestError(f"{location}: expected non-empty string")
    return value.strip()


def _coerce_optional_str(value: object, location: str) -> str | None:
    if value is None:
        return None
    return _coerce_non_empty_str(value, location)


def _coerce_str_list(value: object, location: str) -> list[str]:
    if not isinstance(value, list):
        raise ManifestError(f"{location}: expected a list of strings")
    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, str):
            raise ManifestError(f"{location}[{index}]: expected string")
        items.append(item)
    return items


__all__ = ["load_build_graph", "load_manifest", "parse_manifest"]
