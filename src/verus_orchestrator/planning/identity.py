"""Crate entry-source and identity resolution."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from verus_orchestrator.constants import CONVENTIONAL_ENTRY_FILENAME
from verus_orchestrator.errors import ConfigurationError

if TYPE_CHECKING:
    from collections.abc import Sequence


@dataclass(frozen=True, slots=True)
class CrateIdentity:
    entry_source: Path
    identity: str


def resolve_entry_source(
    sources: Sequence[Path],
    entry_override: Path | None = None,
    *,
    unit_name: str = "",
) -> Path:
    """Pick the file handed to the verifier as the crate root.

    Priority: explicit override, then the first source named ``lib.rs``, then
    the first declared source.
    """

    if not sources:
        label = f" {unit_name!r}" if unit_name else ""
        raise ConfigurationError(f"unit{label} declares no sources")
    if entry_override is not None:
        return entry_override
    for source in sources:
        if source.name == CONVENTIONAL_ENTRY_FILENAME:
            return source
    return sources[0]


def resolve_identity(declared_name: str, identity_override: str | None = None) -> str:
    """Crate name used for ``--crate-name`` and for dependents' bindings."""

    if identity_override:
        return identity_override
    if not declared_name:
        raise ConfigurationError("unit name must be non-empty")
    return declared_name.replace("-", "_")


def resolve_crate(
    declared_name: str,
    sources: Sequence[Path],
    *,
    entry_override: Path | None = None,
    identity_override: str | None = None,
) -> CrateIdentity:
    return CrateIdentity(
        entry_source=resolve_entry_source(sources, entry_override, unit_name=declared_name),
        identity=resolve_identity(declared_name, identity_override),
    )


__all__ = [
    "CrateIdentity",
    "resolve_crate",
    "resolve_entry_source",
    "resolve_identity",
]
