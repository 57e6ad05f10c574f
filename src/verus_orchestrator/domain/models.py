"""Verification unit models shared by planning, execution, and the CLI."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from pathlib import Path

from verus_orchestrator.errors import ConfigurationError


class UnitKind(StrEnum):
    """Whether a unit produces a success marker or is surfaced as a test."""

    LIBRARY = "library"
    TEST = "test"


class TaskStatus(StrEnum):
    VERIFIED = "verified"
    CACHED = "cached"
    FAILED = "failed"
    BLOCKED = "blocked"
    CANCELLED = "cancelled"

    @property
    def succeeded(self) -> bool:
        return self in (TaskStatus.VERIFIED, TaskStatus.CACHED)


@dataclass(frozen=True, slots=True)
class UnitDeclaration:
    """A unit as declared by the user, before entry and identity resolution."""

    name: str
    sources: tuple[Path, ...]
    kind: UnitKind = UnitKind.LIBRARY
    entry_override: Path | None = None
    identity_override: str | None = None
    dependencies: tuple[str, ...] = ()
    extra_arguments: tuple[str, ...] = ()

    def __post_init__(self) -> None:
        if not self.name.strip():
            raise ValueError("unit name must be non-empty")
        if len(set(self.dependencies)) != len(self.dependencies):
            raise ValueError(f"unit {self.name!r} lists a dependency more than once")


@dataclass(frozen=True, slots=True)
class VerificationUnit:
    """One crate resolved against its already-resolved dependencies.

    ``upstream_markers`` is the deduplicated transitive marker set of the direct
    dependencies; ``transitive_markers`` prepends this unit's own marker and is
    what dependents collect.
    """

    name: str
    identity: str
    entry_source: Path
    sources: tuple[Path, ...]
    success_marker: Path
    kind: UnitKind = UnitKind.LIBRARY
    extra_arguments: tuple[str, ...] = ()
    dependencies: tuple[VerificationUnit, ...] = field(default=(), repr=False)
    symbol_flags: tuple[str, ...] = ()
    upstream_markers: tuple[Path, ...] = ()

    def __post_init__(self) -> None:
        if not self.sources:
            raise ConfigurationError(f"unit {self.name!r} has no sources")

    @property
    def dependency_names(self) -> tuple[str, ...]:
        return tuple(dependency.name for dependency in self.dependencies)

    @property
    def transitive_markers(self) -> tuple[Path, ...]:
        return (self.success_marker, *self.upstream_markers)

    @property
    def declared_sources(self) -> tuple[Path, ...]:
        """Sources plus an entry override that was declared outside ``sources``."""
        if self.entry_source in self.sources:
            return self.sources
        return (*self.sources, self.entry_source)

    def describe(self) -> dict[str, object]:
        return {
            "name": self.name,
            "identity": self.identity,
            "kind": self.kind.value,
            "entry_source": str(self.entry_source),
            "sources": [str(path) for path in self.sources],
            "dependencies": list(self.dependency_names),
            "symbol_flags": list(self.symbol_flags),
            "extra_arguments": list(self.extra_arguments),
            "success_marker": str(self.success_marker),
            "transitive_markers": [str(path) for path in self.transitive_markers],
        }


@dataclass(frozen=True, slots=True)
class TaskOutcome:
    """Result of one unit within a build or test run."""

    unit: str
    status: TaskStatus
    exit_code: int | None = None
    marker: Path | None = None
    diagnostic: str = ""
    duration_ms: float = 0.0
    action_key: str = ""

    @property
    def succeeded(self) -> bool:
        return self.status.succeeded

    def to_dict(self) -> dict[str, object]:
        return {
            "unit": self.unit,
            "status": self.status.value,
            "exit_code": self.exit_code,
            "marker": str(self.marker) if self.marker is not None else None,
            "diagnostic": self.diagnostic,
            "duration_ms": round(self.duration_ms, 3),
            "action_key": self.action_key,
        }


__all__ = [
    "TaskOutcome",
    "TaskStatus",
    "UnitDeclaration",
    "UnitKind",
    "VerificationUnit",
]
