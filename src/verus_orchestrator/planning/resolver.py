"""Bottom-up resolution of declared units into a verification graph."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

from verus_orchestrator.constants import SUCCESS_MARKER_SUFFIX
from verus_orchestrator.domain.models import UnitDeclaration, UnitKind, VerificationUnit
from verus_orchestrator.errors import DuplicateIdentityError, ManifestError
from verus_orchestrator.planning.dependencies import collect_dependencies
from verus_orchestrator.planning.identity import resolve_crate
from verus_orchestrator.planning.task_graph import UnitGraph

if TYPE_CHECKING:
    from collections.abc import Iterable, Mapping, Sequence


def marker_path(output_dir: Path, unit_name: str) -> Path:
    return output_dir / f"{unit_name}{SUCCESS_MARKER_SUFFIX}"


def resolve_unit(
    declaration: UnitDeclaration,
    dependencies: Sequence[VerificationUnit],
    *,
    output_dir: Path,
) -> VerificationUnit:
    """Resolve one declaration against dependencies that are already resolved."""

    resolved_names = [dependency.name for dependency in dependencies]
    if tuple(resolved_names) != declaration.dependencies:
        raise ManifestError(
            f"unit {declaration.name!r} resolved before its dependencies "
            f"(expected {list(declaration.dependencies)}, got {resolved_names})"
        )
    crate = resolve_crate(
        declaration.name,
        declaration.sources,
        entry_override=declaration.entry_override,
        identity_override=declaration.identity_override,
    )
    info = collect_dependencies(dependencies)
    return VerificationUnit(
        name=declaration.name,
        identity=crate.identity,
        entry_source=crate.entry_source,
        sources=declaration.sources,
        success_marker=marker_path(output_dir, declaration.name),
        kind=declaration.kind,
        extra_arguments=declaration.extra_arguments,
        dependencies=tuple(dependencies),
        symbol_flags=info.symbol_flags,
        upstream_markers=info.transitive_markers,
    )


@dataclass(frozen=True, slots=True)
class BuildGraph:
    """Resolved units keyed by name, in a dependencies-first order."""

    units: Mapping[str, VerificationUnit]
    graph: UnitGraph
    order: tuple[str, ...]

    def unit(self, name: str) -> VerificationUnit:
        try:
            return self.units[name]
        except KeyError as exc:
            known = ", ".join(sorted(self.units)) or "<none>"
            raise ManifestError(f"unknown unit {name!r} (known: {known})") from exc

    def names_of_kind(self, kind: UnitKind) -> tuple[str, ...]:
        return tuple(name for name in self.order if self.units[name].kind is kind)

    def plan(self, roots: Iterable[str]) -> tuple[str, ...]:
        """``roots`` and everything they depend on, in scheduling order."""
        requested = list(roots)
        for name in requested:
            self.unit(name)
        selected = set(self.graph.closure(requested))
        return tuple(name for name in self.order if name in selected)

    def describe(self) -> dict[str, object]:
        return {
            "order": list(self.order),
            "units": [self.units[name].describe() for name in self.order],
            "graph": self.graph.serialize(),
        }


def resolve_units(declarations: Sequence[UnitDeclaration], *, output_dir: Path) -> BuildGraph:
    """Validate references, order units bottom-up, and resolve each one.

    Raises ``ManifestError`` for duplicate names, unknown or test-unit
    dependencies, ``DependencyCycleError`` for cycles and
    ``DuplicateIdentityError`` when two units share a crate identity.
    """

    by_name: dict[str, UnitDeclaration] = {}
    for declaration in declarations:
        if declaration.name in by_name:
            raise ManifestError(f"duplicate unit name {declaration.name!r}")
        by_name[declaration.name] = declaration

    graph = UnitGraph(nodes=by_name)
    for declaration in declarations:
        for dependency in declaration.dependencies:
            target = by_name.get(dependency)
            if target is None:
                raise ManifestError(
                    f"unit {declaration.name!r} depends on unknown unit {dependency!r}"
                )
            if target.kind is UnitKind.TEST:
                raise ManifestError(
                    f"unit {declaration.name!r} depends on test unit {dependency!r}"
                )
            graph.add_dependency(declaration.name, dependency)

    order = graph.topological_sort()
    resolved: dict[str, VerificationUnit] = {}
    owners: dict[str, str] = {}
    for name in order:
        declaration = by_name[name]
        unit = resolve_unit(
            declaration,
            [resolved[dependency] for dependency in declaration.dependencies],
            output_dir=output_dir,
        )
        previous = owners.setdefault(unit.identity, name)
        if previous != name:
            raise DuplicateIdentityError(unit.identity, sorted((previous, name)))
        resolved[name] = unit

    return BuildGraph(units=resolved, graph=graph, order=order)


__all__ = ["BuildGraph", "marker_path", "resolve_unit", "resolve_units"]
