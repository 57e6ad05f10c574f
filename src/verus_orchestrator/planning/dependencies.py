"""Cross-crate symbol bindings and transitive success-marker collection."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Sequence
    from pathlib import Path

    from verus_orchestrator.domain.models import VerificationUnit

EXTERN_FLAG = "--extern"


@dataclass(frozen=True, slots=True)
class DependencyInfo:
    symbol_flags: tuple[str, ...] = ()
    transitive_markers: tuple[Path, ...] = ()


def symbol_binding(unit: VerificationUnit) -> tuple[str, str]:
    """``--extern identity=marker`` for one already-resolved upstream unit."""

    return (EXTERN_FLAG, f"{unit.identity}={unit.success_marker}")


def collect_dependencies(dependencies: Sequence[VerificationUnit]) -> DependencyInfo:
    """Combine direct dependencies into bindings and a deduplicated marker set.

    Bindings follow declaration order, one per direct dependency. Markers are
    ordered first-seen, depth-first in declaration order; each upstream unit
    already carries its own closure, so shared ancestors appear once.
    """

    flags: list[str] = []
    markers: dict[Path, None] = {}
    for dependency in dependencies:
        flags.extend(symbol_binding(dependency))
        for marker in dependency.transitive_markers:
            markers.setdefault(marker, None)
    return DependencyInfo(symbol_flags=tuple(flags), transitive_markers=tuple(markers))


__all__ = ["DependencyInfo", "EXTERN_FLAG", "collect_dependencies", "symbol_binding"]
