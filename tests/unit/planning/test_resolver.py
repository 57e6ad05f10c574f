"""Unit tests for planning.resolver."""

from __future__ import annotations

from pathlib import Path

import pytest

from verus_orchestrator.domain.models import UnitDeclaration, UnitKind
from verus_orchestrator.errors import (
    DependencyCycleError,
    DuplicateIdentityError,
    ManifestError,
)
from verus_orchestrator.planning.resolver import marker_path, resolve_unit, resolve_units


def _decl(name: str, *deps: str, **kwargs: object) -> UnitDeclaration:
    return UnitDeclaration(
        name=name,
        sources=(Path(f"/src/{name}/lib.rs"),),
        dependencies=deps,
        **kwargs,  # type: ignore[arg-type]
    )


def test_resolve_units_orders_bottom_up_and_wires_bindings(tmp_path: Path) -> None:
    graph = resolve_units(
        [
            _decl("runtime", "foundation"),
            _decl("foundation"),
        ],
        output_dir=tmp_path,
    )

    assert graph.order == ("foundation", "runtime")
    runtime = graph.unit("runtime")
    assert runtime.symbol_flags == (
        "--extern",
        f"foundation={tmp_path / 'foundation.success'}",
    )
    assert runtime.upstream_markers == (tmp_path / "foundation.success",)
    assert runtime.transitive_markers == (
        tmp_path / "runtime.success",
        tmp_path / "foundation.success",
    )
    assert runtime.dependencies[0] is graph.unit("foundation")


def test_diamond_resolution_deduplicates_markers(tmp_path: Path) -> None:
    graph = resolve_units(
        [
            _decl("d"),
            _decl("b", "d"),
            _decl("c", "d"),
            _decl("a", "b", "c"),
        ],
        output_dir=tmp_path,
    )

    top = graph.unit("a")
    assert sorted(path.name for path in top.transitive_markers) == [
        "a.success",
        "b.success",
        "c.success",
        "d.success",
    ]
    assert top.symbol_flags[1::2] == (
        f"b={tmp_path / 'b.success'}",
        f"c={tmp_path / 'c.success'}",
    )


def test_unknown_dependency_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(ManifestError, match="unknown unit 'ghost'"):
        resolve_units([_decl("a", "ghost")], output_dir=tmp_path)


def test_duplicate_unit_names_are_rejected(tmp_path: Path) -> None:
    with pytest.raises(ManifestError, match="duplicate unit name 'a'"):
        resolve_units([_decl("a"), _decl("a")], output_dir=tmp_path)


def test_cycle_is_rejected_before_resolution(tmp_path: Path) -> None:
    with pytest.raises(DependencyCycleError) as error:
        resolve_units([_decl("a", "b"), _decl("b", "a")], output_dir=tmp_path)

    assert error.value.cycles == (("a", "b", "a"),)


def test_identity_collision_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(DuplicateIdentityError) as error:
        resolve_units([_decl("my-lib"), _decl("my_lib")], output_dir=tmp_path)

    assert error.value.identity == "my_lib"
    assert error.value.units == ("my-lib", "my_lib")


def test_override_identity_collision_is_rejected(tmp_path: Path) -> None:
    with pytest.raises(DuplicateIdentityError):
        resolve_units(
            [_decl("one", identity_override="shared"), _decl("two", identity_override="shared")],
            output_dir=tmp_path,
        )


def test_test_units_cannot_be_dependencies(tmp_path: Path) -> None:
    with pytest.raises(ManifestError, match="depends on test unit 'proof_test'"):
        resolve_units(
            [_decl("proof_test", kind=UnitKind.TEST), _decl("lib", "proof_test")],
            output_dir=tmp_path,
        )


def test_resolve_unit_requires_dependencies_in_declared_order(tmp_path: Path) -> None:
    graph = resolve_units([_decl("x"), _decl("y")], output_dir=tmp_path)

    with pytest.raises(ManifestError, match="resolved before its dependencies"):
        resolve_unit(
            _decl("z", "x", "y"),
            [graph.unit("y"), graph.unit("x")],
            output_dir=tmp_path,
        )


def test_plan_returns_closure_in_schedule_order(tmp_path: Path) -> None:
    graph = resolve_units(
        [
            _decl("base"),
            _decl("mid", "base"),
            _decl("top", "mid"),
            _decl("unrelated"),
            _decl("suite", "top", kind=UnitKind.TEST),
        ],
        output_dir=tmp_path,
    )

    assert graph.plan(["mid"]) == ("base", "mid")
    assert graph.names_of_kind(UnitKind.TEST) == ("suite",)
    assert "suite" not in graph.names_of_kind(UnitKind.LIBRARY)
    with pytest.raises(ManifestError, match="unknown unit 'nope'"):
        graph.plan(["nope"])


def test_marker_path_naming(tmp_path: Path) -> None:
    assert marker_path(tmp_path, "my-lib") == tmp_path / "my-lib.success"
