"""Unit tests for planning.task_graph."""

from __future__ import annotations

import random

import pytest

from verus_orchestrator.errors import DependencyCycleError
from verus_orchestrator.planning.task_graph import UnitGraph


def _diamond() -> UnitGraph:
    # (dependency, dependent)
    return UnitGraph(
        edges=(
            ("d", "b"),
            ("d", "c"),
            ("b", "a"),
            ("c", "a"),
        )
    )


def test_topological_sort_places_dependencies_first() -> None:
    order = _diamond().topological_sort()

    assert order == ("d", "b", "c", "a")


def test_topological_sort_is_independent_of_insertion_order() -> None:
    edges = [("d", "b"), ("d", "c"), ("b", "a"), ("c", "a"), ("x", "a")]
    expected = UnitGraph(edges=edges).topological_sort()
    rng = random.Random(7)
    for _ in range(10):
        shuffled = list(edges)
        rng.shuffle(shuffled)
        assert UnitGraph(edges=shuffled).topological_sort() == expected


def test_cycle_detection_returns_canonical_cycle() -> None:
    graph = UnitGraph(
        edges=(
            ("a", "b"),
            ("b", "c"),
            ("c", "a"),
            ("c", "d"),
        )
    )

    cycles = graph.detect_cycles()
    assert cycles == (("a", "c", "b", "a"),)

    with pytest.raises(DependencyCycleError) as error:
        graph.topological_sort()
    assert error.value.cycles == cycles
    assert "a -> c -> b -> a" in str(error.value)


def test_self_dependency_is_a_cycle() -> None:
    graph = UnitGraph()
    graph.add_dependency("loop", "loop")

    assert graph.detect_cycles() == (("loop", "loop"),)
    with pytest.raises(DependencyCycleError):
        graph.topological_sort()


def test_transitive_dependencies_and_closure() -> None:
    graph = _diamond()
    graph.add_unit("lonely")

    assert graph.transitive_dependencies("a") == ("b", "c", "d")
    assert graph.transitive_dependencies("d") == ()
    assert graph.closure(["b"]) == ("b", "d")
    assert graph.closure(["b", "lonely"]) == ("b", "d", "lonely")


def test_unknown_unit_queries_raise_key_error() -> None:
    graph = _diamond()

    with pytest.raises(KeyError):
        graph.transitive_dependencies("missing")
    with pytest.raises(KeyError):
        graph.closure(["missing"])


def test_serialize_is_sorted() -> None:
    payload = _diamond().serialize()

    assert payload == {
        "nodes": ["a", "b", "c", "d"],
        "edges": [["b", "a"], ["c", "a"], ["d", "b"], ["d", "c"]],
    }
