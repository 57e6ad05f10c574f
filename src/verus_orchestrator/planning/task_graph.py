"""Deterministic unit dependency graph.

Edges point from a dependency to the unit that consumes it, so a topological
order is a valid bottom-up resolution and scheduling order.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator, Sequence
from heapq import heapify, heappop, heappush

from verus_orchestrator.errors import DependencyCycleError


class UnitGraph:
    """Adjacency-list graph over unit names."""

    __slots__ = ("_nodes", "_dependents", "_dependencies")

    def __init__(
        self,
        nodes: Iterable[str] | None = None,
        edges: Iterable[tuple[str, str]] | None = None,
    ) -> None:
        self._nodes: set[str] = set()
        self._dependents: dict[str, set[str]] = {}
        self._dependencies: dict[str, set[str]] = {}

        if nodes is not None:
            for name in nodes:
                self.add_unit(name)
        if edges is not None:
            for dependency, dependent in edges:
                self.add_dependency(dependent, dependency)

    @property
    def nodes(self) -> tuple[str, ...]:
        return tuple(sorted(self._nodes))

    @property
    def edges(self) -> tuple[tuple[str, str], ...]:
        """``(dependency, dependent)`` pairs in deterministic order."""
        return tuple(
            (dependency, dependent)
            for dependency in sorted(self._nodes)
            for dependent in sorted(self._dependents[dependency])
        )

    def add_unit(self, name: str) -> None:
        if not name:
            raise ValueError("unit name must be non-empty")
        if name in self._nodes:
            return
        self._nodes.add(name)
        self._dependents[name] = set()
        self._dependencies[name] = set()

    def add_dependency(self, unit: str, dependency: str) -> None:
        """Record that ``unit`` consumes ``dependency``."""
        self.add_unit(unit)
        self.add_unit(dependency)
        self._dependents[dependency].add(unit)
        self._dependencies[unit].add(dependency)

    def topological_sort(self) -> tuple[str, ...]:
        """Dependencies before dependents, ties broken by name.

        Raises ``DependencyCycleError`` listing every cycle found.
        """
        indegree = {node: len(self._dependencies[node]) for node in self._nodes}
        ready = [node for node, degree in indegree.items() if degree == 0]
        heapify(ready)

        order: list[str] = []
        while ready:
            node = heappop(ready)
            order.append(node)
            for dependent in sorted(self._dependents[node]):
                indegree[dependent] -= 1
                if indegree[dependent] == 0:
                    heappush(ready, dependent)

        if len(order) != len(self._nodes):
            raise DependencyCycleError(self.detect_cycles())
        return tuple(order)

    def detect_cycles(self) -> tuple[tuple[str, ...], ...]:
        """Closed cycle paths such as ``("a", "b", "a")``, each canonically rotated."""
        state: dict[str, int] = {}
        stack: list[str] = []
        stack_index: dict[str, int] = {}
        cycles: dict[tuple[str, ...], None] = {}

        for start in sorted(self._nodes):
            if state.get(start, 0) != 0:
                continue
            state[start] = 1
            stack.append(start)
            stack_index[start] = 0
            frames: list[tuple[str, Iterator[str]]] = [
                (start, iter(sorted(self._dependencies[start])))
            ]

            while frames:
                node, neighbours = frames[-1]
                try:
                    neighbour = next(neighbours)
                except StopIteration:
                    frames.pop()
                    state[node] = 2
                    stack.pop()
                    del stack_index[node]
                    continue

                neighbour_state = state.get(neighbour, 0)
                if neighbour_state == 0:
                    state[neighbour] = 1
                    stack_index[neighbour] = len(stack)
                    stack.append(neighbour)
                    frames.append((neighbour, iter(sorted(self._dependencies[neighbour]))))
                elif neighbour_state == 1:
                    cycle = (*stack[stack_index[neighbour] :], neighbour)
                    cycles[_canonicalize_cycle(cycle)] = None

        return tuple(sorted(cycles))

    def transitive_dependencies(self, name: str) -> tuple[str, ...]:
        return self._closure(name, self._dependencies)

    def closure(self, roots: Iterable[str]) -> tuple[str, ...]:
        """``roots`` plus all their transitive dependencies, sorted."""
        selected: set[str] = set()
        for root in roots:
            self._require(root)
            selected.add(root)
            selected.update(self._closure(root, self._dependencies))
        return tuple(sorted(selected))

    def serialize(self) -> dict[str, object]:
        return {
            "nodes": list(self.nodes),
            "edges": [list(edge) for edge in self.edges],
        }

    def _closure(self, name: str, adjacency: dict[str, set[str]]) -> tuple[str, ...]:
        self._require(name)
        visited: set[str] = set()
        pending = list(adjacency[name])
        while pending:
            node = pending.pop()
            if node in visited:
                continue
            visited.add(node)
            pending.extend(neighbour for neighbour in adjacency[node] if neighbour not in visited)
        return tuple(sorted(visited))

    def _require(self, name: str) -> None:
        if name not in self._nodes:
            raise KeyError(f"unknown unit: {name}")


def _canonicalize_cycle(cycle: Sequence[str]) -> tuple[str, ...]:
    core = tuple(cycle[:-1])
    if len(core) == 1:
        return (core[0], core[0])
    best = min(core[offset:] + core[:offset] for offset in range(len(core)))
    return (*best, best[0])


__all__ = ["UnitGraph"]
