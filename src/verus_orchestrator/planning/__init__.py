"""Unit resolution, dependency collection, and graph ordering."""

from verus_orchestrator.planning.dependencies import DependencyInfo, collect_dependencies
from verus_orchestrator.planning.identity import (
    CrateIdentity,
    resolve_crate,
    resolve_entry_source,
    resolve_identity,
)
from verus_orchestrator.planning.manifest import load_build_graph, load_manifest, parse_manifest
from verus_orchestrator.planning.resolver import BuildGraph, marker_path, resolve_unit, resolve_units
from verus_orchestrator.planning.task_graph import UnitGraph

__all__ = [
    "BuildGraph",
    "CrateIdentity",
    "DependencyInfo",
    "UnitGraph",
    "collect_dependencies",
    "load_build_graph",
    "load_manifest",
    "marker_path",
    "parse_manifest",
    "resolve_crate",
    "resolve_entry_source",
    "resolve_identity",
    "resolve_unit",
    "resolve_units",
]
