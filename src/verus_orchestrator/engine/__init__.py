"""Local host engine: action cache and bounded-parallel scheduling."""

from verus_orchestrator.engine.action_cache import ActionCache, ActionRecord, compute_action_key
from verus_orchestrator.engine.executor import BuildReport, LocalBuildEngine

__all__ = [
    "ActionCache",
    "ActionRecord",
    "BuildReport",
    "LocalBuildEngine",
    "compute_action_key",
]
