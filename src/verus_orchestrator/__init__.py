"""
verus-orchestrator: package root

File: src/verus_orchestrator/__init__.py

Purpose
- Orchestrate formal verification of interdependent crates with an external,
  SMT-backed verifier: resolve crate identities, propagate cross-crate symbol
  bindings and success markers, and rebuild the verifier's native environment.

Functional requirements
- Must not have side effects at import time (no config loading, no logging init).
"""

from __future__ import annotations

__version__ = "0.1.0"

__all__ = ["__version__"]
