"""Content-addressed record of which markers are still valid."""

from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Final

from verus_orchestrator.constants import ACTION_CACHE_SCHEMA_VERSION
from verus_orchestrator.utils.fs import atomic_write
from verus_orchestrator.utils.hashing import digest_payload, sha256_file
from verus_orchestrator.verification.task import plan_action

if TYPE_CHECKING:
    from collections.abc import Mapping

    from verus_orchestrator.domain.models import VerificationUnit
    from verus_orchestrator.toolchain.bundle import ToolchainBundle

ACTIONS_DIRNAME: Final[str] = "actions"
_MISSING_INPUT: Final[str] = "missing"


def compute_action_key(
    unit: VerificationUnit,
    bundle: ToolchainBundle,
    dependency_keys: Mapping[str, str],
) -> str:
    """Digest of everything that can change the verifier's verdict for ``unit``.

    Hashes the planned action with the sysroot left as a placeholder because it
    is host specific; the compiler pin it was derived from is included instead.
    """

    action = plan_action(unit, bundle)
    inputs: dict[str, str] = {}
    for path in action.inputs:
        inputs[str(path)] = sha256_file(path) if path.is_file() else _MISSING_INPUT
    return digest_payload(
        {
            "schema_version": ACTION_CACHE_SCHEMA_VERSION,
            "mnemonic": action.mnemonic,
            "command": list(action.command),
            "outputs": [str(path) for path in action.outputs],
            "execution_requirements": dict(action.execution_requirements),
            "toolchain_pin": bundle.rust_toolchain,
            "inputs": inputs,
            "dependencies": {name: dependency_keys[name] for name in unit.dependency_names},
        }
    )


@dataclass(frozen=True, slots=True)
class ActionRecord:
    unit: str
    action_key: str
    marker: str

    def to_dict(self) -> dict[str, object]:
        return {
            "schema_version": ACTION_CACHE_SCHEMA_VERSION,
            "unit": self.unit,
            "action_key": self.action_key,
            "marker": self.marker,
        }


class ActionCache:
    """JSON records under ``<cache_dir>/actions/<unit>.json``."""

    def __init__(self, cache_dir: Path | str) -> None:
        self._root = Path(cache_dir) / ACTIONS_DIRNAME

    @property
    def root(self) -> Path:
        return self._root

    def record_path(self, unit_name: str) -> Path:
        return self._root / f"{unit_name}.json"

    def load(self, unit_name: str) -> ActionRecord | None:
        path = self.record_path(unit_name)
        try:
            payload = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return None
        if not isinstance(payload, dict):
            return None
        if payload.get("schema_version") != ACTION_CACHE_SCHEMA_VERSION:
            return None
        key = payload.get("action_key")
        marker = payload.get("marker")
        if not isinstance(key, str) or not isinstance(marker, str):
            return None
        return ActionRecord(unit=unit_name, action_key=key, marker=marker)

    def is_fresh(self, unit: VerificationUnit, action_key: str) -> bool:
        """A marker counts only if it exists and was produced under ``action_key``."""
        if not unit.success_marker.is_file():
            return False
        record = self.load(unit.name)
        return (
            record is not None
            and record.action_key == action_key
            and record.marker == str(unit.success_marker)
        )

    def store(self, unit: VerificationUnit, action_key: str) -> ActionRecord:
        record = ActionRecord(
            unit=unit.name,
            action_key=action_key,
            marker=str(unit.success_marker),
        )
        atomic_write(
            self.record_path(unit.name),
            json.dumps(record.to_dict(), sort_keys=True, indent=2) + "\n",
        )
        return record

    def invalidate(self, unit_name: str) -> None:
        self.record_path(unit_name).unlink(missing_ok=True)


__all__ = ["ACTIONS_DIRNAME", "ActionCache", "ActionRecord", "compute_action_key"]
