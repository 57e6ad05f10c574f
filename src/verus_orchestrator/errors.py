"""Error taxonomy shared by every verification plane.

Configuration errors are raised before any task is scheduled. Toolchain
resolution errors surface when a task executes. Verification failures are not
exceptions: they are reported through task outcomes.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence


class ConfigurationError(ValueError):
    """Invalid unit, manifest, or platform declaration."""


class ManifestError(ConfigurationError):
    """Raised when a unit manifest cannot be parsed or validated."""


class UnsupportedPlatformError(ConfigurationError):
    """Raised for a platform identifier outside the supported set."""


class DuplicateIdentityError(ConfigurationError):
    """Raised when two reachable units resolve to the same crate identity."""

    def __init__(self, identity: str, units: Sequence[str]) -> None:
        self.identity = identity
        self.units = tuple(units)
        super().__init__(
            f"crate identity {identity!r} is claimed by more than one unit: {', '.join(self.units)}"
        )


class DependencyCycleError(ConfigurationError):
    """Raised when unit dependencies do not form a DAG."""

    cycles: tuple[tuple[str, ...], ...]

    def __init__(self, cycles: Iterable[Sequence[str]]) -> None:
        self.cycles = tuple(tuple(path) for path in cycles)
        if not self.cycles:
            message = "unit dependencies contain at least one cycle"
        else:
            preview = ", ".join(" -> ".join(path) for path in self.cycles[:3])
            suffix = "..." if len(self.cycles) > 3 else ""
            message = f"unit dependencies contain cycle(s): {preview}{suffix}"
        super().__init__(message)


class ToolchainResolutionError(RuntimeError):
    """Raised when the verifier's native environment cannot be reconstructed."""

    def __init__(self, component: str, message: str, *, toolchain_pin: str = "") -> None:
        self.component = component
        self.toolchain_pin = toolchain_pin
        super().__init__(message)


class DependencyNotReadyError(RuntimeError):
    """Raised when a task is started before its direct dependencies verified."""

    def __init__(self, unit: str, missing: Sequence[str]) -> None:
        self.unit = unit
        self.missing = tuple(missing)
        super().__init__(
            f"unit {unit!r} cannot run: missing success marker(s) for {', '.join(self.missing)}"
        )


class AcquisitionError(RuntimeError):
    """Raised when a toolchain release cannot be downloaded, checked, or extracted."""


__all__ = [
    "AcquisitionError",
    "ConfigurationError",
    "DependencyCycleError",
    "DependencyNotReadyError",
    "DuplicateIdentityError",
    "ManifestError",
    "ToolchainResolutionError",
    "UnsupportedPlatformError",
]
