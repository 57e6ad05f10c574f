"""Single verifier invocation for one unit: argv, declared I/O, and execution.

Command construction is a pure function of the unit, the bundle, and the
sysroot. Execution runs the verifier directly (no generated shell script) and
turns exit status 0 into the unit's success marker.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final

from verus_orchestrator.constants import (
    CRATE_TYPE,
    EDITION,
    NO_SANDBOX_REQUIREMENTS,
    VERIFY_MNEMONIC,
)
from verus_orchestrator.domain.models import TaskOutcome, TaskStatus
from verus_orchestrator.errors import DependencyNotReadyError
from verus_orchestrator.sandbox.runner import (
    CommandRunner,
    CommandTimeoutError,
    SubprocessCommandRunner,
)
from verus_orchestrator.utils.fs import atomic_write

if TYPE_CHECKING:
    from collections.abc import Mapping

    from verus_orchestrator.domain.models import VerificationUnit
    from verus_orchestrator.sandbox.environment import SynthesizedEnvironment
    from verus_orchestrator.toolchain.bundle import ToolchainBundle

SYSROOT_PLACEHOLDER: Final[str] = "<sysroot>"
_DIAGNOSTIC_TAIL_LINES: Final[int] = 40


def build_verifier_arguments(
    unit: VerificationUnit,
    bundle: ToolchainBundle,
    sysroot: Path | str,
) -> tuple[str, ...]:
    """Verifier arguments, excluding the executable itself."""

    return (
        "--crate-type",
        CRATE_TYPE,
        f"--edition={EDITION}",
        "--sysroot",
        str(sysroot),
        *bundle.extern_flags(),
        *unit.symbol_flags,
        *unit.extra_arguments,
        "--crate-name",
        unit.identity,
        str(unit.entry_source),
    )


def build_verifier_command(
    unit: VerificationUnit,
    bundle: ToolchainBundle,
    sysroot: Path | str,
) -> tuple[str, ...]:
    return (str(bundle.verifier), *build_verifier_arguments(unit, bundle, sysroot))


def declared_inputs(unit: VerificationUnit, bundle: ToolchainBundle) -> tuple[Path, ...]:
    """Sources, bundle artifacts, and upstream markers, without duplicates."""
    ordered: dict[Path, None] = {}
    for path in (*unit.declared_sources, *bundle.artifacts, *unit.upstream_markers):
        ordered.setdefault(path, None)
    return tuple(ordered)


@dataclass(frozen=True, slots=True)
class VerificationAction:
    """What a build engine needs to schedule one verification."""

    unit: str
    command: tuple[str, ...]
    inputs: tuple[Path, ...]
    outputs: tuple[Path, ...]
    progress_message: str
    mnemonic: str = VERIFY_MNEMONIC
    execution_requirements: Mapping[str, str] = field(
        default_factory=lambda: dict(NO_SANDBOX_REQUIREMENTS)
    )
    exec_constraints: tuple[str, ...] = ()

    def describe(self) -> dict[str, object]:
        return {
            "unit": self.unit,
            "mnemonic": self.mnemonic,
            "progress_message": self.progress_message,
            "command": list(self.command),
            "inputs": [str(path) for path in self.inputs],
            "outputs": [str(path) for path in self.outputs],
            "execution_requirements": dict(self.execution_requirements),
            "exec_constraints": list(self.exec_constraints),
        }


def plan_action(
    unit: VerificationUnit,
    bundle: ToolchainBundle,
    sysroot: Path | str = SYSROOT_PLACEHOLDER,
) -> VerificationAction:
    return VerificationAction(
        unit=unit.name,
        command=build_verifier_command(unit, bundle, sysroot),
        inputs=declared_inputs(unit, bundle),
        outputs=(unit.success_marker,),
        progress_message=f"Verifying {unit.identity}",
        exec_constraints=bundle.platform.exec_constraints if bundle.platform is not None else (),
    )


def missing_dependency_markers(unit: VerificationUnit) -> tuple[str, ...]:
    return tuple(
        dependency.name
        for dependency in unit.dependencies
        if not dependency.success_marker.is_file()
    )


def run_verification_task(
    unit: VerificationUnit,
    bundle: ToolchainBundle,
    environment: SynthesizedEnvironment,
    *,
    command_runner: CommandRunner | None = None,
    timeout_seconds: float | None = None,
) -> TaskOutcome:
    """Run the verifier once and create the success marker on exit status 0.

    A pre-existing marker is removed first so a failed or interrupted run never
    leaves one behind. Raises ``DependencyNotReadyError`` when a direct
    dependency has no marker.
    """

    marker = unit.success_marker
    marker.unlink(missing_ok=True)

    missing = missing_dependency_markers(unit)
    if missing:
        raise DependencyNotReadyError(unit.name, missing)

    runner = command_runner or SubprocessCommandRunner()
    command = build_verifier_command(unit, bundle, environment.sysroot)
    started = time.perf_counter()
    try:
        result = runner.run(
            command,
            env=environment.as_dict(),
            timeout_seconds=timeout_seconds,
        )
    except CommandTimeoutError as exc:
        return TaskOutcome(
            unit=unit.name,
            status=TaskStatus.FAILED,
            diagnostic=f"verification of {unit.identity} failed: {exc}",
            duration_ms=_elapsed_ms(started),
        )
    except OSError as exc:
        return TaskOutcome(
            unit=unit.name,
            status=TaskStatus.FAILED,
            diagnostic=f"verification of {unit.identity} failed: cannot start verifier ({exc})",
            duration_ms=_elapsed_ms(started),
        )

    if result.succeeded:
        atomic_write(marker, b"")
        return TaskOutcome(
            unit=unit.name,
            status=TaskStatus.VERIFIED,
            exit_code=0,
            marker=marker,
            duration_ms=result.duration_ms or _elapsed_ms(started),
        )

    return TaskOutcome(
        unit=unit.name,
        status=TaskStatus.FAILED,
        exit_code=result.returncode,
        diagnostic=failure_diagnostic(unit.identity, result.returncode, result.stdout, result.stderr),
        duration_ms=result.duration_ms or _elapsed_ms(started),
    )


def failure_diagnostic(identity: str, exit_code: int, stdout: str = "", stderr: str = "") -> str:
    lines = [f"verification of {identity} failed with exit code {exit_code}"]
    output = "\n".join(part.rstrip() for part in (stdout, stderr) if part.strip())
    if output:
        lines.extend(output.splitlines()[-_DIAGNOSTIC_TAIL_LINES:])
    return "\n".join(lines)


def _elapsed_ms(started: float) -> float:
    return (time.perf_counter() - started) * 1000.0


__all__ = [
    "SYSROOT_PLACEHOLDER",
    "VerificationAction",
    "build_verifier_arguments",
    "build_verifier_command",
    "declared_inputs",
    "failure_diagnostic",
    "missing_dependency_markers",
    "plan_action",
    "run_verification_task",
]
