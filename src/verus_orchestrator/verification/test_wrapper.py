"""Verification surfaced as a test: header, passthrough output, footer, exit status."""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, Final, TextIO

from verus_orchestrator.errors import ToolchainResolutionError
from verus_orchestrator.sandbox.runner import (
    CommandRunner,
    CommandTimeoutError,
    SubprocessCommandRunner,
)
from verus_orchestrator.verification.task import (
    build_verifier_command,
    missing_dependency_markers,
)

if TYPE_CHECKING:
    from collections.abc import Callable

    from verus_orchestrator.domain.models import VerificationUnit
    from verus_orchestrator.sandbox.environment import SynthesizedEnvironment
    from verus_orchestrator.toolchain.bundle import ToolchainBundle

HEADER: Final[str] = "=== Verus Verification Test ==="
PASSED_FOOTER: Final[str] = "=== PASSED ==="
FAILED_FOOTER: Final[str] = "=== FAILED ==="


def run_verification_test(
    unit: VerificationUnit,
    bundle: ToolchainBundle,
    environment: Callable[[], SynthesizedEnvironment],
    *,
    command_runner: CommandRunner | None = None,
    timeout_seconds: float | None = None,
    stream: TextIO | None = None,
) -> int:
    """Run the verifier for ``unit`` and return its exit status.

    No marker is written. Verifier stdout/stderr are not captured. Environment
    or dependency problems are printed and reported as status 1.
    """

    out = stream if stream is not None else sys.stdout
    runner = command_runner or SubprocessCommandRunner()

    _emit(out, HEADER)
    _emit(out, f"Crate: {unit.identity}")
    _emit(out, f"Source: {unit.entry_source}")
    _emit(out, f"Verifier: {bundle.verifier}")

    try:
        resolved = environment()
    except ToolchainResolutionError as exc:
        _emit(out, f"ERROR: {exc}")
        _emit(out, FAILED_FOOTER)
        return 1
    _emit(out, f"Rust sysroot: {resolved.sysroot}")

    missing = missing_dependency_markers(unit)
    if missing:
        _emit(out, f"ERROR: dependencies not verified: {', '.join(missing)}")
        _emit(out, FAILED_FOOTER)
        return 1

    _emit(out, "")
    out.flush()
    try:
        result = runner.run(
            build_verifier_command(unit, bundle, resolved.sysroot),
            env=resolved.as_dict(),
            timeout_seconds=timeout_seconds,
            capture_output=False,
        )
    except (CommandTimeoutError, OSError) as exc:
        _emit(out, f"ERROR: {exc}")
        _emit(out, FAILED_FOOTER)
        return 1

    _emit(out, "")
    _emit(out, PASSED_FOOTER if result.succeeded else FAILED_FOOTER)
    return result.returncode


def _emit(stream: TextIO, line: str) -> None:
    stream.write(f"{line}\n")


__all__ = ["FAILED_FOOTER", "HEADER", "PASSED_FOOTER", "run_verification_test"]
