"""Process execution primitives shared by acquisition, probing, and tasks."""

from __future__ import annotations

import subprocess
import time
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence


class CommandTimeoutError(RuntimeError):
    """Raised when a command exceeds its timeout."""

    def __init__(self, command: Sequence[str], timeout_seconds: float) -> None:
        self.command = tuple(command)
        self.timeout_seconds = timeout_seconds
        super().__init__(f"command timed out after {timeout_seconds} seconds: {' '.join(command)}")


@dataclass(frozen=True, slots=True)
class CommandExecutionResult:
    """Normalized subprocess result."""

    command: tuple[str, ...]
    returncode: int
    stdout: str
    stderr: str
    duration_ms: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.returncode == 0


class CommandRunner(Protocol):
    """Injectable command runner used for deterministic/offline testing."""

    def run(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        timeout_seconds: float | None = None,
        capture_output: bool = True,
    ) -> CommandExecutionResult: ...


class SubprocessCommandRunner:
    """Default command runner backed by ``subprocess.run``.

    With ``capture_output=False`` the child inherits this process's stdout and
    stderr, which is how test runs surface verifier diagnostics directly.
    """

    def run(
        self,
        command: Sequence[str],
        *,
        env: Mapping[str, str] | None = None,
        cwd: Path | None = None,
        timeout_seconds: float | None = None,
        capture_output: bool = True,
    ) -> CommandExecutionResult:
        argv = [str(part) for part in command]
        if not argv:
            raise ValueError("command must not be empty")
        started = time.perf_counter()
        try:
            completed = subprocess.run(
                argv,
                cwd=cwd,
                env=dict(env) if env is not None else None,
                check=False,
                capture_output=capture_output,
                text=True,
                encoding="utf-8",
                errors="replace",
                timeout=timeout_seconds,
            )
        except subprocess.TimeoutExpired as exc:
            raise CommandTimeoutError(argv, float(timeout_seconds or 0.0)) from exc
        duration_ms = (time.perf_counter() - started) * 1000.0
        return CommandExecutionResult(
            command=tuple(argv),
            returncode=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
            duration_ms=duration_ms,
        )


__all__ = [
    "CommandExecutionResult",
    "CommandRunner",
    "CommandTimeoutError",
    "SubprocessCommandRunner",
]
