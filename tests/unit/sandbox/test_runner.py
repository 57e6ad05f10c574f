"""Unit tests for sandbox.runner."""

from __future__ import annotations

import sys

import pytest

from verus_orchestrator.sandbox.runner import CommandTimeoutError, SubprocessCommandRunner


def test_subprocess_runner_captures_output_and_status() -> None:
    result = SubprocessCommandRunner().run(
        [sys.executable, "-c", "import sys; print('out'); print('err', file=sys.stderr); sys.exit(3)"]
    )

    assert result.returncode == 3
    assert not result.succeeded
    assert result.stdout.strip() == "out"
    assert result.stderr.strip() == "err"
    assert result.duration_ms >= 0


def test_subprocess_runner_passes_environment() -> None:
    result = SubprocessCommandRunner().run(
        [sys.executable, "-c", "import os; print(os.environ['VERUS_RUNNER_CHECK'])"],
        env={"VERUS_RUNNER_CHECK": "present"},
    )

    assert result.succeeded
    assert result.stdout.strip() == "present"


def test_subprocess_runner_times_out() -> None:
    with pytest.raises(CommandTimeoutError) as error:
        SubprocessCommandRunner().run(
            [sys.executable, "-c", "import time; time.sleep(5)"],
            timeout_seconds=0.2,
        )

    assert error.value.timeout_seconds == 0.2


def test_empty_command_is_rejected() -> None:
    with pytest.raises(ValueError, match="must not be empty"):
        SubprocessCommandRunner().run([])


def test_subprocess_runner_replaces_undecodable_output() -> None:
    result = SubprocessCommandRunner().run(
        [
            sys.executable,
            "-c",
            "import sys; sys.stdout.buffer.write(b'error: \\xff\\xfe bad'); sys.stdout.flush(); sys.exit(1)",
        ]
    )

    assert result.returncode == 1
    assert result.stdout.startswith("error: ")
    assert "�" in result.stdout
