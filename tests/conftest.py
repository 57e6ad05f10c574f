"""Shared fixtures: a scripted stand-in verifier and a fixed execution environment."""

from __future__ import annotations

import json
import os
import sys
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from verus_orchestrator.sandbox.environment import SynthesizedEnvironment
from verus_orchestrator.toolchain.bundle import FoundationLibrary, ToolchainBundle
from verus_orchestrator.toolchain.platforms import Platform

if TYPE_CHECKING:
    from collections.abc import Iterable

# Records argv as one JSON line and exits non-zero for identities listed in FAKE_VERUS_FAIL.
FAKE_VERIFIER = """#!{python}
import json
import os
import sys

argv = sys.argv[1:]
log = os.environ.get("FAKE_VERUS_LOG")
if log:
    with open(log, "a", encoding="utf-8") as handle:
        handle.write(json.dumps(argv) + "\\n")
identity = argv[argv.index("--crate-name") + 1] if "--crate-name" in argv else ""
failing = [item for item in os.environ.get("FAKE_VERUS_FAIL", "").split(",") if item]
if identity in failing:
    if os.environ.get("FAKE_VERUS_RAW"):
        sys.stdout.flush()
        sys.stdout.buffer.write(b"error: \\xff\\xfe unreadable output in " + identity.encode() + b"\\n")
        sys.stdout.buffer.flush()
    else:
        print("error: postcondition not satisfied in " + identity)
    sys.exit(int(os.environ.get("FAKE_VERUS_EXIT", "1")))
print("verification results:: 1 verified, 0 errors")
sys.exit(0)
"""


@dataclass
class FakeToolchain:
    root: Path
    bundle: ToolchainBundle
    sysroot: Path
    log_path: Path

    def environment(
        self, *, fail: Iterable[str] = (), exit_code: int = 1, raw_output: bool = False
    ) -> SynthesizedEnvironment:
        env = dict(os.environ)
        env["FAKE_VERUS_LOG"] = str(self.log_path)
        env["FAKE_VERUS_FAIL"] = ",".join(fail)
        env["FAKE_VERUS_EXIT"] = str(exit_code)
        if raw_output:
            env["FAKE_VERUS_RAW"] = "1"
        else:
            env.pop("FAKE_VERUS_RAW", None)
        return SynthesizedEnvironment(
            environ=env,
            sysroot=self.sysroot,
            home=None,
            library_path_var="LD_LIBRARY_PATH",
            toolchain_pin=self.bundle.rust_toolchain,
        )

    def invocations(self) -> list[list[str]]:
        if not self.log_path.exists():
            return []
        return [json.loads(line) for line in self.log_path.read_text(encoding="utf-8").splitlines()]

    def synthesizer(
        self, *, fail: Iterable[str] = (), exit_code: int = 1, raw_output: bool = False
    ) -> StaticSynthesizer:
        return StaticSynthesizer(
            self.environment(fail=fail, exit_code=exit_code, raw_output=raw_output)
        )

    def sources(self, name: str, files: Iterable[str] = ("lib.rs",)) -> tuple[Path, ...]:
        directory = self.root.parent / "src" / name
        directory.mkdir(parents=True, exist_ok=True)
        paths: list[Path] = []
        for filename in files:
            path = directory / filename
            path.write_text(f"// {name}/{filename}\n", encoding="utf-8")
            paths.append(path)
        return tuple(paths)


class StaticSynthesizer:
    """Synthesizer stand-in returning a fixed environment and counting calls."""

    def __init__(self, environment: SynthesizedEnvironment) -> None:
        self.environment = environment
        self.calls = 0

    def synthesize(self, bundle: ToolchainBundle) -> SynthesizedEnvironment:
        self.calls += 1
        return self.environment


@pytest.fixture
def fake_toolchain(tmp_path: Path) -> FakeToolchain:
    root = tmp_path / "toolchain"
    root.mkdir()
    verifier = root / "rust_verify"
    verifier.write_text(FAKE_VERIFIER.format(python=sys.executable), encoding="utf-8")
    verifier.chmod(0o755)
    solver = root / "z3"
    solver.write_text("", encoding="utf-8")
    vstd = root / "libvstd.rlib"
    vstd.write_bytes(b"vstd")
    sysroot = tmp_path / "sysroot"
    (sysroot / "lib").mkdir(parents=True)
    bundle = ToolchainBundle(
        verifier=verifier,
        solver=solver,
        rust_toolchain="1.93.0",
        version="0.2026.02.15",
        libraries=(FoundationLibrary("vstd", vstd),),
        platform=Platform.X86_64_UNKNOWN_LINUX_GNU,
        root=root,
    )
    return FakeToolchain(root=root, bundle=bundle, sysroot=sysroot, log_path=tmp_path / "verifier.log")
