"""
verus-orchestrator: execution environment synthesis

File: src/verus_orchestrator/sandbox/environment.py

Purpose
- Rebuild, at task execution time, the native environment the verifier needs:
  a real HOME for the toolchain manager, a compiler sysroot matching the
  bundle's pin, a dynamic library search path, and the solver on PATH.

Functional requirements
- All host reads go through an injectable ``HostInspector``; inspection never writes.
- Sysroot lookup tries the pinned toolchain first, then the default compiler.
- Failure to find any sysroot is fatal and names the pinned version.
- Every task runs with the ``no-sandbox`` execution requirement.
"""

from __future__ import annotations

import os
import shutil
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Final, Protocol

from verus_orchestrator.constants import NO_SANDBOX_REQUIREMENTS
from verus_orchestrator.errors import ToolchainResolutionError
from verus_orchestrator.sandbox.runner import (
    CommandRunner,
    CommandTimeoutError,
    SubprocessCommandRunner,
)
from verus_orchestrator.toolchain.platforms import Platform, detect_host_platform

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence

    from verus_orchestrator.toolchain.bundle import ToolchainBundle

DEFAULT_MANAGER_BIN_DIRS: Final[tuple[str, ...]] = (".cargo/bin", ".rustup/shims")
DEFAULT_EXTRA_BIN_DIRS: Final[tuple[str, ...]] = ("/usr/local/bin",)
RUSTUP_DIRNAME: Final[str] = ".rustup"
COMPILER_BINARY: Final[str] = "rustc"


class HostInspector(Protocol):
    """Read-only view of host state consulted while synthesizing an environment."""

    def environ(self) -> Mapping[str, str]: ...

    def real_home(self) -> Path | None: ...

    def is_dir(self, path: Path) -> bool: ...

    def is_file(self, path: Path) -> bool: ...

    def print_sysroot(self, toolchain: str | None, env: Mapping[str, str]) -> str | None: ...


class LocalHostInspector:
    """``HostInspector`` backed by the running process, ``pwd``, and ``rustc``."""

    def __init__(
        self,
        *,
        command_runner: CommandRunner | None = None,
        timeout_seconds: float = 30.0,
    ) -> None:
        self._runner = command_runner or SubprocessCommandRunner()
        self._timeout_seconds = timeout_seconds

    def environ(self) -> Mapping[str, str]:
        return dict(os.environ)

    def real_home(self) -> Path | None:
        if sys.platform == "win32":
            return None
        import pwd

        try:
            return Path(pwd.getpwuid(os.getuid()).pw_dir)
        except KeyError:
            return None

    def is_dir(self, path: Path) -> bool:
        return path.is_dir()

    def is_file(self, path: Path) -> bool:
        return path.is_file()

    def print_sysroot(self, toolchain: str | None, env: Mapping[str, str]) -> str | None:
        compiler = shutil.which(COMPILER_BINARY, path=env.get("PATH"))
        if compiler is None:
            return None
        command = [compiler]
        if toolchain:
            command.append(f"+{toolchain}")
        command.extend(("--print", "sysroot"))
        try:
            result = self._runner.run(command, env=env, timeout_seconds=self._timeout_seconds)
        except (OSError, CommandTimeoutError):
            return None
        sysroot = result.stdout.strip()
        if not result.succeeded or not sysroot:
            return None
        return sysroot


@dataclass(frozen=True, slots=True)
class EnvironmentSettings:
    manager_bin_dirs: tuple[str, ...] = DEFAULT_MANAGER_BIN_DIRS
    extra_bin_dirs: tuple[str, ...] = DEFAULT_EXTRA_BIN_DIRS


@dataclass(frozen=True, slots=True)
class SynthesizedEnvironment:
    """Environment variables and resolved locations for one build."""

    environ: Mapping[str, str]
    sysroot: Path
    home: Path | None
    library_path_var: str
    toolchain_pin: str = ""
    execution_requirements: Mapping[str, str] = field(
        default_factory=lambda: dict(NO_SANDBOX_REQUIREMENTS)
    )

    def as_dict(self) -> dict[str, str]:
        return dict(self.environ)

    def describe(self) -> dict[str, object]:
        return {
            "home": str(self.home) if self.home is not None else None,
            "sysroot": str(self.sysroot),
            "toolchain_pin": self.toolchain_pin,
            "library_path_var": self.library_path_var,
            "library_path": self.environ.get(self.library_path_var, ""),
            "path": self.environ.get("PATH", ""),
            "execution_requirements": dict(self.execution_requirements),
        }


class EnvironmentSynthesizer:
    """Derive the verifier's process environment from a bundle and the host."""

    def __init__(
        self,
        host: HostInspector | None = None,
        *,
        settings: EnvironmentSettings | None = None,
        platform: Platform | None = None,
    ) -> None:
        self._host = host or LocalHostInspector()
        self._settings = settings or EnvironmentSettings()
        self._platform = platform

    def synthesize(self, bundle: ToolchainBundle) -> SynthesizedEnvironment:
        pin = bundle.rust_toolchain
        for component, binary in (("verifier", bundle.verifier), ("solver", bundle.solver)):
            if not self._host.is_file(binary):
                raise ToolchainResolutionError(
                    component,
                    f"{component} binary not found at {binary}; "
                    "fetch the toolchain with `verus-orch fetch` or fix [toolchain].root",
                    toolchain_pin=pin,
                )

        env = dict(self._host.environ())
        home = self._resolve_home(env)
        if home is not None:
            for entry in self._search_dirs(home):
                if self._host.is_dir(entry):
                    env["PATH"] = _prepend(str(entry), env.get("PATH"))

        sysroot = self._resolve_sysroot(pin, env)

        platform = bundle.platform or self._platform or detect_host_platform()
        library_var = platform.library_path_var
        env[library_var] = _join(
            (str(sysroot / "lib"), str(bundle.verifier_dir), env.get(library_var, ""))
        )
        env["PATH"] = _prepend(str(bundle.solver_dir), env.get("PATH"))

        return SynthesizedEnvironment(
            environ=env,
            sysroot=sysroot,
            home=home,
            library_path_var=library_var,
            toolchain_pin=pin,
        )

    def _resolve_home(self, env: dict[str, str]) -> Path | None:
        # HOME may point into a sandbox; the account home wins when it holds rustup state.
        real_home = self._host.real_home()
        if real_home is not None and self._host.is_dir(real_home / RUSTUP_DIRNAME):
            env["HOME"] = str(real_home)
            return real_home
        current = env.get("HOME")
        return Path(current) if current else real_home

    def _search_dirs(self, home: Path) -> list[Path]:
        dirs = [home / relative for relative in self._settings.manager_bin_dirs]
        dirs.extend(Path(entry) for entry in self._settings.extra_bin_dirs)
        return dirs

    def _resolve_sysroot(self, pin: str, env: Mapping[str, str]) -> Path:
        if pin:
            pinned = self._host.print_sysroot(pin, env)
            if pinned:
                return Path(pinned)
        fallback = self._host.print_sysroot(None, env)
        if fallback:
            return Path(fallback)
        raise ToolchainResolutionError("sysroot", sysroot_failure_message(pin), toolchain_pin=pin)


def sysroot_failure_message(pin: str) -> str:
    message = "Cannot determine Rust sysroot. Is rustc/rustup installed?"
    if pin:
        return (
            f"{message} rust_verify requires Rust toolchain {pin}; "
            f"install it with `rustup toolchain install {pin}`."
        )
    return f"{message} Install a Rust compiler (https://rustup.rs) and retry."


def _prepend(entry: str, current: str | None) -> str:
    return _join((entry, current or ""))


def _join(parts: Sequence[str]) -> str:
    return os.pathsep.join(part for part in parts if part)


__all__ = [
    "DEFAULT_EXTRA_BIN_DIRS",
    "DEFAULT_MANAGER_BIN_DIRS",
    "EnvironmentSettings",
    "EnvironmentSynthesizer",
    "HostInspector",
    "LocalHostInspector",
    "SynthesizedEnvironment",
    "sysroot_failure_message",
]
