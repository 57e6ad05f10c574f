"""Closed set of release platforms and their artifact/execution traits."""

from __future__ import annotations

import platform as _platform
from dataclasses import dataclass
from enum import StrEnum
from typing import Final

from verus_orchestrator.errors import UnsupportedPlatformError


class Platform(StrEnum):
    """Target triples with published verifier releases."""

    AARCH64_APPLE_DARWIN = "aarch64-apple-darwin"
    X86_64_APPLE_DARWIN = "x86_64-apple-darwin"
    X86_64_UNKNOWN_LINUX_GNU = "x86_64-unknown-linux-gnu"
    X86_64_PC_WINDOWS_MSVC = "x86_64-pc-windows-msvc"

    @property
    def slug(self) -> str:
        """Release artifact slug, e.g. ``x86-linux``."""
        return _TRAITS[self].slug

    @property
    def os(self) -> str:
        return _TRAITS[self].os

    @property
    def cpu(self) -> str:
        return _TRAITS[self].cpu

    @property
    def exec_constraints(self) -> tuple[str, str]:
        """``(os, cpu)`` constraint pair a worker must satisfy to run this bundle."""
        traits = _TRAITS[self]
        return (f"os:{traits.os}", f"cpu:{traits.cpu}")

    @property
    def library_path_var(self) -> str:
        """Environment variable the dynamic loader consults on this OS."""
        return _LIBRARY_PATH_VARS[_TRAITS[self].os]

    @property
    def is_macos(self) -> bool:
        return _TRAITS[self].os == "macos"

    def executable_name(self, stem: str) -> str:
        return f"{stem}.exe" if _TRAITS[self].os == "windows" else stem


@dataclass(frozen=True, slots=True)
class _PlatformTraits:
    slug: str
    os: str
    cpu: str


_TRAITS: Final[dict[Platform, _PlatformTraits]] = {
    Platform.AARCH64_APPLE_DARWIN: _PlatformTraits(slug="arm64-macos", os="macos", cpu="aarch64"),
    Platform.X86_64_APPLE_DARWIN: _PlatformTraits(slug="x86-macos", os="macos", cpu="x86_64"),
    Platform.X86_64_UNKNOWN_LINUX_GNU: _PlatformTraits(slug="x86-linux", os="linux", cpu="x86_64"),
    Platform.X86_64_PC_WINDOWS_MSVC: _PlatformTraits(slug="x86-win", os="windows", cpu="x86_64"),
}

_LIBRARY_PATH_VARS: Final[dict[str, str]] = {
    "macos": "DYLD_LIBRARY_PATH",
    "linux": "LD_LIBRARY_PATH",
    "windows": "PATH",
}

_HOST_SYSTEMS: Final[dict[str, str]] = {
    "darwin": "macos",
    "linux": "linux",
    "windows": "windows",
}

_HOST_MACHINES: Final[dict[str, str]] = {
    "arm64": "aarch64",
    "aarch64": "aarch64",
    "x86_64": "x86_64",
    "amd64": "x86_64",
}

if set(_TRAITS) != set(Platform):  # pragma: no cover - guarded by unit tests.
    raise RuntimeError("platform trait table is not exhaustive")


def parse_platform(value: Platform | str) -> Platform:
    """Parse a target triple, failing on anything outside the supported set."""

    if isinstance(value, Platform):
        return value
    normalized = value.strip().lower() if isinstance(value, str) else ""
    try:
        return Platform(normalized)
    except ValueError as exc:
        supported = ", ".join(item.value for item in Platform)
        raise UnsupportedPlatformError(
            f"Unsupported platform: {value!r}. Supported: {supported}"
        ) from exc


def detect_host_platform(
    *,
    system: str | None = None,
    machine: str | None = None,
) -> Platform:
    """Map the running interpreter's OS/CPU onto a release platform."""

    raw_system = (system if system is not None else _platform.system()).strip().lower()
    raw_machine = (machine if machine is not None else _platform.machine()).strip().lower()
    os_name = _HOST_SYSTEMS.get(raw_system)
    cpu = _HOST_MACHINES.get(raw_machine)
    for candidate, traits in _TRAITS.items():
        if traits.os == os_name and traits.cpu == cpu:
            return candidate
    raise UnsupportedPlatformError(
        f"no verifier release for host {raw_system}/{raw_machine}"
    )


__all__ = ["Platform", "detect_host_platform", "parse_platform"]
