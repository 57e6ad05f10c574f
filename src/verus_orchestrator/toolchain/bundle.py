"""Immutable handle to an extracted verifier release.

The bundle is read-only and shared by every task of a build. Optional pieces
(foundational libraries, the pre-verified standard library, builtin sources)
may be absent; consumers omit the matching flags and inputs.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Final

from verus_orchestrator.constants import FOUNDATION_CRATES
from verus_orchestrator.errors import ToolchainResolutionError
from verus_orchestrator.toolchain.platforms import Platform

VERSION_FILE: Final[str] = "version.json"

_VERIFIER_STEM: Final[str] = "rust_verify"
_SOLVER_STEM: Final[str] = "z3"
_LIBRARY_FILES: Final[dict[str, str]] = {
    "builtin": "libverus_builtin.rlib",
    "vstd": "libvstd.rlib",
}
_MACROS_GLOB: Final[str] = "libverus_builtin_macros.*"
_VSTD_METADATA: Final[tuple[str, ...]] = ("vstd.vir", ".vstd-fingerprint")
_BUILTIN_SOURCES_DIR: Final[str] = "builtin"


@dataclass(frozen=True, slots=True)
class FoundationLibrary:
    """Precompiled library bound into every verification by crate name."""

    name: str
    path: Path

    def __post_init__(self) -> None:
        if self.name not in FOUNDATION_CRATES:
            raise ValueError(f"unknown foundation crate {self.name!r}")


@dataclass(frozen=True, slots=True)
class ToolchainBundle:
    """Verifier, solver, foundation libraries, and the compiler pin they were built with."""

    verifier: Path
    solver: Path
    rust_toolchain: str = ""
    version: str = ""
    libraries: tuple[FoundationLibrary, ...] = ()
    support_files: tuple[Path, ...] = ()
    platform: Platform | None = None
    root: Path | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        names = [library.name for library in self.libraries]
        if len(names) != len(set(names)):
            raise ValueError("foundation libraries must have unique names")
        ordered = tuple(
            sorted(self.libraries, key=lambda item: FOUNDATION_CRATES.index(item.name))
        )
        object.__setattr__(self, "libraries", ordered)
        object.__setattr__(self, "rust_toolchain", self.rust_toolchain.strip())

    def library(self, name: str) -> Path | None:
        for library in self.libraries:
            if library.name == name:
                return library.path
        return None

    @property
    def verifier_dir(self) -> Path:
        return self.verifier.parent

    @property
    def solver_dir(self) -> Path:
        return self.solver.parent

    @property
    def artifacts(self) -> tuple[Path, ...]:
        """Every bundle file a verification task reads, in a stable order."""
        files: list[Path] = [self.verifier, self.solver]
        files.extend(library.path for library in self.libraries)
        files.extend(self.support_files)
        return tuple(files)

    def extern_flags(self) -> tuple[str, ...]:
        """``--extern`` bindings for the foundation libraries that are present."""
        flags: list[str] = []
        for library in self.libraries:
            flags.extend(("--extern", f"{library.name}={library.path}"))
        return tuple(flags)

    def describe(self) -> dict[str, object]:
        return {
            "version": self.version,
            "platform": self.platform.value if self.platform is not None else None,
            "rust_toolchain": self.rust_toolchain,
            "verifier": str(self.verifier),
            "solver": str(self.solver),
            "libraries": {library.name: str(library.path) for library in self.libraries},
        }

    @classmethod
    def from_directory(
        cls,
        root: Path | str,
        *,
        platform: Platform | None = None,
        version: str = "",
        rust_toolchain: str | None = None,
    ) -> ToolchainBundle:
        """Describe an extracted release directory.

        ``rust_toolchain`` overrides the pin recorded in ``version.json``.
        Missing verifier or solver binaries are reported when a task runs, not here.
        """

        base = Path(root)
        if not base.is_dir():
            raise ToolchainResolutionError(
                "bundle", f"toolchain directory not found: {base} (run `verus-orch fetch`)"
            )

        def _exe(stem: str) -> Path:
            name = platform.executable_name(stem) if platform is not None else stem
            return base / name

        libraries: list[FoundationLibrary] = []
        builtin = base / _LIBRARY_FILES["builtin"]
        if builtin.is_file():
            libraries.append(FoundationLibrary("builtin", builtin))
        macros = sorted(path for path in base.glob(_MACROS_GLOB) if path.is_file())
        if macros:
            libraries.append(FoundationLibrary("builtin_macros", macros[0]))
        vstd = base / _LIBRARY_FILES["vstd"]
        if vstd.is_file():
            libraries.append(FoundationLibrary("vstd", vstd))

        support = [base / name for name in _VSTD_METADATA if (base / name).is_file()]
        builtin_sources = base / _BUILTIN_SOURCES_DIR
        if builtin_sources.is_dir():
            support.extend(sorted(path for path in builtin_sources.rglob("*") if path.is_file()))

        pin = rust_toolchain if rust_toolchain else read_toolchain_pin(base)
        return cls(
            verifier=_exe(_VERIFIER_STEM),
            solver=_exe(_SOLVER_STEM),
            rust_toolchain=pin,
            version=version,
            libraries=tuple(libraries),
            support_files=tuple(support),
            platform=platform,
            root=base,
        )


def read_toolchain_pin(root: Path | str) -> str:
    """Return the compiler version the verifier was built against, or ``""``.

    ``version.json`` records e.g. ``{"verus": {"toolchain": "1.93.0-x86_64-unknown-linux-gnu"}}``;
    only the part before the first ``-`` is the rustup toolchain name.
    """

    path = Path(root) / VERSION_FILE
    try:
        payload = json.loads(path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        return ""
    return toolchain_pin_from_payload(payload)


def toolchain_pin_from_payload(payload: object) -> str:
    if not isinstance(payload, dict):
        return ""
    verus = payload.get("verus")
    if not isinstance(verus, dict):
        return ""
    toolchain = verus.get("toolchain")
    if not isinstance(toolchain, str):
        return ""
    return toolchain.split("-", 1)[0].strip()


__all__ = [
    "FoundationLibrary",
    "ToolchainBundle",
    "VERSION_FILE",
    "read_toolchain_pin",
    "toolchain_pin_from_payload",
]
