"""Stable constants shared across the verification planes."""

from __future__ import annotations

from pathlib import PurePosixPath
from typing import Final

# Schema versions for persisted contracts.
CONFIG_SCHEMA_VERSION: Final[int] = 1
MANIFEST_SCHEMA_VERSION: Final[int] = 1
ACTION_CACHE_SCHEMA_VERSION: Final[int] = 1

# Crate conventions.
CONVENTIONAL_ENTRY_FILENAME: Final[str] = "lib.rs"
CRATE_TYPE: Final[str] = "lib"
EDITION: Final[str] = "2021"
SUCCESS_MARKER_SUFFIX: Final[str] = ".success"

# Foundational library crate names, in the order their bindings are emitted.
FOUNDATION_CRATES: Final[tuple[str, ...]] = ("builtin", "builtin_macros", "vstd")

# Task metadata exposed to the host build engine.
VERIFY_MNEMONIC: Final[str] = "VerusVerify"
NO_SANDBOX_REQUIREMENTS: Final[dict[str, str]] = {"no-sandbox": "1"}

# Default runtime paths (relative to the config file unless overridden).
DEFAULT_MANIFEST: Final[PurePosixPath] = PurePosixPath("verify.yaml")
OUTPUT_DIR: Final[PurePosixPath] = PurePosixPath("verus-out")
CACHE_DIR: Final[PurePosixPath] = PurePosixPath(".verus-cache")
LOG_DIR: Final[PurePosixPath] = PurePosixPath("logs")

__all__ = [
    "ACTION_CACHE_SCHEMA_VERSION",
    "CACHE_DIR",
    "CONFIG_SCHEMA_VERSION",
    "CONVENTIONAL_ENTRY_FILENAME",
    "CRATE_TYPE",
    "DEFAULT_MANIFEST",
    "EDITION",
    "FOUNDATION_CRATES",
    "LOG_DIR",
    "MANIFEST_SCHEMA_VERSION",
    "NO_SANDBOX_REQUIREMENTS",
    "OUTPUT_DIR",
    "SUCCESS_MARKER_SUFFIX",
    "VERIFY_MNEMONIC",
]
