"""Toolchain bundle handles, release platforms, and release acquisition."""

from verus_orchestrator.toolchain.acquisition import (
    DEFAULT_VERSION,
    KNOWN_RELEASES,
    ToolchainAcquirer,
    ToolchainRelease,
    resolve_release,
)
from verus_orchestrator.toolchain.bundle import (
    FoundationLibrary,
    ToolchainBundle,
    read_toolchain_pin,
)
from verus_orchestrator.toolchain.platforms import (
    Platform,
    detect_host_platform,
    parse_platform,
)

__all__ = [
    "DEFAULT_VERSION",
    "KNOWN_RELEASES",
    "FoundationLibrary",
    "Platform",
    "ToolchainAcquirer",
    "ToolchainRelease",
    "ToolchainBundle",
    "detect_host_platform",
    "parse_platform",
    "read_toolchain_pin",
    "resolve_release",
]
