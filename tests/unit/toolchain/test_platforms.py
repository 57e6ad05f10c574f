"""Unit tests for toolchain.platforms."""

from __future__ import annotations

import pytest

from verus_orchestrator.errors import UnsupportedPlatformError
from verus_orchestrator.toolchain.platforms import Platform, detect_host_platform, parse_platform


@pytest.mark.parametrize(
    ("platform", "slug", "constraints", "library_var"),
    [
        (Platform.AARCH64_APPLE_DARWIN, "arm64-macos", ("os:macos", "cpu:aarch64"), "DYLD_LIBRARY_PATH"),
        (Platform.X86_64_APPLE_DARWIN, "x86-macos", ("os:macos", "cpu:x86_64"), "DYLD_LIBRARY_PATH"),
        (Platform.X86_64_UNKNOWN_LINUX_GNU, "x86-linux", ("os:linux", "cpu:x86_64"), "LD_LIBRARY_PATH"),
        (Platform.X86_64_PC_WINDOWS_MSVC, "x86-win", ("os:windows", "cpu:x86_64"), "PATH"),
    ],
)
def test_platform_traits(
    platform: Platform,
    slug: str,
    constraints: tuple[str, str],
    library_var: str,
) -> None:
    assert platform.slug == slug
    assert platform.exec_constraints == constraints
    assert platform.library_path_var == library_var


def test_every_platform_has_traits() -> None:
    assert len(Platform) == 4
    for platform in Platform:
        assert platform.slug
        assert platform.exec_constraints[0].startswith("os:")


def test_executable_suffix_only_on_windows() -> None:
    assert Platform.X86_64_PC_WINDOWS_MSVC.executable_name("z3") == "z3.exe"
    assert Platform.X86_64_UNKNOWN_LINUX_GNU.executable_name("z3") == "z3"
    assert Platform.AARCH64_APPLE_DARWIN.is_macos
    assert not Platform.X86_64_UNKNOWN_LINUX_GNU.is_macos


def test_parse_platform_accepts_triples_case_insensitively() -> None:
    assert parse_platform(" X86_64-Unknown-Linux-GNU ") is Platform.X86_64_UNKNOWN_LINUX_GNU
    assert parse_platform(Platform.X86_64_APPLE_DARWIN) is Platform.X86_64_APPLE_DARWIN


def test_unsupported_platform_names_the_supported_set() -> None:
    with pytest.raises(UnsupportedPlatformError) as error:
        parse_platform("aarch64-unknown-linux-gnu")

    message = str(error.value)
    assert "Unsupported platform" in message
    for platform in Platform:
        assert platform.value in message


@pytest.mark.parametrize(
    ("system", "machine", "expected"),
    [
        ("Darwin", "arm64", Platform.AARCH64_APPLE_DARWIN),
        ("Darwin", "x86_64", Platform.X86_64_APPLE_DARWIN),
        ("Linux", "x86_64", Platform.X86_64_UNKNOWN_LINUX_GNU),
        ("Windows", "AMD64", Platform.X86_64_PC_WINDOWS_MSVC),
    ],
)
def test_detect_host_platform(system: str, machine: str, expected: Platform) -> None:
    assert detect_host_platform(system=system, machine=machine) is expected


def test_detect_host_platform_rejects_unpublished_hosts() -> None:
    with pytest.raises(UnsupportedPlatformError, match="linux/aarch64"):
        detect_host_platform(system="Linux", machine="aarch64")
