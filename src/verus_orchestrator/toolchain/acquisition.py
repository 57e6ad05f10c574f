"""Verifier release acquisition: pinned versions, checksums, and extraction."""

from __future__ import annotations

import os
import shutil
import stat
import urllib.request
import zipfile
from dataclasses import dataclass, field
from pathlib import Path, PurePosixPath
from typing import TYPE_CHECKING, Final, Protocol

from verus_orchestrator.errors import AcquisitionError
from verus_orchestrator.sandbox.runner import (
    CommandRunner,
    CommandTimeoutError,
    SubprocessCommandRunner,
)
from verus_orchestrator.toolchain.bundle import ToolchainBundle
from verus_orchestrator.toolchain.platforms import Platform, parse_platform
from verus_orchestrator.utils.fs import atomic_write, temp_directory
from verus_orchestrator.utils.hashing import normalize_sha256, sha256_file

if TYPE_CHECKING:
    from collections.abc import Mapping

RELEASE_URL_TEMPLATE: Final[str] = (
    "https://github.com/verus-lang/verus/releases/download/release/{tag}/{artifact}"
)
DEFAULT_VERSION: Final[str] = "0.2026.02.15"
_COMPLETE_STAMP: Final[str] = ".acquired"
_EXECUTABLE_STEMS: Final[tuple[str, ...]] = ("verus", "rust_verify", "z3")
_DOWNLOAD_CHUNK_BYTES: Final[int] = 1024 * 1024


@dataclass(frozen=True, slots=True)
class KnownRelease:
    """Published release tag and its per-platform archive digests."""

    tag: str
    sha256: Mapping[Platform, str] = field(default_factory=dict)


KNOWN_RELEASES: Final[dict[str, KnownRelease]] = {
    "0.2026.02.15": KnownRelease(
        tag="0.2026.02.15.61aa1bf",
        sha256={
            Platform.AARCH64_APPLE_DARWIN: (
                "185ac0631d3639da5ba09d6e50218af43efffa58383625dd070e6c2ecc11da65"
            ),
            Platform.X86_64_APPLE_DARWIN: (
                "bfb79474f078782104d6a80b21069f104eed8f7bac51d16a0216ca07d0b021e6"
            ),
            Platform.X86_64_UNKNOWN_LINUX_GNU: (
                "d02ce8c026e3304e3d463355678dced46d5d8340fdebd9a8cdaea27c29338e0b"
            ),
            Platform.X86_64_PC_WINDOWS_MSVC: (
                "63ba4e37a530a27bac3fab5bb47f6885888ab181e6d5c95bae1d5a01fcd6956d"
            ),
        },
    ),
}


@dataclass(frozen=True, slots=True)
class ToolchainRelease:
    """Fully resolved download request for one platform."""

    version: str
    tag: str
    platform: Platform
    sha256: str | None = None

    def __post_init__(self) -> None:
        if self.sha256 is not None:
            object.__setattr__(
                self, "sha256", normalize_sha256(self.sha256, field_name="ToolchainRelease.sha256")
            )

    @property
    def artifact_name(self) -> str:
        return f"verus-{self.tag}-{self.platform.slug}.zip"

    @property
    def url(self) -> str:
        return RELEASE_URL_TEMPLATE.format(tag=self.tag, artifact=self.artifact_name)

    @property
    def strip_prefix(self) -> str:
        return f"verus-{self.platform.slug}"


def resolve_release(
    version: str,
    platform: Platform | str,
    *,
    sha256: str | None = None,
) -> ToolchainRelease:
    """Map a version key and platform onto a download request.

    Unknown version strings are treated as full release tags without a pinned digest.
    An explicit ``sha256`` wins over the known-release table; an empty string skips
    verification.
    """

    resolved_platform = parse_platform(platform)
    key = version.strip()
    if not key:
        raise AcquisitionError("toolchain version must not be empty")
    known = KNOWN_RELEASES.get(key)
    tag = known.tag if known is not None else key
    digest: str | None
    if sha256 is not None:
        digest = sha256.strip() or None
    elif known is not None:
        digest = known.sha256.get(resolved_platform)
    else:
        digest = None
    return ToolchainRelease(version=key, tag=tag, platform=resolved_platform, sha256=digest)


class ReleaseDownloader(Protocol):
    """Injectable release downloader interface."""

    def download(self, url: str, destination: Path) -> Path: ...


class UrllibDownloader:
    """Stream a release archive to disk with ``urllib``."""

    def __init__(self, *, timeout_seconds: float = 300.0) -> None:
        if timeout_seconds <= 0:
            raise ValueError("timeout_seconds must be > 0")
        self._timeout_seconds = timeout_seconds

    def download(self, url: str, destination: Path) -> Path:
        try:
            with urllib.request.urlopen(url, timeout=self._timeout_seconds) as response:  # noqa: S310
                with destination.open("wb") as handle:
                    shutil.copyfileobj(response, handle, _DOWNLOAD_CHUNK_BYTES)
        except OSError as exc:
            raise AcquisitionError(f"failed to download {url}: {exc}") from exc
        return destination


class ToolchainAcquirer:
    """Download, verify, and extract verifier releases into a per-version install root."""

    def __init__(
        self,
        install_root: Path | str,
        *,
        downloader: ReleaseDownloader | None = None,
        command_runner: CommandRunner | None = None,
    ) -> None:
        self._install_root = Path(install_root)
        self._downloader = downloader or UrllibDownloader()
        self._command_runner = command_runner or SubprocessCommandRunner()

    def install_dir(self, release: ToolchainRelease) -> Path:
        return self._install_root / release.version / release.platform.value

    def is_installed(self, release: ToolchainRelease, *, target: Path | None = None) -> bool:
        stamp = (target or self.install_dir(release)) / _COMPLETE_STAMP
        if not stamp.is_file():
            return False
        recorded = stamp.read_text(encoding="utf-8").strip()
        return release.sha256 is None or recorded == release.sha256

    def acquire(
        self,
        release: ToolchainRelease,
        *,
        target: Path | None = None,
        rust_toolchain: str | None = None,
    ) -> ToolchainBundle:
        """Install ``release`` into ``target`` (default: per-version dir) unless already there."""
        target = target or self.install_dir(release)
        if not self.is_installed(release, target=target):
            self._install(release, target)
        return ToolchainBundle.from_directory(
            target,
            platform=release.platform,
            version=release.tag,
            rust_toolchain=rust_toolchain,
        )

    def _install(self, release: ToolchainRelease, target: Path) -> None:
        target.parent.mkdir(parents=True, exist_ok=True)
        with temp_directory(prefix=f"verus-{release.platform.slug}-") as stage:
            archive = self._downloader.download(release.url, stage / release.artifact_name)
            checksum = sha256_file(archive)
            if release.sha256 is not None and checksum != release.sha256:
                raise AcquisitionError(
                    f"checksum mismatch for {release.artifact_name}: "
                    f"expected {release.sha256}, got {checksum}"
                )

            extracted = stage / "extracted"
            extract_archive(archive, extracted, strip_prefix=release.strip_prefix)
            self._make_executable(extracted, release.platform)
            if release.platform.is_macos:
                self._remove_quarantine(extracted)
            atomic_write(extracted / _COMPLETE_STAMP, checksum + "\n")

            if target.exists():
                shutil.rmtree(target)
            shutil.move(str(extracted), str(target))

    def _make_executable(self, root: Path, platform: Platform) -> None:
        for stem in _EXECUTABLE_STEMS:
            path = root / platform.executable_name(stem)
            if not path.is_file():
                continue
            mode = path.stat().st_mode
            path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)

    def _remove_quarantine(self, root: Path) -> None:
        # Best effort: a missing or hung xattr does not fail the install.
        try:
            self._command_runner.run(["xattr", "-cr", str(root)], timeout_seconds=60.0)
        except (OSError, CommandTimeoutError):
            return


def extract_archive(archive: Path, destination: Path, *, strip_prefix: str = "") -> None:
    """Extract a zip archive, dropping ``strip_prefix`` and rejecting unsafe member paths."""

    prefix = PurePosixPath(strip_prefix) if strip_prefix else None
    destination.mkdir(parents=True, exist_ok=True)
    try:
        with zipfile.ZipFile(archive) as bundle:
            for member in bundle.infolist():
                relative = _member_target(member.filename, prefix)
                if relative is None:
                    continue
                output = destination.joinpath(*relative.parts)
                if member.is_dir():
                    output.mkdir(parents=True, exist_ok=True)
                    continue
                output.parent.mkdir(parents=True, exist_ok=True)
                with bundle.open(member) as source, output.open("wb") as sink:
                    shutil.copyfileobj(source, sink)
                unix_mode = (member.external_attr >> 16) & 0o777
                if unix_mode:
                    os.chmod(output, unix_mode)
    except zipfile.BadZipFile as exc:
        raise AcquisitionError(f"invalid release archive {archive.name}: {exc}") from exc


def _member_target(name: str, prefix: PurePosixPath | None) -> PurePosixPath | None:
    path = PurePosixPath(name.replace("\\", "/"))
    if path.is_absolute() or ".." in path.parts:
        raise AcquisitionError(f"unsafe path in release archive: {name!r}")
    if prefix is not None:
        try:
            path = path.relative_to(prefix)
        except ValueError:
            return None
    if not path.parts:
        return None
    return path


__all__ = [
    "DEFAULT_VERSION",
    "KNOWN_RELEASES",
    "KnownRelease",
    "RELEASE_URL_TEMPLATE",
    "ReleaseDownloader",
    "ToolchainAcquirer",
    "ToolchainRelease",
    "UrllibDownloader",
    "extract_archive",
    "resolve_release",
]
