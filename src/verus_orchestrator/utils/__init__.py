"""Utility exports for filesystem, hashing, and concurrency helpers."""

from verus_orchestrator.utils.concurrency import BoundedSemaphore, CancellationToken, run_blocking
from verus_orchestrator.utils.fs import atomic_write, temp_directory
from verus_orchestrator.utils.hashing import (
    digest_payload,
    normalize_sha256,
    sha256_bytes,
    sha256_file,
    sha256_text,
)

__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "atomic_write",
    "digest_payload",
    "normalize_sha256",
    "run_blocking",
    "sha256_bytes",
    "sha256_file",
    "sha256_text",
    "temp_directory",
]
