"""
verus-orchestrator: filesystem utilities

File: src/verus_orchestrator/utils/fs.py

Purpose
- Atomic creation of marker and cache files.
- Temporary staging directories for release extraction.

Functional requirements
- A marker is either fully present or absent; readers never observe a partial file.
"""

from __future__ import annotations

import contextlib
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterator

PathLike = str | os.PathLike[str]

__all__ = [
    "atomic_write",
    "temp_directory",
]


def atomic_write(path: PathLike, data: bytes | str, *, encoding: str = "utf-8") -> None:
    """
    Atomically write ``data`` to ``path``, creating parent directories.

    Data goes to a sibling temp file first and is moved into place with
    ``os.replace`` so that an interrupted write never leaves ``path`` behind.
    """

    target = Path(path)
    target.parent.mkdir(parents=True, exist_ok=True)
    parent = target.parent.resolve(strict=True)

    fd, temp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".tmp", dir=str(parent))
    temp_path = Path(temp_name)
    payload = data if isinstance(data, bytes) else data.encode(encoding)

    try:
        with os.fdopen(fd, "wb") as handle:
            handle.write(payload)
            handle.flush()
            os.fsync(handle.fileno())
        os.replace(temp_path, target)
    except BaseException:
        with contextlib.suppress(OSError):
            temp_path.unlink(missing_ok=True)
        raise


@contextmanager
def temp_directory(prefix: str = "verus-") -> Iterator[Path]:
    """Yield a temporary directory path and clean it up on exit."""

    with tempfile.TemporaryDirectory(prefix=prefix) as tmp:
        yield Path(tmp)
