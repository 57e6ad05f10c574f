"""Plain-text output rendering for the verus-orch CLI.

File: src/verus_orchestrator/ui/render.py

Purpose
- Provide a thin rendering layer so command handlers never format by hand.

Functional requirements
- Output is deterministic plain text and safe to pipe.
"""

from __future__ import annotations

import sys
from typing import TYPE_CHECKING, TextIO

if TYPE_CHECKING:
    from collections.abc import Sequence


class CLIRenderer:
    """Thin CLI output renderer writing to ``stream`` (default: stdout)."""

    def __init__(self, *, verbose: bool = False, stream: TextIO | None = None) -> None:
        self.verbose = verbose
        self._stream = stream

    def _write(self, line: str) -> None:
        stream = self._stream if self._stream is not None else sys.stdout
        stream.write(f"{line}\n")

    def heading(self, text: str) -> None:
        self._write(text)

    def kv(self, key: str, value: object) -> None:
        """Print a key: value pair."""

        self._write(f"{key}: {value}")

    def text(self, line: str) -> None:
        self._write(line)

    def blank(self) -> None:
        self._write("")

    def section(self, title: str) -> None:
        """Print a section header with a preceding blank line."""

        self._write(f"\n{title}")

    def items(self, entries: Sequence[str], *, prefix: str = "- ") -> None:
        for entry in entries:
            self._write(f"  {prefix}{entry}")

    def table(
        self,
        headers: Sequence[str],
        rows: Sequence[Sequence[str]],
        *,
        title: str | None = None,
    ) -> None:
        """Print a formatted ASCII table."""

        if not rows:
            return

        col_count = len(headers)
        widths = [len(h) for h in headers]
        for row in rows:
            for i in range(min(len(row), col_count)):
                widths[i] = max(widths[i], len(str(row[i])))

        def _pad(cells: Sequence[str]) -> str:
            parts: list[str] = []
            for i in range(col_count):
                cell = str(cells[i]) if i < len(cells) else ""
                parts.append(cell.ljust(widths[i]))
            return "  ".join(parts).rstrip()

        if title:
            self.section(title)
        self._write(f"  {_pad(list(headers))}")
        self._write(f"  {'  '.join('-' * w for w in widths)}")
        for row in rows:
            self._write(f"  {_pad(list(row))}")

    def ok(self, label: str) -> None:
        """Print a passing diagnostic check."""

        self._write(f"  OK  {label}")

    def fail(self, label: str) -> None:
        """Print a failing diagnostic check."""

        self._write(f"  FAIL  {label}")


def create_renderer(*, verbose: bool = False) -> CLIRenderer:
    return CLIRenderer(verbose=verbose)


__all__ = ["CLIRenderer", "create_renderer"]
