"""Async concurrency primitives used by the local build engine."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, TypeVar

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

T = TypeVar("T")


class CancellationToken:
    """Cooperative cancellation token backed by ``asyncio.Event``."""

    def __init__(self) -> None:
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise asyncio.CancelledError("operation cancelled")


class BoundedSemaphore:
    """``asyncio.Semaphore`` wrapper that rejects unbalanced releases."""

    def __init__(self, limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit must be > 0")
        self._semaphore = asyncio.Semaphore(limit)
        self._in_use = 0

    async def acquire(self) -> None:
        # Cancellation while waiting here does not acquire a permit.
        await self._semaphore.acquire()
        self._in_use += 1

    def release(self) -> None:
        if self._in_use <= 0:
            raise RuntimeError("release called more times than acquire")
        self._in_use -= 1
        self._semaphore.release()

    @asynccontextmanager
    async def permit(self) -> AsyncIterator[None]:
        await self.acquire()
        try:
            yield
        finally:
            self.release()


async def run_blocking(
    semaphore: BoundedSemaphore,
    func: Callable[[], T],
    cancel_token: CancellationToken | None = None,
) -> T:
    """Run a blocking callable in a worker thread while holding one permit.

    The token is checked after the permit is granted, so work queued behind a
    cancelled build never starts.
    """

    async with semaphore.permit():
        if cancel_token is not None:
            cancel_token.raise_if_cancelled()
        return await asyncio.to_thread(func)


__all__ = [
    "BoundedSemaphore",
    "CancellationToken",
    "run_blocking",
]
