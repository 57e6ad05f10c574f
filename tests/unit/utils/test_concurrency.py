"""Regression tests for concurrency utility edge cases."""

from __future__ import annotations

import asyncio
import threading

import pytest

from verus_orchestrator.utils.concurrency import BoundedSemaphore, CancellationToken, run_blocking


def test_run_blocking_never_exceeds_the_permit_limit() -> None:
    lock = threading.Lock()
    active = 0
    peak = 0

    def work() -> int:
        nonlocal active, peak
        with lock:
            active += 1
            peak = max(peak, active)
        threading.Event().wait(0.02)
        with lock:
            active -= 1
        return 1

    async def scenario() -> list[int]:
        semaphore = BoundedSemaphore(2)
        return await asyncio.gather(*(run_blocking(semaphore, work) for _ in range(8)))

    results = asyncio.run(scenario())

    assert results == [1] * 8
    assert peak <= 2


def test_cancelled_token_prevents_queued_work() -> None:
    calls: list[str] = []

    async def scenario() -> None:
        token = CancellationToken()
        token.cancel()
        await run_blocking(BoundedSemaphore(1), lambda: calls.append("ran"), token)

    with pytest.raises(asyncio.CancelledError):
        asyncio.run(scenario())
    assert calls == []


def test_semaphore_permits_are_reusable_and_over_release_is_rejected() -> None:
    async def scenario() -> int:
        semaphore = BoundedSemaphore(1)
        entered = 0
        for _ in range(3):
            async with semaphore.permit():
                entered += 1
        return entered

    assert asyncio.run(scenario()) == 3

    with pytest.raises(RuntimeError, match="more times than acquire"):
        BoundedSemaphore(1).release()
    with pytest.raises(ValueError):
        BoundedSemaphore(0)
