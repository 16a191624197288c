"""Shared test fixtures."""

from __future__ import annotations

import asyncio
import heapq
from datetime import datetime, timedelta, timezone

import pytest
import pytest_asyncio

from workflows.engine import PipelineEngine


class ManualClock:
    """Virtual clock: sleepers only wake when the test calls ``advance``."""

    def __init__(self, start: datetime = datetime(2026, 1, 1, tzinfo=timezone.utc)):
        self._start = start
        self._elapsed = 0.0
        self._sleepers: list[tuple[float, int, asyncio.Future]] = []
        self._seq = 0

    def now(self) -> datetime:
        return self._start + timedelta(seconds=self._elapsed)

    def monotonic(self) -> float:
        return self._elapsed

    async def sleep(self, seconds: float) -> None:
        fut = asyncio.get_running_loop().create_future()
        self._seq += 1
        heapq.heappush(self._sleepers, (self._elapsed + seconds, self._seq, fut))
        await fut

    async def settle(self) -> None:
        """Let every runnable coroutine reach its next await."""
        for _ in range(10):
            await asyncio.sleep(0)

    async def advance(self, seconds: float) -> None:
        target = self._elapsed + seconds
        await self.settle()
        while self._sleepers and self._sleepers[0][0] <= target + 1e-9:
            wake_at, _, fut = heapq.heappop(self._sleepers)
            self._elapsed = max(self._elapsed, wake_at)
            if not fut.done():
                fut.set_result(None)
            await self.settle()
        self._elapsed = target


class InstantClock(ManualClock):
    """Virtual clock where every sleep finishes at once."""

    async def sleep(self, seconds: float) -> None:
        self._elapsed += seconds
        await asyncio.sleep(0)


@pytest.fixture()
def clock() -> ManualClock:
    return ManualClock()


@pytest_asyncio.fixture()
async def engine(clock):
    engine = PipelineEngine(clock=clock)
    yield engine
    await engine.aclose()
