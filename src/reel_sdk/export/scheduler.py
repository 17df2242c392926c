"""Cooperative scheduling for the export loop."""

import asyncio
from typing import Awaitable, Callable, Optional, Union

TickCallback = Callable[[int], Union[None, Awaitable[None]]]


async def _call(on_tick: TickCallback, index: int):
    result = on_tick(index)
    if asyncio.iscoroutine(result):
        await result


class HostScheduler:
    """Yields to the event loop and paces timed ticks against its clock."""

    async def cooperative_yield(self) -> None:
        await asyncio.sleep(0)

    async def run_ticks(self, interval: float, count: int, on_tick: TickCallback) -> None:
        """Call ``on_tick(i)`` for i in 0..count-1, one per ``interval`` seconds.

        Ticks are scheduled against absolute deadlines so a slow tick does
        not push every later one back. A late tick runs immediately; none
        are skipped.
        """
        loop = asyncio.get_running_loop()
        start = loop.time()
        for i in range(count):
            delay = start + i * interval - loop.time()
            await asyncio.sleep(max(delay, 0))
            await _call(on_tick, i)


class ManualClockScheduler:
    """Deterministic scheduler for tests: a fake clock that never sleeps."""

    def __init__(self, on_advance: Optional[Callable[[float], None]] = None):
        self.now = 0.0
        self.yields = 0
        self.ticks = 0
        self.intervals: list[float] = []
        self.on_advance = on_advance

    async def cooperative_yield(self) -> None:
        self.yields += 1

    async def run_ticks(self, interval: float, count: int, on_tick: TickCallback) -> None:
        self.intervals.append(interval)
        for i in range(count):
            if i:
                self.advance(interval)
            await _call(on_tick, i)
            self.ticks += 1

    def advance(self, seconds: float):
        self.now += seconds
        if self.on_advance:
            self.on_advance(self.now)
