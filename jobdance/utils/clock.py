"""
Clock abstraction for timers used by the turn-taking loop.

Components take a clock instead of calling asyncio directly so tests
can drive silence windows and queue spacing without real waiting.
"""
import asyncio
import time
from typing import Callable


class Clock:
    """Interface for time sources."""

    def now(self) -> float:
        raise NotImplementedError

    def call_later(self, delay: float, callback: Callable[[], None]):
        """Schedule callback after delay seconds. Returns a handle with cancel()."""
        raise NotImplementedError

    async def sleep(self, delay: float) -> None:
        raise NotImplementedError


class LoopClock(Clock):
    """Monotonic time with timers on the running asyncio loop."""

    def now(self) -> float:
        return time.monotonic()

    def call_later(self, delay: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        return asyncio.get_running_loop().call_later(max(0.0, delay), callback)

    async def sleep(self, delay: float) -> None:
        await asyncio.sleep(max(0.0, delay))
