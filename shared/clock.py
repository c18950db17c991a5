"""
Clock abstraction shared by the caches and the query engine.

Everything that reads the current time or waits goes through a ``Clock`` so
backoff and interval behaviour can be driven by a virtual clock in tests.
"""

import asyncio
import time
from typing import Protocol


class Clock(Protocol):
    """Time source and sleeper."""

    def now(self) -> float:
        """Current time in epoch seconds."""
        ...

    async def sleep(self, seconds: float) -> None:
        """Suspend the calling task for ``seconds``."""
        ...


class SystemClock:
    """Wall-clock implementation backed by ``time.time`` and ``asyncio.sleep``."""

    def now(self) -> float:
        return time.time()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(max(0.0, seconds))


system_clock = SystemClock()
