"""
Clock abstraction for the execution layer.

Phase delays, polling intervals and timing records all go through a Clock
so tests can advance time deterministically instead of sleeping.
"""

from __future__ import annotations

import asyncio
import time


class Clock:
    """Real clock backed by the system time and asyncio.sleep."""

    def now_ms(self) -> float:
        """Wall-clock time in milliseconds since the epoch."""
        return time.time() * 1000

    def monotonic_ms(self) -> float:
        """Monotonic time in milliseconds, for measuring durations."""
        return time.perf_counter() * 1000

    async def sleep(self, seconds: float) -> None:
        """Non-blocking wait."""
        if seconds > 0:
            await asyncio.sleep(seconds)
        else:
            await asyncio.sleep(0)
