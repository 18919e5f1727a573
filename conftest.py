"""
Shared test fixtures.

Component-specific fixtures live in src/listing_sniper/{component}/tests/conftest.py.

IMPORTANT: Never hit real streaming, trade or RPC endpoints in tests.
"""

import asyncio

import pytest


class FakeClock:
    """
    Deterministic clock: sleeping advances time instantly.

    Wall time starts at a fixed epoch; monotonic time starts at 0.
    """

    def __init__(self, start_ms: float = 1_700_000_000_000.0):
        self.wall_ms = start_ms
        self.mono_ms = 0.0
        self.sleeps: list[float] = []

    def now_ms(self) -> float:
        return self.wall_ms

    def monotonic_ms(self) -> float:
        return self.mono_ms

    def advance(self, ms: float) -> None:
        self.wall_ms += ms
        self.mono_ms += ms

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.advance(seconds * 1000)
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    """Fake clock shared by everything under test."""
    return FakeClock()
