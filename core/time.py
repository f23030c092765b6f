# PATH: core/time.py
"""
Time utilities for FLARB.

Everything that depends on "now" takes a clock so tests can drive time
with ManualClock instead of sleeping.
"""

import asyncio
import time
from datetime import date, datetime, timezone


def now_iso() -> str:
    """Get current UTC datetime as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def to_iso(timestamp: float) -> str:
    """UTC ISO string of a Unix timestamp."""
    return datetime.fromtimestamp(timestamp, timezone.utc).isoformat()


def local_date(timestamp: float) -> date:
    """Calendar day of a Unix timestamp in the local timezone."""
    return datetime.fromtimestamp(timestamp).date()


def is_same_local_day(timestamp: float, reference: float) -> bool:
    return local_date(timestamp) == local_date(reference)


class SystemClock:
    """Wall clock."""

    def now(self) -> float:
        return time.time()

    def monotonic(self) -> float:
        return time.monotonic()

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class ManualClock:
    """
    Clock driven by the caller.

    Usage:
        clock = ManualClock(start=1_700_000_000)
        clock.advance(20)
    """

    def __init__(self, start: float = 0.0):
        self._now = float(start)

    def now(self) -> float:
        return self._now

    def monotonic(self) -> float:
        return self._now

    def advance(self, seconds: float) -> None:
        if seconds < 0:
            raise ValueError("ManualClock cannot go backwards")
        self._now += seconds

    def set(self, timestamp: float) -> None:
        if timestamp < self._now:
            raise ValueError("ManualClock cannot go backwards")
        self._now = float(timestamp)

    async def sleep(self, seconds: float) -> None:
        self.advance(seconds)
        await asyncio.sleep(0)
