"""
distlock - Clock Interface

Abstraction for time operations so acquisition timing can be tested
without real sleeps.
"""

import asyncio
import time
from abc import ABC, abstractmethod
from datetime import datetime, timedelta, timezone
from typing import Optional


class Clock(ABC):
    """Abstract clock interface for testable time operations."""

    @abstractmethod
    def now(self) -> datetime:
        """Get current UTC time."""
        pass

    @abstractmethod
    def monotonic_ms(self) -> float:
        """Milliseconds from an arbitrary fixed origin; never goes backwards."""
        pass

    @abstractmethod
    async def sleep(self, seconds: float) -> None:
        """Sleep for the given duration."""
        pass


class SystemClock(Clock):
    """Real system clock implementation."""

    def now(self) -> datetime:
        return datetime.now(timezone.utc)

    def monotonic_ms(self) -> float:
        return time.monotonic() * 1000

    async def sleep(self, seconds: float) -> None:
        await asyncio.sleep(seconds)


class FakeClock(Clock):
    """
    Fake clock for testing.

    Allows manual time advancement without actual sleeping. sleep() still
    yields to the event loop so concurrent tasks interleave.
    """

    def __init__(self, start_time: Optional[datetime] = None):
        """
        Initialize fake clock.

        Args:
            start_time: Initial time (defaults to now)
        """
        if start_time is None:
            start_time = datetime.now(timezone.utc)
        self._start_time = start_time
        self._current_time = start_time
        self._sleep_calls: list[float] = []

    def now(self) -> datetime:
        return self._current_time

    def monotonic_ms(self) -> float:
        elapsed_us = (self._current_time - self._start_time) // timedelta(microseconds=1)
        return elapsed_us / 1000

    async def sleep(self, seconds: float) -> None:
        """Record sleep call, advance time and yield."""
        self._sleep_calls.append(seconds)
        self.advance(seconds)
        await asyncio.sleep(0)

    def advance(self, seconds: float) -> None:
        """Advance the clock by the given seconds."""
        self._current_time += timedelta(seconds=seconds)

    @property
    def sleep_calls(self) -> list[float]:
        """Get list of sleep durations that were called."""
        return self._sleep_calls.copy()

    def clear_sleep_calls(self) -> None:
        """Clear recorded sleep calls."""
        self._sleep_calls.clear()
