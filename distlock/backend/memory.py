"""
distlock - In-Memory Backend

In-memory backend for testing and local demos. All data is lost when
the process restarts and is only shared between tasks of one event loop.

Each operation runs without awaiting between its read and its write,
which makes it atomic with respect to other tasks on the loop.
"""

import math
from dataclasses import dataclass
from typing import Optional

import structlog

from distlock.backend.base import LockBackend
from distlock.clock import Clock, SystemClock
from distlock.types import DeleteResult, SetResult

logger = structlog.get_logger(__name__)


@dataclass
class _Entry:
    value: str
    expires_at_ms: float


class InMemoryBackend(LockBackend):
    """
    In-memory key-value backend with TTL support.

    Expired keys are dropped when read and swept on every conditional set.
    """

    name = "memory"

    def __init__(self, clock: Optional[Clock] = None):
        """
        Args:
            clock: Clock used to evaluate TTLs (defaults to SystemClock)
        """
        self.clock = clock or SystemClock()
        self._entries: dict[str, _Entry] = {}
        # Set to False to simulate an unreachable backend
        self.available = True

    def _live_entry(self, key: str) -> Optional[_Entry]:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at_ms <= self.clock.monotonic_ms():
            del self._entries[key]
            logger.debug("memory_backend_key_expired", key=key)
            return None
        return entry

    def _purge_expired(self) -> None:
        now = self.clock.monotonic_ms()
        expired = [key for key, entry in self._entries.items() if entry.expires_at_ms <= now]
        for key in expired:
            del self._entries[key]

    def _unavailable(self, operation: str, key: str) -> bool:
        if self.available:
            return False
        logger.error(
            "memory_backend_unavailable",
            operation=operation,
            key=key,
        )
        return True

    async def set_if_absent_with_expiry(self, key: str, value: str, ttl_ms: int) -> SetResult:
        if self._unavailable("set_if_absent_with_expiry", key):
            return SetResult.ERROR
        self._purge_expired()
        if self._live_entry(key) is not None:
            return SetResult.ALREADY_EXISTS
        self._entries[key] = _Entry(value=value, expires_at_ms=self.clock.monotonic_ms() + ttl_ms)
        return SetResult.STORED

    async def compare_and_delete(self, key: str, expected_value: str) -> DeleteResult:
        if self._unavailable("compare_and_delete", key):
            return DeleteResult.ERROR
        entry = self._live_entry(key)
        if entry is None or entry.value != expected_value:
            return DeleteResult.NOT_MATCHED
        del self._entries[key]
        return DeleteResult.DELETED

    async def get_remaining_ttl(self, key: str) -> Optional[int]:
        if self._unavailable("get_remaining_ttl", key):
            return None
        entry = self._live_entry(key)
        if entry is None:
            return None
        return math.ceil(entry.expires_at_ms - self.clock.monotonic_ms())

    async def get_value(self, key: str) -> Optional[str]:
        if self._unavailable("get_value", key):
            return None
        entry = self._live_entry(key)
        return entry.value if entry else None

    async def ping(self) -> bool:
        return self.available

    async def close(self) -> None:
        self._entries.clear()

    def clear(self):
        """Clear all entries (for testing)."""
        self._entries.clear()
