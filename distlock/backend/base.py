"""
distlock - Backend Interface

Abstract key-value backend consumed by the lock core.
Implementations: InMemory (for testing/dev), Redis (for production).

Both mutating operations must be atomic as observed by every contender.
Transport failures are reported as ERROR results, never raised.
"""

from abc import ABC, abstractmethod
from typing import Optional

from distlock.types import DeleteResult, SetResult


class LockBackend(ABC):
    """Key-value store with the two atomic primitives a lock needs."""

    name: str = "abstract"

    @abstractmethod
    async def set_if_absent_with_expiry(self, key: str, value: str, ttl_ms: int) -> SetResult:
        """Store key -> value with a TTL, only if key does not exist."""
        pass

    @abstractmethod
    async def compare_and_delete(self, key: str, expected_value: str) -> DeleteResult:
        """Delete key only if its current value equals expected_value."""
        pass

    @abstractmethod
    async def get_remaining_ttl(self, key: str) -> Optional[int]:
        """Remaining TTL in milliseconds, or None if the key does not exist."""
        pass

    @abstractmethod
    async def get_value(self, key: str) -> Optional[str]:
        """Current value of key, or None if absent or unreadable."""
        pass

    @abstractmethod
    async def ping(self) -> bool:
        """Check if the backend is reachable."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Release connections held by the backend."""
        pass
