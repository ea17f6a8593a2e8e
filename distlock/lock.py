"""
distlock - Distributed Lock

Mutual-exclusion lock on a single Redis node (or any LockBackend).

Key features:
- Conditional set with expiry for atomic acquire
- Compare-and-delete for release, so a holder whose lease expired can
  never delete a newer holder's lock
- Unique owner token per instance
- Three acquire modes sharing one AcquisitionEngine

There is no lease renewal. lease_ms must exceed the longest expected
critical section, otherwise the lock can expire while still in use.
"""

import random
from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog

from distlock.backend.base import LockBackend
from distlock.clock import Clock, SystemClock
from distlock.config import Settings, get_settings
from distlock.engine import AcquisitionEngine
from distlock.errors import InvalidLockConfiguration, LockNotAcquired
from distlock.ownership import (
    validate_jitter_ms,
    validate_lease_ms,
    validate_owner_token,
    validate_poll_interval_ms,
    validate_resource_key,
    validate_wait_ms,
)
from distlock.types import (
    AcquireMode,
    AcquireResult,
    AttemptOutcome,
    DeleteResult,
)

logger = structlog.get_logger(__name__)


class DistLock:
    """
    Distributed lock over a key-value backend.

    The backend is the only source of truth for who holds the lock; the
    instance keeps no local "held" flag. Construct one instance per
    contender, or share an instance (and thus its token) deliberately to
    make several tasks one logical owner.

    Usage:
        lock = DistLock(backend, "orders:42", lease_ms=5000)

        if await lock.acquire_with_timeout(2000):
            try:
                # Do work...
            finally:
                await lock.release()

        # Or block until acquired
        async with lock:
            ...
    """

    def __init__(
        self,
        backend: LockBackend,
        resource_key: str,
        lease_ms: Optional[int] = None,
        owner_token: Optional[str] = None,
        poll_interval_ms: Optional[int] = None,
        jitter_ms: Optional[int] = None,
        default_wait_ms: Optional[int] = None,
        clock: Optional[Clock] = None,
        rng: Optional[random.Random] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the lock. Nothing is sent to the backend.

        Args:
            backend: Backend shared by all contenders
            resource_key: Name of the contended resource
            lease_ms: TTL applied on acquire. Defaults to settings.lease_ms.
            owner_token: Explicit token. Defaults to a generated unique token.
            poll_interval_ms: Sleep between attempts. Defaults to settings.
            jitter_ms: Extra random sleep per retry. Defaults to settings.
            default_wait_ms: Wait budget for acquire(TIMED_WAIT) without wait_ms
            clock: Clock implementation (defaults to SystemClock)
            rng: Random instance for jitter
            settings: Settings to read defaults from

        Raises:
            InvalidLockConfiguration: if any value is out of range
        """
        settings = settings or get_settings()

        self._backend = backend
        self._resource_key = validate_resource_key(resource_key)
        self._owner_token = validate_owner_token(owner_token)
        self._lease_ms = validate_lease_ms(
            settings.lease_ms if lease_ms is None else lease_ms
        )
        self._poll_interval_ms = validate_poll_interval_ms(
            settings.poll_interval_ms if poll_interval_ms is None else poll_interval_ms
        )
        self._jitter_ms = validate_jitter_ms(
            settings.jitter_ms if jitter_ms is None else jitter_ms
        )
        self._default_wait_ms = (
            None if default_wait_ms is None else validate_wait_ms(default_wait_ms)
        )

        self._engine = AcquisitionEngine(
            attempt=self._attempt,
            clock=clock or SystemClock(),
            poll_interval_ms=self._poll_interval_ms,
            jitter_ms=self._jitter_ms,
            rng=rng,
            lock_key=self._resource_key,
        )
        # Result of the most recently finished acquire call on this instance.
        # Last writer wins when tasks share the instance; see acquire_detailed().
        self.last_result: Optional[AcquireResult] = None

    @property
    def resource_key(self) -> str:
        return self._resource_key

    @property
    def owner_token(self) -> str:
        return self._owner_token

    @property
    def lease_ms(self) -> int:
        return self._lease_ms

    @property
    def poll_interval_ms(self) -> int:
        return self._poll_interval_ms

    @property
    def jitter_ms(self) -> int:
        return self._jitter_ms

    @property
    def default_wait_ms(self) -> Optional[int]:
        return self._default_wait_ms

    @property
    def backend(self) -> LockBackend:
        return self._backend

    def __repr__(self) -> str:
        return (
            f"DistLock(resource_key={self._resource_key!r}, "
            f"owner_token={self._owner_token!r}, lease_ms={self._lease_ms})"
        )

    async def _attempt(self) -> AttemptOutcome:
        result = await self._backend.set_if_absent_with_expiry(
            self._resource_key,
            self._owner_token,
            self._lease_ms,
        )
        return AttemptOutcome.from_set_result(result)

    async def acquire(
        self,
        mode: AcquireMode = AcquireMode.BLOCKING,
        wait_ms: Optional[int] = None,
    ) -> bool:
        """
        Acquire the lock using the given mode.

        Args:
            mode: BLOCKING, NON_BLOCKING or TIMED_WAIT
            wait_ms: Wait budget for TIMED_WAIT (defaults to default_wait_ms)

        Returns:
            True if the lock was acquired, False otherwise

        Raises:
            InvalidLockConfiguration: if TIMED_WAIT has no valid wait budget
            asyncio.CancelledError: if the calling task is cancelled
        """
        result = await self.acquire_detailed(mode, wait_ms)
        return result.acquired

    async def acquire_detailed(
        self,
        mode: AcquireMode = AcquireMode.BLOCKING,
        wait_ms: Optional[int] = None,
    ) -> AcquireResult:
        """
        Like acquire(), but return this call's AcquireResult.

        Use this instead of last_result when tasks share one instance;
        last_result only keeps whichever call finished last.

        Raises:
            InvalidLockConfiguration: if TIMED_WAIT has no valid wait budget
            asyncio.CancelledError: if the calling task is cancelled
        """
        mode = AcquireMode(mode)
        if mode == AcquireMode.TIMED_WAIT:
            if wait_ms is None:
                wait_ms = self._default_wait_ms
            if wait_ms is None:
                raise InvalidLockConfiguration(
                    "wait_ms", None, "required for timed_wait when no default_wait_ms is set"
                )
            wait_ms = validate_wait_ms(wait_ms)

        result = await self._engine.run(mode, wait_ms)
        self.last_result = result

        if result.acquired:
            logger.info(
                "lock_acquired",
                lock_key=self._resource_key,
                owner_token=self._owner_token,
                mode=mode.value,
                attempts=result.attempts,
                elapsed_ms=round(result.elapsed_ms, 3),
                lease_ms=self._lease_ms,
            )
        else:
            logger.info(
                "lock_acquire_failed",
                lock_key=self._resource_key,
                owner_token=self._owner_token,
                mode=mode.value,
                reason=result.failure_reason.value if result.failure_reason else None,
                attempts=result.attempts,
                contention_failures=result.contention_failures,
                backend_failures=result.backend_failures,
                elapsed_ms=round(result.elapsed_ms, 3),
            )
        return result

    async def acquire_blocking(self) -> bool:
        """
        Block until the lock is acquired.

        Retries forever, including through backend outages. Only returns
        True; cancel the calling task to give up.
        """
        return await self.acquire(AcquireMode.BLOCKING)

    async def acquire_nonblocking(self) -> bool:
        """Make exactly one attempt, with no retry and no sleep."""
        return await self.acquire(AcquireMode.NON_BLOCKING)

    async def acquire_with_timeout(self, wait_ms: int) -> bool:
        """
        Retry until acquired or until wait_ms has elapsed.

        wait_ms=0 makes a single attempt, like acquire_nonblocking().
        The wait budget is independent of lease_ms, which only bounds how
        long a successful acquisition stays valid.
        """
        return await self.acquire(AcquireMode.TIMED_WAIT, wait_ms)

    async def release(self) -> bool:
        """
        Release the lock.

        Only succeeds if the backend still holds this instance's token.
        Uses an atomic compare-and-delete, so another owner's lock is never
        deleted. Never raises for a lock that is not held.

        Returns:
            True if released, False if not owner, expired or on error
        """
        result = await self._backend.compare_and_delete(self._resource_key, self._owner_token)

        if result == DeleteResult.DELETED:
            logger.info(
                "lock_released",
                lock_key=self._resource_key,
                owner_token=self._owner_token,
            )
            return True

        if result == DeleteResult.ERROR:
            logger.warning(
                "lock_release_backend_unavailable",
                lock_key=self._resource_key,
                owner_token=self._owner_token,
            )
        else:
            logger.warning(
                "lock_release_failed_not_owner",
                lock_key=self._resource_key,
                owner_token=self._owner_token,
            )
        return False

    async def is_held(self) -> bool:
        """Ask the backend whether this instance's token holds the key."""
        holder = await self._backend.get_value(self._resource_key)
        return holder == self._owner_token

    async def get_lock_holder(self) -> Optional[str]:
        """
        Get the token currently holding the key.

        Useful for debugging and status checks.
        """
        return await self._backend.get_value(self._resource_key)

    async def remaining_ttl_ms(self) -> Optional[int]:
        """Remaining lease in milliseconds, or None if the key is absent."""
        return await self._backend.get_remaining_ttl(self._resource_key)

    @asynccontextmanager
    async def hold(self, wait_ms: Optional[int] = None) -> AsyncIterator["DistLock"]:
        """
        Acquire with a wait budget for the duration of a block.

        Raises:
            LockNotAcquired: if the lock is not acquired within wait_ms
        """
        if wait_ms is None:
            wait_ms = self._default_wait_ms
        if not await self.acquire(AcquireMode.TIMED_WAIT, wait_ms):
            raise LockNotAcquired(self._resource_key, wait_ms)
        try:
            yield self
        finally:
            await self.release()

    async def __aenter__(self) -> "DistLock":
        await self.acquire_blocking()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.release()
