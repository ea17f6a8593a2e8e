"""
distlock - Errors

Exceptions raised by the lock core and the backend lifecycle.

Contention and mismatched releases are normal outcomes and are reported
as booleans, not exceptions.
"""


class LockError(Exception):
    """Base exception for lock errors."""
    pass


class InvalidLockConfiguration(LockError, ValueError):
    """Raised when a lease, poll interval or wait budget is out of range."""

    def __init__(self, field: str, value: object, reason: str):
        super().__init__(f"invalid {field}={value!r}: {reason}")
        self.field = field
        self.value = value
        self.reason = reason


class BackendNotInitialized(LockError, RuntimeError):
    """Raised when the process-wide backend is used before init_backend()."""
    pass


class LockNotAcquired(LockError):
    """Raised by DistLock.hold() when the wait budget runs out."""

    def __init__(self, lock_key: str, wait_ms: int):
        super().__init__(f"could not acquire lock '{lock_key}' within {wait_ms}ms")
        self.lock_key = lock_key
        self.wait_ms = wait_ms
