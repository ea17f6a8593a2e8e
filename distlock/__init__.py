"""
distlock - Distributed Locking

Provides a single-node Redis-backed lock for serializing work across
processes, threads and tasks.
"""

from distlock.backend import (
    InMemoryBackend,
    LockBackend,
    RedisBackend,
    backend_lifespan,
    create_backend,
    get_backend,
    init_backend,
    shutdown_backend,
)
from distlock.clock import Clock, FakeClock, SystemClock
from distlock.config import Settings, get_settings
from distlock.engine import AcquisitionEngine
from distlock.errors import (
    BackendNotInitialized,
    InvalidLockConfiguration,
    LockError,
    LockNotAcquired,
)
from distlock.lock import DistLock
from distlock.ownership import generate_owner_token
from distlock.types import (
    AcquireMode,
    AcquireResult,
    AttemptOutcome,
    DeleteResult,
    EngineState,
    SetResult,
    StopCondition,
)

__all__ = [
    # Lock
    "DistLock",
    "AcquisitionEngine",
    "generate_owner_token",
    # Types
    "AcquireMode",
    "AcquireResult",
    "AttemptOutcome",
    "DeleteResult",
    "EngineState",
    "SetResult",
    "StopCondition",
    # Backends
    "LockBackend",
    "InMemoryBackend",
    "RedisBackend",
    "backend_lifespan",
    "create_backend",
    "get_backend",
    "init_backend",
    "shutdown_backend",
    # Clock
    "Clock",
    "FakeClock",
    "SystemClock",
    # Config
    "Settings",
    "get_settings",
    # Errors
    "BackendNotInitialized",
    "InvalidLockConfiguration",
    "LockError",
    "LockNotAcquired",
]
