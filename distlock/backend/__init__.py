"""
distlock - Backend Package

Backend implementations and the process-wide backend lifecycle.

Backend Selection Logic:
- If DISTLOCK_USE_MEMORY_BACKEND=true: Use in-memory backend (tests/dev)
- Otherwise: Use Redis at DISTLOCK_REDIS_URL

The backend is constructed once with init_backend(), injected into every
DistLock, and closed with shutdown_backend() at process exit. There is no
lazy creation: get_backend() before init_backend() is an error.
"""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

import structlog

from distlock.backend.base import LockBackend
from distlock.backend.memory import InMemoryBackend
from distlock.backend.redis_backend import RedisBackend
from distlock.clock import Clock
from distlock.config import Settings, get_settings
from distlock.errors import BackendNotInitialized, LockError

logger = structlog.get_logger(__name__)


_backend: Optional[LockBackend] = None


def create_backend(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> LockBackend:
    """Construct a backend from settings without registering it."""
    settings = settings or get_settings()
    if settings.use_memory_backend:
        logger.info("lock_backend_init", type="memory")
        return InMemoryBackend(clock=clock)

    backend = RedisBackend(settings=settings)
    logger.info(
        "lock_backend_init",
        type="redis",
        redis_url=backend.safe_url,
        max_connections=backend.max_connections,
    )
    return backend


def init_backend(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> LockBackend:
    """Create and register the process-wide backend."""
    global _backend
    if _backend is not None:
        raise LockError("lock backend already initialized; call shutdown_backend() first")
    _backend = create_backend(settings=settings, clock=clock)
    return _backend


def get_backend() -> LockBackend:
    """Get the process-wide backend registered by init_backend()."""
    if _backend is None:
        raise BackendNotInitialized("lock backend not initialized; call init_backend() first")
    return _backend


async def shutdown_backend() -> None:
    """Close and unregister the process-wide backend. Safe to call twice."""
    global _backend
    backend, _backend = _backend, None
    if backend is not None:
        await backend.close()
        logger.info("lock_backend_shutdown", type=backend.name)


@asynccontextmanager
async def backend_lifespan(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> AsyncIterator[LockBackend]:
    """init_backend() on entry, shutdown_backend() on exit."""
    backend = init_backend(settings=settings, clock=clock)
    try:
        yield backend
    finally:
        await shutdown_backend()


__all__ = [
    "InMemoryBackend",
    "LockBackend",
    "RedisBackend",
    "backend_lifespan",
    "create_backend",
    "get_backend",
    "init_backend",
    "shutdown_backend",
]
