"""
Tests for backend selection and the process-wide backend lifecycle.
"""

import pytest

from distlock.backend import (
    InMemoryBackend,
    RedisBackend,
    backend_lifespan,
    create_backend,
    get_backend,
    init_backend,
    shutdown_backend,
)
from distlock.clock import FakeClock
from distlock.config import Settings
from distlock.errors import BackendNotInitialized, LockError
from distlock.lock import DistLock


@pytest.fixture(autouse=True)
def clean_backend(monkeypatch):
    """Every test starts and ends without a registered backend."""
    monkeypatch.setattr("distlock.backend._backend", None)


class TestCreateBackend:
    """Tests for backend selection."""

    def test_memory_backend_selected(self):
        clock = FakeClock()

        backend = create_backend(Settings(use_memory_backend=True), clock=clock)

        assert isinstance(backend, InMemoryBackend)
        assert backend.clock is clock

    def test_redis_backend_by_default(self):
        backend = create_backend(Settings(redis_url="redis://fake:6379/0"))

        assert isinstance(backend, RedisBackend)
        assert backend.redis_url == "redis://fake:6379/0"


class TestLifecycle:
    """Tests for explicit init and shutdown."""

    def test_get_before_init_raises(self):
        with pytest.raises(BackendNotInitialized):
            get_backend()

    @pytest.mark.asyncio
    async def test_init_then_get_returns_same_instance(self):
        backend = init_backend(Settings(use_memory_backend=True))

        assert get_backend() is backend

    @pytest.mark.asyncio
    async def test_double_init_raises(self):
        init_backend(Settings(use_memory_backend=True))

        with pytest.raises(LockError):
            init_backend(Settings(use_memory_backend=True))

    @pytest.mark.asyncio
    async def test_shutdown_clears_registration(self):
        init_backend(Settings(use_memory_backend=True))

        await shutdown_backend()

        with pytest.raises(BackendNotInitialized):
            get_backend()

    @pytest.mark.asyncio
    async def test_shutdown_twice_is_safe(self):
        init_backend(Settings(use_memory_backend=True))

        await shutdown_backend()
        await shutdown_backend()

    @pytest.mark.asyncio
    async def test_lifespan_closes_backend(self):
        async with backend_lifespan(Settings(use_memory_backend=True)) as backend:
            lock = DistLock(backend, "lifespan:lock", lease_ms=1000)
            assert await lock.acquire_nonblocking() is True
            assert get_backend() is backend

        with pytest.raises(BackendNotInitialized):
            get_backend()
        assert await backend.get_value("lifespan:lock") is None

    @pytest.mark.asyncio
    async def test_lifespan_shuts_down_on_error(self):
        with pytest.raises(RuntimeError):
            async with backend_lifespan(Settings(use_memory_backend=True)):
                raise RuntimeError("boom")

        with pytest.raises(BackendNotInitialized):
            get_backend()
