"""
distlock - Redis Backend

Key-value backend on a single Redis node.

Key features:
- SET NX PX for atomic create-if-absent-with-expiry
- Lua script for atomic compare-and-delete with token verification
- Bounded, blocking connection pool; every command checks a connection
  out and returns it, so nothing is held between polls
"""

from typing import Optional

import redis.asyncio as aioredis
import structlog
from redis.exceptions import RedisError

from distlock.backend.base import LockBackend
from distlock.config import Settings, get_settings
from distlock.types import DeleteResult, SetResult

logger = structlog.get_logger(__name__)

# Transport-level failures folded into ERROR results
BACKEND_ERRORS = (RedisError, OSError)


# Lua script for atomic release: only delete if the token matches
# KEYS[1] = lock key
# ARGV[1] = expected token
# Returns: 1 if deleted, 0 if not owner or key doesn't exist
COMPARE_AND_DELETE_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
else
    return 0
end
"""


class RedisBackend(LockBackend):
    """
    Lock backend using Redis.

    Usage:
        backend = RedisBackend("redis://localhost:6379/0")

        result = await backend.set_if_absent_with_expiry("my_lock", token, 3000)
        if result == SetResult.STORED:
            try:
                # Do work...
            finally:
                await backend.compare_and_delete("my_lock", token)

        await backend.close()
    """

    name = "redis"

    def __init__(
        self,
        redis_url: Optional[str] = None,
        max_connections: Optional[int] = None,
        pool_timeout_seconds: Optional[float] = None,
        socket_timeout_seconds: Optional[float] = None,
        settings: Optional[Settings] = None,
    ):
        """
        Initialize the Redis backend.

        No connection is opened until the first command.

        Args:
            redis_url: Redis connection URL. Defaults to settings.redis_url.
            max_connections: Pool size. Defaults to settings.redis_max_connections.
            pool_timeout_seconds: Max wait for a free pooled connection.
            socket_timeout_seconds: Socket read/write timeout.
            settings: Settings to read defaults from.
        """
        settings = settings or get_settings()
        self.redis_url = settings.redis_url if redis_url is None else redis_url
        self.max_connections = (
            settings.redis_max_connections if max_connections is None else max_connections
        )
        if pool_timeout_seconds is None:
            pool_timeout_seconds = settings.redis_pool_timeout_seconds
        if socket_timeout_seconds is None:
            socket_timeout_seconds = settings.redis_socket_timeout_seconds

        self._pool = aioredis.BlockingConnectionPool.from_url(
            self.redis_url,
            max_connections=self.max_connections,
            timeout=pool_timeout_seconds,
            socket_timeout=socket_timeout_seconds,
            decode_responses=True,
        )
        self._client = aioredis.Redis(connection_pool=self._pool)
        self._release_script = self._client.register_script(COMPARE_AND_DELETE_SCRIPT)

    async def set_if_absent_with_expiry(self, key: str, value: str, ttl_ms: int) -> SetResult:
        """
        SET key value NX PX ttl_ms.

        NX = only set if not exists, PX = expire in milliseconds.
        Both apply in one command, so the key is never visible without its TTL.
        """
        try:
            result = await self._client.set(key, value, nx=True, px=ttl_ms)
        except BACKEND_ERRORS as e:
            logger.error(
                "redis_backend_set_error",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return SetResult.ERROR

        # Redis replies OK (True) when stored, nil (None) when the key exists
        return SetResult.STORED if result else SetResult.ALREADY_EXISTS

    async def compare_and_delete(self, key: str, expected_value: str) -> DeleteResult:
        try:
            result = await self._release_script(
                keys=[key],
                args=[expected_value],
            )
        except BACKEND_ERRORS as e:
            logger.error(
                "redis_backend_compare_and_delete_error",
                key=key,
                error=str(e),
                error_type=type(e).__name__,
            )
            return DeleteResult.ERROR

        return DeleteResult.DELETED if result == 1 else DeleteResult.NOT_MATCHED

    async def get_remaining_ttl(self, key: str) -> Optional[int]:
        """
        PTTL key.

        Returns None when the key does not exist (PTTL -2) or on error,
        and -1 for a key without expiry.
        """
        try:
            ttl = await self._client.pttl(key)
        except BACKEND_ERRORS as e:
            logger.error("redis_backend_ttl_error", key=key, error=str(e))
            return None

        if ttl == -2:
            return None
        return ttl

    async def get_value(self, key: str) -> Optional[str]:
        try:
            return await self._client.get(key)
        except BACKEND_ERRORS as e:
            logger.error("redis_backend_get_error", key=key, error=str(e))
            return None

    async def ping(self) -> bool:
        """Check if Redis is available."""
        try:
            await self._client.ping()
            return True
        except BACKEND_ERRORS as e:
            logger.warning("redis_backend_not_available", error=str(e))
            return False

    async def close(self) -> None:
        """Close the client and disconnect every pooled connection."""
        await self._client.aclose()
        await self._pool.disconnect()
        logger.info("redis_backend_closed", redis_url=self.safe_url)

    @property
    def safe_url(self) -> str:
        """Redis URL without credentials."""
        return self.redis_url.split("@")[-1] if "@" in self.redis_url else self.redis_url
