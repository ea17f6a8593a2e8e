"""
distlock - Configuration
Environment-based settings management
"""

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Lock settings from environment variables (DISTLOCK_ prefix)."""

    # Core
    log_level: str = "info"

    # Redis
    redis_url: str = "redis://localhost:6379/0"
    redis_max_connections: int = Field(default=300, gt=0)
    redis_pool_timeout_seconds: float = Field(default=10.0, gt=0)  # Wait for a free pooled connection
    redis_socket_timeout_seconds: float = Field(default=10.0, gt=0)

    # Backend selection
    use_memory_backend: bool = False  # In-process backend for tests and local demos

    # Lock defaults
    lease_ms: int = Field(default=3000, gt=0)  # TTL applied on acquire; never renewed
    poll_interval_ms: int = Field(default=100, gt=0)
    jitter_ms: int = Field(default=0, ge=0)  # Extra random delay per retry, 0 disables

    class Config:
        env_prefix = "DISTLOCK_"
        env_file = ".env"
        case_sensitive = False


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance."""
    return Settings()
