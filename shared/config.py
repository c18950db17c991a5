"""
Shared configuration management for the query cache layer.
"""

from typing import Literal, Optional, Tuple

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="QUERY_CACHE_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local")
    log_level: str = Field(default="info")
    json_logs: bool = Field(default=True)

    # Service surface
    host: str = Field(default="0.0.0.0")
    port: int = Field(default=8090)


class CacheSettings(BaseConfig):
    """Settings for the persisted store, the LRU cache and query defaults."""

    # Persisted TTL store
    default_ttl: float = Field(default=300.0, gt=0)
    storage_backend: Literal["memory", "file", "redis"] = Field(default="memory")
    storage_path: str = Field(default=".query_cache/storage.json")
    storage_name: str = Field(default="api-cache-storage")
    redis_url: str = Field(default="redis://localhost:6379/0")
    redis_key_prefix: str = Field(default="query_cache:")
    sensitive_key_markers: Tuple[str, ...] = Field(default=("sensitive", "private"))
    sweep_expired_on_startup: bool = Field(default=True)

    # In-memory LRU cache
    lru_max_size: int = Field(default=100, gt=0)

    # Query engine defaults
    query_retry: int = Field(default=3, ge=0)
    query_retry_delay: float = Field(default=1.0, ge=0)
    query_cache_time: float = Field(default=300.0, gt=0)
    query_stale_time: float = Field(default=0.0, ge=0)

    # Cached-query adapter defaults
    cached_query_stale_time: float = Field(default=30.0, ge=0)

    # Metrics
    enable_metrics: bool = Field(default=True)
    metrics_namespace: Optional[str] = Field(default="query_cache")


def get_settings(**overrides) -> CacheSettings:
    """Get cache settings, applying explicit overrides over the environment."""
    return CacheSettings(**overrides)
