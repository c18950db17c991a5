"""
Redis backed key-value medium.
"""

from typing import Optional

import redis

from shared.logging import get_logger
from shared.errors import StorageError


class RedisKeyValueStore:
    """Synchronous Redis medium with a key prefix namespace."""

    name = "redis"

    def __init__(self, redis_url: str, key_prefix: str = "query_cache:", client: Optional[redis.Redis] = None):
        self.redis_url = redis_url
        self.key_prefix = key_prefix
        self.logger = get_logger("query_cache.storage.redis")
        self._redis: Optional[redis.Redis] = client

    def _get_redis(self) -> redis.Redis:
        """Get Redis connection."""
        if self._redis is None:
            self._redis = redis.Redis.from_url(
                self.redis_url,
                encoding="utf-8",
                decode_responses=True,
                socket_connect_timeout=5,
                socket_timeout=5,
                retry_on_timeout=True,
                health_check_interval=30
            )
        return self._redis

    def _make_key(self, key: str) -> str:
        return f"{self.key_prefix}{key}"

    def get(self, key: str) -> Optional[str]:
        try:
            value = self._get_redis().get(self._make_key(key))
        except redis.RedisError as e:
            self.logger.error("Redis get error", key=key, error=str(e))
            raise StorageError(self.name, "get failed", {"key": key, "error": str(e)})

        if isinstance(value, bytes):
            return value.decode("utf-8")
        return value

    def set(self, key: str, value: str) -> None:
        try:
            self._get_redis().set(self._make_key(key), value)
        except redis.RedisError as e:
            self.logger.error("Redis set error", key=key, error=str(e))
            raise StorageError(self.name, "set failed", {"key": key, "error": str(e)})

    def remove(self, key: str) -> None:
        try:
            self._get_redis().delete(self._make_key(key))
        except redis.RedisError as e:
            self.logger.error("Redis delete error", key=key, error=str(e))
            raise StorageError(self.name, "delete failed", {"key": key, "error": str(e)})

    def health_check(self) -> bool:
        """Check Redis health."""
        try:
            return bool(self._get_redis().ping())
        except redis.RedisError:
            return False

    def close(self) -> None:
        if self._redis is not None:
            self._redis.close()
            self._redis = None
            self.logger.info("Redis storage closed")
