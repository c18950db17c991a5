"""
Persistent key-value media for the persisted TTL store.

The store only needs get/set/remove of string values; pick a backend with
``create_key_value_store`` from settings.
"""

from shared.config import CacheSettings

from .base import KeyValueStore, MemoryKeyValueStore
from .file_store import FileKeyValueStore
from .redis_store import RedisKeyValueStore


def create_key_value_store(settings: CacheSettings) -> KeyValueStore:
    """Build the medium named by ``settings.storage_backend``."""
    if settings.storage_backend == "file":
        return FileKeyValueStore(settings.storage_path)
    if settings.storage_backend == "redis":
        return RedisKeyValueStore(settings.redis_url, key_prefix=settings.redis_key_prefix)
    return MemoryKeyValueStore()


__all__ = [
    "KeyValueStore",
    "MemoryKeyValueStore",
    "FileKeyValueStore",
    "RedisKeyValueStore",
    "create_key_value_store",
]
