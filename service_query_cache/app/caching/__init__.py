"""
Caching package for the query cache service.

Two independent caches share one interface: a bounded in-memory LRU cache
for speed and a persisted TTL store for cross-session durability. They are
separate namespaces and may hold different data for the same key.
"""

from .base import Cache
from .lru import LRUCache, LRUEntry
from .persisted import CacheEntry, PersistedTTLStore

__all__ = [
    "Cache",
    "LRUCache",
    "LRUEntry",
    "CacheEntry",
    "PersistedTTLStore",
]
