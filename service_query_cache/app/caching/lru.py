"""
Bounded in-memory LRU cache with per-entry expiry.
"""

from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, List, Optional

from shared.clock import Clock, system_clock
from shared.errors import CapacityError
from shared.logging import get_logger
from shared.metrics import CacheMetrics


DEFAULT_MAX_SIZE = 100
DEFAULT_TTL = 300.0


@dataclass
class LRUEntry:
    """LRU cache entry."""
    key: str
    value: Any
    expiry: float
    stored_at: float


class LRUCache:
    """Capacity-bounded cache; eviction drops the least recently used entry."""

    survives_restart = False
    cache_type = "lru"

    def __init__(
        self,
        max_size: int = DEFAULT_MAX_SIZE,
        default_ttl: float = DEFAULT_TTL,
        *,
        clock: Optional[Clock] = None,
        metrics: Optional[CacheMetrics] = None,
    ):
        if not isinstance(max_size, int) or max_size <= 0:
            raise CapacityError(details={"max_size": max_size})
        self.max_size = max_size
        self.default_ttl = default_ttl
        self.clock = clock or system_clock
        self.metrics = metrics
        self.logger = get_logger("query_cache.lru")

        # Ordered LRU -> MRU
        self._entries: "OrderedDict[str, LRUEntry]" = OrderedDict()

    def get_entry(self, key: str) -> Optional[LRUEntry]:
        """Get a live entry and mark it most recently used."""
        entry = self._entries.get(key)
        if entry is None:
            self._record_miss()
            return None

        if self.clock.now() > entry.expiry:
            del self._entries[key]
            if self.metrics:
                self.metrics.record_expiration(self.cache_type)
                self.metrics.set_entries(self.cache_type, len(self._entries))
            self.logger.debug("Expired entry dropped", key=key)
            self._record_miss()
            return None

        self._entries.move_to_end(key)
        if self.metrics:
            self.metrics.record_hit(self.cache_type)
        return entry

    def get(self, key: str) -> Optional[Any]:
        entry = self.get_entry(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        if key not in self._entries and len(self._entries) >= self.max_size:
            evicted_key, _ = self._entries.popitem(last=False)
            if self.metrics:
                self.metrics.record_eviction(self.cache_type)
            self.logger.debug("Evicted least recently used entry", key=evicted_key, max_size=self.max_size)

        now = self.clock.now()
        cache_ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = LRUEntry(key=key, value=value, expiry=now + cache_ttl, stored_at=now)
        self._entries.move_to_end(key)
        if self.metrics:
            self.metrics.set_entries(self.cache_type, len(self._entries))

    def delete(self, key: str) -> None:
        if self._entries.pop(key, None) is not None and self.metrics:
            self.metrics.set_entries(self.cache_type, len(self._entries))

    def clear(self) -> None:
        self._entries.clear()
        if self.metrics:
            self.metrics.set_entries(self.cache_type, 0)

    def size(self) -> int:
        return len(self._entries)

    def keys(self) -> List[str]:
        """Keys in eviction order, least recently used first."""
        return list(self._entries)

    def _record_miss(self) -> None:
        if self.metrics:
            self.metrics.record_miss(self.cache_type)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)
