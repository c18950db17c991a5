"""
Persisted key/value cache with per-entry TTL.

Entries live in memory and are mirrored, as one JSON snapshot, into a
host-supplied ``KeyValueStore`` so they survive process restarts. Keys that
look sensitive or private are never written to the medium.
"""

import copy
import json
from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional

from shared.clock import Clock, system_clock
from shared.errors import SerializationError, StorageError
from shared.logging import get_logger
from shared.metrics import CacheMetrics

from ..storage.base import KeyValueStore, MemoryKeyValueStore


DEFAULT_TTL = 300.0
DEFAULT_STORAGE_NAME = "api-cache-storage"
DEFAULT_SENSITIVE_MARKERS = ("sensitive", "private")
SNAPSHOT_VERSION = 1


@dataclass
class CacheEntry:
    """Persisted cache entry."""
    key: str
    data: Any
    stored_at: float
    ttl: float

    def age(self, now: float) -> float:
        return now - self.stored_at

    def is_expired(self, now: float) -> bool:
        return self.age(now) > self.ttl

    def to_dict(self) -> Dict[str, Any]:
        return {"data": self.data, "stored_at": self.stored_at, "ttl": self.ttl}


def _to_json_value(value: Any) -> Any:
    """Return the value as it will read back from storage.

    Tuples and non-string dict keys serialize but come back changed, so they
    are rejected along with values that do not serialize at all.
    """
    try:
        decoded = json.loads(json.dumps(value, allow_nan=False))
    except (TypeError, ValueError) as e:
        raise SerializationError(details={"error": str(e), "type": type(value).__name__})
    if decoded != value:
        raise SerializationError(
            "Value does not survive a JSON round trip",
            details={"type": type(value).__name__}
        )
    return decoded


class PersistedTTLStore:
    """Process-wide TTL cache persisted through a key-value medium."""

    survives_restart = True
    cache_type = "persisted"

    def __init__(
        self,
        storage: Optional[KeyValueStore] = None,
        *,
        default_ttl: float = DEFAULT_TTL,
        storage_name: str = DEFAULT_STORAGE_NAME,
        sensitive_markers: Iterable[str] = DEFAULT_SENSITIVE_MARKERS,
        clock: Optional[Clock] = None,
        metrics: Optional[CacheMetrics] = None,
    ):
        self.storage = storage if storage is not None else MemoryKeyValueStore()
        self.default_ttl = default_ttl
        self.storage_name = storage_name
        self.sensitive_markers = tuple(sensitive_markers)
        self.clock = clock or system_clock
        self.metrics = metrics
        self.logger = get_logger("query_cache.persisted")

        self._entries: Dict[str, CacheEntry] = {}
        self._hydrate()

    # Persistence

    def is_persistable(self, key: str) -> bool:
        """Whether ``key`` may be written to the durable medium."""
        return not any(marker in key for marker in self.sensitive_markers)

    def _hydrate(self) -> None:
        try:
            raw = self.storage.get(self.storage_name)
        except StorageError as e:
            self.logger.error("Failed to load persisted cache", error=e.message)
            return
        if not raw:
            return

        try:
            snapshot = json.loads(raw)
            cache = snapshot["cache"]
            for key, item in cache.items():
                self._entries[key] = CacheEntry(
                    key=key,
                    data=item["data"],
                    stored_at=float(item["stored_at"]),
                    ttl=float(item["ttl"]),
                )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            self.logger.warning("Ignoring malformed persisted cache snapshot", storage_name=self.storage_name, error=str(e))
            self._entries.clear()
            return

        self.logger.info("Persisted cache loaded", entries=len(self._entries))
        self._update_gauge()

    def _persist(self) -> None:
        snapshot = {
            "version": SNAPSHOT_VERSION,
            "cache": {
                key: entry.to_dict()
                for key, entry in self._entries.items()
                if self.is_persistable(key)
            },
        }
        try:
            self.storage.set(self.storage_name, json.dumps(snapshot))
        except StorageError as e:
            # Best effort: the in-memory entry stays authoritative for this session
            self.logger.error("Failed to persist cache snapshot", error=e.message, details=e.details)
        self._update_gauge()

    def _update_gauge(self) -> None:
        if self.metrics:
            self.metrics.set_entries(self.cache_type, len(self._entries))

    # Operations

    def set_cache(self, key: str, data: Any, ttl: Optional[float] = None) -> None:
        """Insert or overwrite ``key``; raises ``SerializationError`` for non-JSON data."""
        value = _to_json_value(data)
        cache_ttl = self.default_ttl if ttl is None else ttl
        self._entries[key] = CacheEntry(
            key=key,
            data=value,
            stored_at=self.clock.now(),
            ttl=cache_ttl,
        )
        self.logger.debug("Cached value", key=key, ttl=cache_ttl, persisted=self.is_persistable(key))
        self._persist()

    def get_entry(self, key: str) -> Optional[CacheEntry]:
        """Get the live entry for ``key``, dropping it if its TTL has elapsed."""
        entry = self._entries.get(key)
        if entry is None:
            if self.metrics:
                self.metrics.record_miss(self.cache_type)
            return None

        if entry.is_expired(self.clock.now()):
            del self._entries[key]
            self.logger.debug("Expired entry dropped", key=key)
            if self.metrics:
                self.metrics.record_expiration(self.cache_type)
                self.metrics.record_miss(self.cache_type)
            self._persist()
            return None

        if self.metrics:
            self.metrics.record_hit(self.cache_type)
        return CacheEntry(key=entry.key, data=copy.deepcopy(entry.data), stored_at=entry.stored_at, ttl=entry.ttl)

    def get_cache(self, key: str) -> Optional[Any]:
        entry = self.get_entry(key)
        return entry.data if entry is not None else None

    def clear_cache(self, key: str) -> None:
        if self._entries.pop(key, None) is not None:
            self._persist()

    def clear_all_cache(self) -> None:
        self._entries.clear()
        try:
            self.storage.remove(self.storage_name)
        except StorageError as e:
            self.logger.error("Failed to clear persisted cache", error=e.message)
        self._update_gauge()
        self.logger.info("Persisted cache cleared")

    def clear_expired_cache(self) -> int:
        """Drop every expired entry; returns how many were removed."""
        now = self.clock.now()
        expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
        for key in expired:
            del self._entries[key]

        if expired:
            if self.metrics:
                self.metrics.record_expiration(self.cache_type, len(expired))
            self._persist()
            self.logger.info("Expired cache entries swept", removed=len(expired), remaining=len(self._entries))
        return len(expired)

    def keys(self) -> List[str]:
        """Keys currently held, expired or not."""
        return list(self._entries)

    def size(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    # Generic cache interface

    def get(self, key: str) -> Optional[Any]:
        return self.get_cache(key)

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        self.set_cache(key, value, ttl)

    def delete(self, key: str) -> None:
        self.clear_cache(key)

    def clear(self) -> None:
        self.clear_all_cache()
