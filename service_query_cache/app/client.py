"""
Query client: wires settings, caches and query front-ends together.
"""

from typing import Any, Optional

from prometheus_client import CollectorRegistry

from shared.clock import Clock, system_clock
from shared.config import CacheSettings, get_settings
from shared.logging import get_logger
from shared.metrics import CacheMetrics

from .caching.lru import LRUCache
from .caching.persisted import PersistedTTLStore
from .query.cached import CachedQueryAdapter, CachedQuerySubscription
from .query.engine import QueryEngine, QuerySubscription
from .query.focus import FocusEventBus
from .query.models import CachedQueryOptions, FetchFn, QueryOptions
from .storage import KeyValueStore, create_key_value_store


class QueryClient:
    """One isolated set of caches plus the engine and adapter over them."""

    def __init__(
        self,
        settings: Optional[CacheSettings] = None,
        *,
        storage: Optional[KeyValueStore] = None,
        clock: Optional[Clock] = None,
        registry: Optional[CollectorRegistry] = None,
    ):
        self.settings = settings or get_settings()
        self.clock = clock or system_clock
        self.logger = get_logger("query_cache.client")
        self.metrics = (
            CacheMetrics(registry, self.settings.metrics_namespace)
            if self.settings.enable_metrics else None
        )

        self.storage = storage if storage is not None else create_key_value_store(self.settings)
        self.persisted = PersistedTTLStore(
            self.storage,
            default_ttl=self.settings.default_ttl,
            storage_name=self.settings.storage_name,
            sensitive_markers=self.settings.sensitive_key_markers,
            clock=self.clock,
            metrics=self.metrics,
        )
        if self.settings.sweep_expired_on_startup:
            self.persisted.clear_expired_cache()

        self.lru = LRUCache(
            self.settings.lru_max_size,
            self.settings.query_cache_time,
            clock=self.clock,
            metrics=self.metrics,
        )
        self.focus_bus = FocusEventBus()
        self.engine = QueryEngine(
            self.lru,
            clock=self.clock,
            focus_bus=self.focus_bus,
            metrics=self.metrics,
            defaults=QueryOptions(
                retry=self.settings.query_retry,
                retry_delay=self.settings.query_retry_delay,
                cache_time=self.settings.query_cache_time,
                stale_time=self.settings.query_stale_time,
            ),
        )
        self.adapter = CachedQueryAdapter(
            self.persisted,
            clock=self.clock,
            metrics=self.metrics,
            defaults=CachedQueryOptions(
                ttl=self.settings.default_ttl,
                stale_time=self.settings.cached_query_stale_time,
            ),
        )
        self.logger.info(
            "Query client ready",
            storage_backend=self.storage.name,
            lru_max_size=self.lru.max_size,
            persisted_entries=self.persisted.size(),
        )

    def use_query(self, key: str, fetch_fn: FetchFn, **options: Any) -> QuerySubscription:
        """Subscribe through the query engine and activate immediately."""
        subscription = self.engine.subscribe(key, fetch_fn, **options)
        subscription.start()
        return subscription

    def use_cached_query(self, key: str, fetch_fn: FetchFn, **options: Any) -> CachedQuerySubscription:
        """Subscribe through the cached-query adapter and activate immediately."""
        subscription = self.adapter.subscribe(key, fetch_fn, **options)
        subscription.start()
        return subscription

    def notify_focus(self) -> int:
        return self.focus_bus.notify_focus()

    def stats(self) -> dict:
        return {
            "lru": {
                "size": self.lru.size(),
                "max_size": self.lru.max_size,
                "survives_restart": self.lru.survives_restart,
            },
            "persisted": {
                "size": self.persisted.size(),
                "storage_backend": self.storage.name,
                "storage_name": self.persisted.storage_name,
                "survives_restart": self.persisted.survives_restart,
            },
            "subscriptions": len(self.engine.subscriptions()),
            "focus_listeners": len(self.focus_bus),
        }

    async def close(self) -> None:
        await self.engine.close()
        close = getattr(self.storage, "close", None)
        if callable(close):
            close()
        self.logger.info("Query client closed")


def create_query_client(settings: Optional[CacheSettings] = None, **kwargs: Any) -> QueryClient:
    """Build an isolated client; keyword arguments go to ``QueryClient``."""
    return QueryClient(settings, **kwargs)


_default_client: Optional[QueryClient] = None


def get_query_client() -> QueryClient:
    """Process-wide client shared by every caller in this process."""
    global _default_client
    if _default_client is None:
        _default_client = create_query_client()
    return _default_client


def reset_query_client() -> None:
    """Forget the process-wide client (tests, reconfiguration)."""
    global _default_client
    _default_client = None
