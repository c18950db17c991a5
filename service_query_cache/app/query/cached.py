"""
Cached-query adapter backed by the persisted TTL store.

Simpler than the query engine: no retries or timers, but data survives
restarts and a failed refresh keeps showing the last cached value, flagged
stale, instead of wiping it.
"""

import asyncio
from typing import Any, Callable, Generic, Optional

from shared.clock import Clock
from shared.errors import SerializationError
from shared.logging import get_logger, set_query_context
from shared.metrics import CacheMetrics

from ..caching.persisted import PersistedTTLStore
from .models import CachedQueryOptions, CachedQueryState, FetchFn, ListenerSet, T


class CachedQuerySubscription(Generic[T]):
    """Binding between a persisted key and a fetch callable."""

    def __init__(self, adapter: "CachedQueryAdapter", key: str, fetch_fn: FetchFn, options: CachedQueryOptions):
        self.adapter = adapter
        self.key = key
        self.fetch_fn = fetch_fn
        self.options = options
        self.logger = adapter.logger.bind(key=key)

        self._state: CachedQueryState[T] = CachedQueryState()
        self._listeners = ListenerSet(name=f"cached:{key}")
        self._task: Optional[asyncio.Task] = None
        self._task_fetches = False
        self._closed = False

    @property
    def state(self) -> CachedQueryState[T]:
        return self._state

    @property
    def data(self) -> Optional[T]:
        return self._state.data

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def error(self) -> Optional[BaseException]:
        return self._state.error

    @property
    def is_stale(self) -> bool:
        return self._state.is_stale

    def add_listener(self, listener: Callable[[CachedQueryState[T]], None]) -> Callable[[], None]:
        return self._listeners.add(listener)

    def _set_state(self, **changes: Any) -> None:
        if self._closed:
            return
        self._state = self._state.evolve(**changes)
        self._listeners.notify(self._state)

    def start(self) -> Optional[asyncio.Task]:
        """Mount: serve from the persisted store, fetching when needed."""
        return self._trigger(force=False, on_mount=True)

    def refetch(self) -> Optional[asyncio.Task]:
        """Bypass the cached value once."""
        return self._trigger(force=True, on_mount=False)

    async def wait(self) -> CachedQueryState[T]:
        while self._task is not None and not self._task.done():
            await asyncio.wait([self._task])
        return self._state

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._listeners.clear()
        task = self._task
        if task is not None and not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)

    async def __aenter__(self) -> "CachedQuerySubscription[T]":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    def _trigger(self, force: bool, on_mount: bool) -> Optional[asyncio.Task]:
        if self._closed or not self.options.enabled:
            return None
        current = self._task
        if current is not None and not current.done():
            if not force or self._task_fetches:
                return current
            # A load still on its cache check would serve the cached value
            current.cancel()
        self._task_fetches = force
        self._task = asyncio.get_running_loop().create_task(self._load(force, on_mount))
        return self._task

    async def _load(self, force: bool, on_mount: bool) -> None:
        set_query_context(self.key)
        store = self.adapter.store
        entry = store.get_entry(self.key)

        if entry is not None and not force:
            is_stale = entry.age(self.adapter.clock.now()) > self.options.stale_time
            self._set_state(data=entry.data, is_stale=is_stale)
            if not is_stale and not (on_mount and self.options.refetch_on_mount):
                self.logger.debug("Served from persisted cache")
                return
            self.logger.debug("Refreshing persisted entry", stale=is_stale)

        self._task_fetches = True
        self._set_state(is_loading=True, error=None)
        try:
            result = await self.fetch_fn()
        except Exception as e:
            self.adapter.record_fetch("failure")
            if entry is not None:
                self.logger.warning("Fetch failed, serving stale cached data", error=str(e))
                self._set_state(data=entry.data, is_stale=True, error=e, is_loading=False)
            else:
                self.logger.error("Fetch failed with nothing cached", error=str(e))
                self._set_state(error=e, is_loading=False)
            return

        self.adapter.record_fetch("success")
        try:
            store.set_cache(self.key, result, self.options.ttl)
        except SerializationError as e:
            self.logger.error("Fetched data cannot be persisted", error=e.message, details=e.details)
            self._set_state(data=result, is_stale=False, error=e, is_loading=False)
            return
        self._set_state(data=result, is_stale=False, error=None, is_loading=False)


class CachedQueryAdapter:
    """Creates cached-query subscriptions over one persisted store."""

    def __init__(
        self,
        store: PersistedTTLStore,
        *,
        clock: Optional[Clock] = None,
        metrics: Optional[CacheMetrics] = None,
        defaults: Optional[CachedQueryOptions] = None,
    ):
        self.store = store
        self.clock = clock or store.clock
        self.metrics = metrics
        self.defaults = defaults or CachedQueryOptions()
        self.logger = get_logger("query_cache.cached_query")

    def build_options(self, options: Optional[CachedQueryOptions] = None, **overrides: Any) -> CachedQueryOptions:
        base = options or self.defaults
        if not overrides:
            return base
        return CachedQueryOptions(**{**base.model_dump(), **overrides})

    def subscribe(
        self,
        key: str,
        fetch_fn: FetchFn,
        options: Optional[CachedQueryOptions] = None,
        **overrides: Any,
    ) -> CachedQuerySubscription:
        return CachedQuerySubscription(self, key, fetch_fn, self.build_options(options, **overrides))

    async def query(
        self,
        key: str,
        fetch_fn: FetchFn,
        options: Optional[CachedQueryOptions] = None,
        **overrides: Any,
    ) -> CachedQueryState:
        """Mount, wait for the load and return the resulting state."""
        subscription = self.subscribe(key, fetch_fn, options, **overrides)
        try:
            subscription.start()
            return await subscription.wait()
        finally:
            await subscription.close()

    def record_fetch(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_fetch("cached_query", outcome)
