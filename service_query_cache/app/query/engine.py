"""
Resilient query engine.

A ``QuerySubscription`` binds a cache key to a no-argument async fetch
callable and supervises it: cache-first activation against the shared LRU
cache, retries with linear backoff, interval and focus driven refetches,
manual refetch and invalidation. Fetch errors never escape a subscription;
they are surfaced through ``QueryState``.
"""

import asyncio
import uuid
from typing import Any, Callable, Dict, Generic, List, Optional, Set

from shared.clock import Clock, system_clock
from shared.logging import get_logger, set_query_context
from shared.metrics import CacheMetrics
from shared.retry import RetryConfig, RetryPolicy

from ..caching.lru import LRUCache
from .coalescer import RequestCoalescer
from .focus import FocusEventBus
from .models import FetchFn, ListenerSet, QueryOptions, QueryState, QueryStatus, T


class QuerySubscription(Generic[T]):
    """Live binding between a key, a fetch callable and the state derived from it."""

    def __init__(self, engine: "QueryEngine", key: str, fetch_fn: FetchFn, options: QueryOptions):
        self.engine = engine
        self.key = key
        self.fetch_fn = fetch_fn
        self.options = options
        self.subscription_id = str(uuid.uuid4())
        self.logger = engine.logger.bind(key=key, subscription_id=self.subscription_id)

        self._state: QueryState[T] = QueryState(is_loading=options.enabled)
        self._retry = RetryPolicy(RetryConfig(
            max_retries=options.retry,
            base_delay=options.retry_delay,
        ))
        self._listeners = ListenerSet(name=f"query:{key}")

        self._cycle: Optional[asyncio.Task] = None
        # True once the running cycle is committed to fetching (forced, or past a cache miss)
        self._cycle_fetches = False
        self._backoff_task: Optional[asyncio.Task] = None
        self._interval_task: Optional[asyncio.Task] = None
        self._remove_focus_listener: Optional[Callable[[], None]] = None
        self._active = False
        self._closed = False

    # State

    @property
    def state(self) -> QueryState[T]:
        """Current snapshot; staleness is evaluated at read time."""
        return self._state.evolve(is_stale=self._is_stale(self._state))

    @property
    def data(self) -> Optional[T]:
        return self._state.data

    @property
    def is_loading(self) -> bool:
        return self._state.is_loading

    @property
    def is_error(self) -> bool:
        return self._state.is_error

    @property
    def error(self) -> Optional[BaseException]:
        return self._state.error

    @property
    def is_success(self) -> bool:
        return self._state.is_success

    @property
    def is_stale(self) -> bool:
        return self._is_stale(self._state)

    @property
    def closed(self) -> bool:
        return self._closed

    def _is_stale(self, state: QueryState[T]) -> bool:
        if state.data_updated_at is None:
            return False
        return self.engine.clock.now() - state.data_updated_at > self.options.stale_time

    def _set_state(self, state: QueryState[T]) -> None:
        if self._closed:
            return
        self._state = state
        self._listeners.notify(self.state)

    def add_listener(self, listener: Callable[[QueryState[T]], None]) -> Callable[[], None]:
        """Observe every state transition; returns an unsubscribe callable."""
        return self._listeners.add(listener)

    # Lifecycle

    def start(self) -> Optional[asyncio.Task]:
        """Activate the subscription: cache-first load plus timers."""
        if self._closed:
            raise RuntimeError(f"Subscription for '{self.key}' is closed")
        self._active = True
        if not self.options.enabled:
            self.logger.debug("Query disabled, staying dormant")
            return None
        self._start_timers()
        return self._trigger(force=False)

    def set_enabled(self, enabled: bool) -> Optional[asyncio.Task]:
        """Toggle activation; re-enabling starts a fresh cache-first cycle."""
        if enabled == self.options.enabled:
            return None
        self.options = self.options.model_copy(update={"enabled": enabled})
        if enabled:
            return self.start() if self._active else None

        self._stop_timers()
        self._cancel_cycle()
        state = self._state
        if state.is_success:
            status = QueryStatus.SUCCESS
        elif state.is_error:
            status = QueryStatus.ERROR
        else:
            status = QueryStatus.IDLE
        self._set_state(state.evolve(is_loading=False, status=status))
        self.logger.debug("Query disabled")
        return None

    def refetch(self) -> Optional[asyncio.Task]:
        """Force a fetch that bypasses the cache."""
        return self._trigger(force=True)

    def invalidate(self) -> Optional[asyncio.Task]:
        """Drop the cached entry for this key and refetch."""
        self.engine.cache.delete(self.key)
        self.logger.debug("Cache entry invalidated")
        return self._trigger(force=True)

    async def wait(self) -> QueryState[T]:
        """Wait for the current fetch cycle, if any, and return the state."""
        # A forced refetch may supersede the cycle being waited on; follow it
        while self._cycle is not None and not self._cycle.done():
            await asyncio.wait([self._cycle])
        return self.state

    async def close(self) -> None:
        """Tear down timers and pending retries; no state updates afterwards."""
        if self._closed:
            return
        self._closed = True
        self._active = False
        tasks = [t for t in (self._cycle, self._interval_task) if t is not None and not t.done()]
        self._stop_timers()
        self._cancel_cycle()
        self._listeners.clear()
        self.engine._unregister(self)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        self.logger.debug("Subscription closed")

    async def __aenter__(self) -> "QuerySubscription[T]":
        self.start()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Scheduling

    def _start_timers(self) -> None:
        if self.options.refetch_interval and (self._interval_task is None or self._interval_task.done()):
            self._interval_task = asyncio.get_running_loop().create_task(self._interval_loop())
        if self.options.refetch_on_window_focus and self._remove_focus_listener is None:
            self._remove_focus_listener = self.engine.focus_bus.add_listener(self._on_focus)

    def _stop_timers(self) -> None:
        if self._interval_task is not None:
            self._interval_task.cancel()
            self._interval_task = None
        if self._remove_focus_listener is not None:
            self._remove_focus_listener()
            self._remove_focus_listener = None

    def _cancel_cycle(self) -> None:
        if self._cycle is not None and not self._cycle.done():
            self._cycle.cancel()
        self._cycle = None
        self._backoff_task = None
        self._cycle_fetches = False

    def _trigger(self, force: bool) -> Optional[asyncio.Task]:
        if self._closed or not self._active or not self.options.enabled:
            return None

        current = self._cycle
        if current is not None and not current.done():
            in_backoff = self._backoff_task is current
            if not force or (self._cycle_fetches and not in_backoff):
                # Join the in-flight cycle
                return current
            if in_backoff:
                self.logger.info("Cancelling pending retry in favour of forced refetch")
            else:
                self.logger.debug("Replacing cache-first cycle with forced refetch")
            current.cancel()

        self._cycle_fetches = force
        self._cycle = asyncio.get_running_loop().create_task(self._run_cycle(force))
        return self._cycle

    async def _interval_loop(self) -> None:
        interval = self.options.refetch_interval
        while True:
            await self.engine.clock.sleep(interval)
            self.logger.debug("Interval refetch", interval=interval)
            self._trigger(force=True)

    def _on_focus(self) -> None:
        state = self._state
        if state.is_success and state.data is not None:
            self.logger.debug("Focus refetch")
            self._trigger(force=True)

    # Fetch cycle

    async def _run_cycle(self, force: bool) -> None:
        set_query_context(self.key, self.subscription_id)

        if not force:
            entry = self.engine.cache.get_entry(self.key)
            if entry is not None:
                self._set_state(self._state.evolve(
                    data=entry.value,
                    is_loading=False,
                    is_error=False,
                    error=None,
                    is_success=True,
                    status=QueryStatus.SUCCESS,
                    data_updated_at=entry.stored_at,
                    failure_count=0,
                ))
                self.logger.debug("Served from cache")
                return

        self._cycle_fetches = True
        self._retry.reset()
        self._set_state(self._state.evolve(is_loading=True, is_error=False, error=None, status=QueryStatus.FETCHING))

        while True:
            try:
                data = await self.engine.coalescer.run(self.key, self.fetch_fn)
            except Exception as e:
                self.engine.record_fetch("failure")
                if self._retry.should_retry():
                    delay = self._retry.next_delay()
                    if self.engine.metrics:
                        self.engine.metrics.record_retry()
                    self.logger.warning(
                        "Fetch failed, retrying",
                        attempt=self._retry.attempt,
                        max_retries=self._retry.config.max_retries,
                        delay=delay,
                        error=str(e)
                    )
                    self._set_state(self._state.evolve(failure_count=self._retry.attempt))
                    await self._backoff(delay)
                    continue

                attempts = self._retry.attempt + 1
                self.logger.error("Fetch failed, retry budget exhausted", attempts=attempts, error=str(e))
                self._set_state(self._state.evolve(
                    is_loading=False,
                    is_error=True,
                    error=e,
                    is_success=False,
                    status=QueryStatus.ERROR,
                    failure_count=attempts,
                ))
                return

            self.engine.record_fetch("success")
            self.engine.cache.set(self.key, data, ttl=self.options.cache_time)
            if self._retry.attempt:
                self.logger.info("Fetch succeeded after retries", retries=self._retry.attempt)
            self._retry.reset()
            self._set_state(QueryState(
                data=data,
                is_success=True,
                status=QueryStatus.SUCCESS,
                data_updated_at=self.engine.clock.now(),
            ))
            return

    async def _backoff(self, delay: float) -> None:
        task = asyncio.current_task()
        self._backoff_task = task
        try:
            await self.engine.clock.sleep(delay)
        finally:
            if self._backoff_task is task:
                self._backoff_task = None


class QueryEngine:
    """Creates query subscriptions that share one LRU cache and focus bus."""

    def __init__(
        self,
        cache: Optional[LRUCache] = None,
        *,
        clock: Optional[Clock] = None,
        coalescer: Optional[RequestCoalescer] = None,
        focus_bus: Optional[FocusEventBus] = None,
        metrics: Optional[CacheMetrics] = None,
        defaults: Optional[QueryOptions] = None,
    ):
        self.clock = clock or (cache.clock if cache is not None else system_clock)
        self.cache = cache if cache is not None else LRUCache(clock=self.clock, metrics=metrics)
        self.coalescer = coalescer if coalescer is not None else RequestCoalescer()
        self.focus_bus = focus_bus if focus_bus is not None else FocusEventBus()
        self.metrics = metrics
        self.defaults = defaults or QueryOptions()
        self.logger = get_logger("query_cache.engine")

        self._subscriptions: Dict[str, Set[QuerySubscription]] = {}

    def build_options(self, options: Optional[QueryOptions] = None, **overrides: Any) -> QueryOptions:
        """Merge overrides onto ``options`` (or the engine defaults), validating the result."""
        base = options or self.defaults
        if not overrides:
            return base
        return QueryOptions(**{**base.model_dump(), **overrides})

    def subscribe(
        self,
        key: str,
        fetch_fn: FetchFn,
        options: Optional[QueryOptions] = None,
        **overrides: Any,
    ) -> QuerySubscription:
        """Create an inactive subscription; call ``start()`` to activate it."""
        subscription = QuerySubscription(self, key, fetch_fn, self.build_options(options, **overrides))
        self._subscriptions.setdefault(key, set()).add(subscription)
        self.logger.debug("Subscription created", key=key, subscription_id=subscription.subscription_id)
        return subscription

    async def query(self, key: str, fetch_fn: FetchFn, options: Optional[QueryOptions] = None, **overrides: Any) -> QueryState:
        """Run one cache-first fetch cycle and return the resulting state."""
        subscription = self.subscribe(key, fetch_fn, options, **overrides)
        try:
            subscription.start()
            return await subscription.wait()
        finally:
            await subscription.close()

    def invalidate(self, key: str) -> List[asyncio.Task]:
        """Drop ``key`` from the shared cache and refetch every live subscriber."""
        self.cache.delete(key)
        tasks = []
        for subscription in list(self._subscriptions.get(key, ())):
            task = subscription.refetch()
            if task is not None and task not in tasks:
                tasks.append(task)
        self.logger.info("Key invalidated", key=key, refetches=len(tasks))
        return tasks

    def subscriptions(self, key: Optional[str] = None) -> List[QuerySubscription]:
        if key is not None:
            return list(self._subscriptions.get(key, ()))
        return [s for subs in self._subscriptions.values() for s in subs]

    def record_fetch(self, outcome: str) -> None:
        if self.metrics:
            self.metrics.record_fetch("engine", outcome)

    def _unregister(self, subscription: QuerySubscription) -> None:
        subs = self._subscriptions.get(subscription.key)
        if subs is not None:
            subs.discard(subscription)
            if not subs:
                del self._subscriptions[subscription.key]

    async def close(self) -> None:
        """Close every live subscription."""
        subscriptions = self.subscriptions()
        for subscription in subscriptions:
            await subscription.close()
        self.logger.info("Query engine closed", closed=len(subscriptions))
