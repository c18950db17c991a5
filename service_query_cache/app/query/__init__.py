"""
Query package: the resilient query engine over the LRU cache and the
cached-query adapter over the persisted store.
"""

from .models import (
    CachedQueryOptions,
    CachedQueryState,
    QueryOptions,
    QueryState,
    QueryStatus,
)
from .coalescer import RequestCoalescer
from .focus import FocusEventBus
from .engine import QueryEngine, QuerySubscription
from .cached import CachedQueryAdapter, CachedQuerySubscription

__all__ = [
    "CachedQueryOptions",
    "CachedQueryState",
    "QueryOptions",
    "QueryState",
    "QueryStatus",
    "RequestCoalescer",
    "FocusEventBus",
    "QueryEngine",
    "QuerySubscription",
    "CachedQueryAdapter",
    "CachedQuerySubscription",
]
