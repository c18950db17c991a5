"""
Query options and observable state.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Awaitable, Callable, Generic, List, Optional, TypeVar

from pydantic import BaseModel, ConfigDict, Field

from shared.logging import get_logger


T = TypeVar("T")
FetchFn = Callable[[], Awaitable[Any]]


class QueryStatus(str, Enum):
    """Fetch lifecycle of a subscription."""
    IDLE = "idle"
    FETCHING = "fetching"
    SUCCESS = "success"
    ERROR = "error"


class QueryOptions(BaseModel):
    """Options recognised by the query engine. Durations are in seconds."""

    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(default=True, description="Gate activation")
    retry: int = Field(default=3, ge=0, description="Retries after the first failed attempt")
    retry_delay: float = Field(default=1.0, ge=0, description="Linear backoff base")
    cache_time: float = Field(default=300.0, gt=0, description="LRU entry lifetime")
    stale_time: float = Field(default=0.0, ge=0, description="Age after which data is flagged stale")
    refetch_on_window_focus: bool = Field(default=False)
    refetch_interval: Optional[float] = Field(default=None, gt=0, description="Periodic forced refetch")


class CachedQueryOptions(BaseModel):
    """Options recognised by the cached-query adapter. Durations are in seconds."""

    model_config = ConfigDict(extra="forbid")

    ttl: float = Field(default=300.0, gt=0, description="Persisted entry lifetime")
    enabled: bool = Field(default=True)
    refetch_on_mount: bool = Field(default=False)
    stale_time: float = Field(default=30.0, ge=0)


@dataclass(frozen=True)
class QueryState(Generic[T]):
    """Snapshot handed to callers; never mutated in place."""
    data: Optional[T] = None
    is_loading: bool = False
    is_error: bool = False
    error: Optional[BaseException] = None
    is_success: bool = False
    is_stale: bool = False
    status: QueryStatus = QueryStatus.IDLE
    data_updated_at: Optional[float] = None
    failure_count: int = 0

    def evolve(self, **changes) -> "QueryState[T]":
        return replace(self, **changes)


@dataclass(frozen=True)
class CachedQueryState(Generic[T]):
    """Snapshot of a cached-query subscription."""
    data: Optional[T] = None
    is_loading: bool = False
    error: Optional[BaseException] = None
    is_stale: bool = False

    def evolve(self, **changes) -> "CachedQueryState[T]":
        return replace(self, **changes)


Listener = Callable[[Any], None]


@dataclass
class ListenerSet:
    """Observers notified with every new state snapshot."""
    name: str = "listeners"
    _listeners: List[Listener] = field(default_factory=list)

    def add(self, listener: Listener) -> Callable[[], None]:
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def notify(self, state: Any) -> None:
        for listener in list(self._listeners):
            try:
                listener(state)
            except Exception as e:
                # A broken observer must not stop the fetch cycle
                get_logger("query_cache.listeners").error(
                    "State listener failed", listeners=self.name, error=str(e), exc_info=True
                )

    def clear(self) -> None:
        self._listeners.clear()

    def __len__(self) -> int:
        return len(self._listeners)
