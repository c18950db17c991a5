"""
Common cache interface implemented by the LRU cache and the persisted store.
"""

from typing import Any, Optional, Protocol, runtime_checkable


@runtime_checkable
class Cache(Protocol):
    """Keyed cache with per-entry TTL.

    ``survives_restart`` tells callers whether entries outlive the process.
    """

    survives_restart: bool

    def get(self, key: str) -> Optional[Any]:
        ...

    def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        ...

    def delete(self, key: str) -> None:
        ...

    def clear(self) -> None:
        ...

    def size(self) -> int:
        ...
