"""
Persistent key-value medium contract.
"""

from typing import Dict, Optional, Protocol


class KeyValueStore(Protocol):
    """Host-supplied persistent medium holding string values.

    Mirrors browser local storage: synchronous, string in, string out.
    Implementations raise ``StorageError`` when the backend fails.
    """

    name: str

    def get(self, key: str) -> Optional[str]:
        ...

    def set(self, key: str, value: str) -> None:
        ...

    def remove(self, key: str) -> None:
        ...


class MemoryKeyValueStore:
    """Dict-backed medium; survives only as long as the object does."""

    name = "memory"

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._data
