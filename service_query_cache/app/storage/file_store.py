"""
JSON file backed key-value medium.
"""

import json
import os
import tempfile
from pathlib import Path
from typing import Dict, Optional, Union

from shared.logging import get_logger
from shared.errors import StorageError


class FileKeyValueStore:
    """Keeps every key in one JSON document and rewrites it atomically."""

    name = "file"

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.logger = get_logger("query_cache.storage.file")

    def _read_all(self) -> Dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            with self.path.open("r", encoding="utf-8") as handle:
                payload = json.load(handle)
        except ValueError as e:
            # Bad JSON or bad UTF-8
            self.logger.warning("Discarding unreadable storage file", path=str(self.path), error=str(e))
            return {}
        except OSError as e:
            raise StorageError(self.name, f"Failed to read {self.path}", {"error": str(e)})

        if not isinstance(payload, dict):
            self.logger.warning("Discarding storage file with unexpected layout", path=str(self.path))
            return {}
        return {str(k): v for k, v in payload.items() if isinstance(v, str)}

    def _write_all(self, data: Dict[str, str]) -> None:
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.path.parent), prefix=f".{self.path.name}.", suffix=".tmp")
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as handle:
                    json.dump(data, handle)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except OSError as e:
            raise StorageError(self.name, f"Failed to write {self.path}", {"error": str(e)})

    def get(self, key: str) -> Optional[str]:
        return self._read_all().get(key)

    def set(self, key: str, value: str) -> None:
        data = self._read_all()
        data[key] = value
        self._write_all(data)

    def remove(self, key: str) -> None:
        data = self._read_all()
        if key in data:
            del data[key]
            self._write_all(data)
