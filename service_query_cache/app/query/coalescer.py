"""
In-flight request coalescing.
"""

import asyncio
from typing import Any, Dict

from shared.logging import get_logger

from .models import FetchFn


class RequestCoalescer:
    """Shares one in-flight fetch between concurrent callers of the same key.

    The shared task is shielded, so a caller that gets cancelled (a closed
    subscription, a cancelled backoff) never cancels the fetch for the rest.
    """

    def __init__(self):
        self.logger = get_logger("query_cache.coalescer")
        self._in_flight: Dict[str, asyncio.Task] = {}

    async def run(self, key: str, fetch_fn: FetchFn) -> Any:
        task = self._in_flight.get(key)
        if task is None or task.done():
            task = asyncio.ensure_future(fetch_fn())
            self._in_flight[key] = task
            task.add_done_callback(lambda t, k=key: self._forget(k, t))
        else:
            self.logger.debug("Joining in-flight fetch", key=key)
        return await asyncio.shield(task)

    def _forget(self, key: str, task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Consume the outcome so an abandoned failure is not reported as unretrieved
        if not task.cancelled():
            task.exception()

    def in_flight(self, key: str) -> bool:
        task = self._in_flight.get(key)
        return task is not None and not task.done()

    def __len__(self) -> int:
        return len(self._in_flight)
