"""
Query cache maintenance service.

Exposes the caches of one ``QueryClient`` for inspection and housekeeping:
reading and writing persisted entries, sweeps, invalidation and focus
notifications from the host.
"""

from typing import Any, Dict, Optional

from pydantic import BaseModel, Field

from shared.base_service import BaseService
from shared.config import CacheSettings
from shared.errors import CacheKeyNotFoundError

from .client import QueryClient


class CacheWriteRequest(BaseModel):
    """Body of a persisted cache write."""
    data: Any = Field(..., description="JSON value to cache")
    ttl: Optional[float] = Field(None, gt=0, description="Lifetime in seconds; defaults to the store TTL")


class CacheEntryResponse(BaseModel):
    """A live persisted entry."""
    key: str
    data: Any
    stored_at: float
    ttl: float
    persisted: bool


class QueryCacheService(BaseService):
    """Query cache service implementation."""

    def __init__(self, settings: Optional[CacheSettings] = None, client: Optional[QueryClient] = None):
        super().__init__("query_cache", settings)
        self.client = client or QueryClient(self.config, registry=self.registry)
        self._setup_cache_routes()

    async def _check_dependencies(self) -> Dict[str, str]:
        health_check = getattr(self.client.storage, "health_check", None)
        if not callable(health_check):
            return {"storage": "ok"}
        return {"storage": "ok" if health_check() else "unavailable"}

    def _setup_cache_routes(self):
        """Set up cache routes."""

        @self.app.get("/")
        async def root():
            """Root endpoint."""
            return {
                "service": self.service_name,
                "message": "Query cache maintenance API",
                "version": "1.0.0",
            }

        @self.app.get("/cache/stats")
        async def cache_stats():
            """Sizes and configuration of both caches."""
            return self.client.stats()

        @self.app.get("/cache/persisted/{key}", response_model=CacheEntryResponse)
        async def get_persisted(key: str):
            """Read a live persisted entry."""
            entry = self.client.persisted.get_entry(key)
            if entry is None:
                raise CacheKeyNotFoundError(key)
            return CacheEntryResponse(
                key=key,
                data=entry.data,
                stored_at=entry.stored_at,
                ttl=entry.ttl,
                persisted=self.client.persisted.is_persistable(key),
            )

        @self.app.put("/cache/persisted/{key}", status_code=204)
        async def put_persisted(key: str, request: CacheWriteRequest):
            """Write a persisted entry."""
            self.client.persisted.set_cache(key, request.data, request.ttl)
            self.logger.info("Persisted entry written", key=key, ttl=request.ttl)

        @self.app.delete("/cache/persisted/{key}", status_code=204)
        async def delete_persisted(key: str):
            """Delete one persisted entry."""
            self.client.persisted.clear_cache(key)

        @self.app.delete("/cache/persisted", status_code=204)
        async def clear_persisted():
            """Empty the persisted store."""
            self.client.persisted.clear_all_cache()

        @self.app.post("/cache/persisted/sweep")
        async def sweep_persisted():
            """Remove every expired persisted entry."""
            removed = self.client.persisted.clear_expired_cache()
            return {"removed": removed, "remaining": self.client.persisted.size()}

        @self.app.delete("/cache/memory/{key}")
        async def invalidate_memory(key: str):
            """Invalidate an LRU entry and refetch its live subscriptions."""
            tasks = self.client.engine.invalidate(key)
            return {"key": key, "refetches": len(tasks)}

        @self.app.delete("/cache/memory", status_code=204)
        async def clear_memory():
            """Empty the LRU cache."""
            self.client.lru.clear()
            self.logger.info("LRU cache cleared")

        @self.app.post("/focus")
        async def focus():
            """Deliver a window focus event to subscribed queries."""
            return {"notified": self.client.notify_focus()}


def create_app(settings: Optional[CacheSettings] = None):
    """Create the FastAPI application."""
    service = QueryCacheService(settings)
    return service.app


if __name__ == "__main__":
    QueryCacheService().run()
