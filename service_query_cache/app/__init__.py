"""
Query cache service package.

Data-fetching and caching layer for the dashboard UI:
- app.storage: persistent key-value media (memory, JSON file, Redis).
- app.caching: persisted TTL store and bounded LRU cache.
- app.query: resilient query engine and cached-query adapter.
- app.client: ``QueryClient`` wiring settings, caches and query front-ends.
- app.main: FastAPI maintenance surface.

All work runs on one asyncio event loop; suspension happens only while a
fetch or a backoff/interval sleep is awaited.
"""
