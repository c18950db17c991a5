"""
Integration tests for the query client: both caches, both query front-ends
and persistence across a simulated restart.
"""

import json

import pytest
from prometheus_client import CollectorRegistry

from service_query_cache.app.client import (
    QueryClient,
    create_query_client,
    get_query_client,
    reset_query_client,
)
from service_query_cache.app.storage import FileKeyValueStore
from shared.test_helpers import FlakyFetcher, VirtualClock, create_test_campaigns, drive, make_settings


class TestQueryClientFlow:
    """End-to-end flows through a QueryClient."""

    @pytest.fixture
    def clock(self):
        return VirtualClock()

    @pytest.fixture
    def file_settings(self, tmp_path):
        return make_settings(storage_backend="file", storage_path=str(tmp_path / "storage.json"))

    @pytest.mark.asyncio
    async def test_persisted_data_survives_restart(self, file_settings, clock, tmp_path):
        first = QueryClient(file_settings, clock=clock)
        sub = first.use_cached_query("campaigns", FlakyFetcher(results=[create_test_campaigns()]))
        await sub.wait()
        private = first.use_cached_query("donor:private:wallet", FlakyFetcher(results=[{"addr": "0x1"}]))
        await private.wait()
        first.lru.set("lru-only", 1)
        await first.close()

        clock.tick(5)
        second = QueryClient(file_settings, clock=clock)
        fetcher = FlakyFetcher()
        state = await second.adapter.query("campaigns", fetcher)

        assert fetcher.calls == 0
        assert state.data == create_test_campaigns()
        assert second.persisted.get_cache("donor:private:wallet") is None
        assert second.lru.get("lru-only") is None

        snapshot = json.loads(json.loads((tmp_path / "storage.json").read_text())["api-cache-storage"])
        assert snapshot["version"] == 1
        assert list(snapshot["cache"]) == ["campaigns"]
        await second.close()

    @pytest.mark.asyncio
    async def test_expired_entries_swept_on_startup(self, file_settings, clock):
        first = QueryClient(file_settings, clock=clock)
        first.persisted.set_cache("short", 1, ttl=1)
        first.persisted.set_cache("long", 2, ttl=100)

        clock.tick(10)
        second = QueryClient(file_settings, clock=clock)

        assert second.persisted.keys() == ["long"]

    @pytest.mark.asyncio
    async def test_use_query_uses_settings_defaults(self, clock):
        settings = make_settings(query_retry=1, query_retry_delay=2.0, lru_max_size=2)
        client = QueryClient(settings, clock=clock)
        fetcher = FlakyFetcher(failures=5)

        sub = client.use_query("campaigns", fetcher)
        await drive(clock, sub.wait())

        assert fetcher.calls == 2
        assert clock.sleeps == [2.0]
        assert sub.is_error
        await client.close()
        assert client.stats()["subscriptions"] == 0

    @pytest.mark.asyncio
    async def test_engine_and_adapter_use_separate_caches(self, clock):
        client = QueryClient(make_settings(), clock=clock)

        await client.engine.query("campaigns", FlakyFetcher(results=["from-engine"]))
        state = await client.adapter.query("campaigns", FlakyFetcher(results=["from-adapter"]))

        assert state.data == "from-adapter"
        assert client.lru.get("campaigns") == "from-engine"
        assert client.persisted.get_cache("campaigns") == "from-adapter"

    @pytest.mark.asyncio
    async def test_focus_refetch_through_client(self, clock):
        client = QueryClient(make_settings(), clock=clock)
        fetcher = FlakyFetcher(results=["a", "b"])
        sub = client.use_query("campaigns", fetcher, refetch_on_window_focus=True)
        await sub.wait()

        assert client.notify_focus() == 1
        await sub.wait()

        assert fetcher.calls == 2
        assert sub.data == "b"
        await client.close()

    @pytest.mark.asyncio
    async def test_lru_bound_applies_to_engine(self, clock):
        client = QueryClient(make_settings(lru_max_size=2), clock=clock)

        for key in ("a", "b", "c"):
            await client.engine.query(key, FlakyFetcher(results=[key]))

        assert client.lru.keys() == ["b", "c"]

    def test_clients_are_isolated(self):
        registry = CollectorRegistry()
        first = create_query_client(make_settings(), registry=registry)
        second = create_query_client(make_settings())

        first.persisted.set_cache("k", 1)

        assert second.persisted.get_cache("k") is None
        assert first.storage is not second.storage

    def test_process_wide_client(self, monkeypatch):
        monkeypatch.setenv("QUERY_CACHE_STORAGE_BACKEND", "memory")
        monkeypatch.setenv("QUERY_CACHE_LRU_MAX_SIZE", "7")
        reset_query_client()
        try:
            client = get_query_client()
            assert get_query_client() is client
            assert client.lru.max_size == 7

            reset_query_client()
            assert get_query_client() is not client
        finally:
            reset_query_client()

    def test_file_backend_wired_from_settings(self, file_settings):
        client = QueryClient(file_settings)
        assert isinstance(client.storage, FileKeyValueStore)
        assert client.stats()["persisted"]["storage_backend"] == "file"
