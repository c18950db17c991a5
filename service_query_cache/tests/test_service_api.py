"""
Unit tests for the query cache maintenance service.
"""

import pytest
from unittest.mock import MagicMock
from fastapi.testclient import TestClient

from service_query_cache.app.client import QueryClient
from service_query_cache.app.main import QueryCacheService, create_app
from shared.test_helpers import VirtualClock, create_test_campaigns, make_settings


class TestQueryCacheService:
    """Test cases for QueryCacheService."""

    @pytest.fixture
    def clock(self):
        return VirtualClock()

    @pytest.fixture
    def settings(self):
        return make_settings()

    @pytest.fixture
    def service(self, settings, clock):
        """Service over a client driven by a virtual clock."""
        return QueryCacheService(settings, client=QueryClient(settings, clock=clock))

    @pytest.fixture
    def client(self, service):
        """Create test client."""
        return TestClient(service.app)

    def test_root_endpoint(self, client):
        response = client.get("/")
        assert response.status_code == 200
        data = response.json()
        assert data["service"] == "query_cache"
        assert data["version"] == "1.0.0"

    def test_health_endpoint(self, client):
        response = client.get("/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert data["dependencies"] == {"storage": "ok"}

    def test_health_reports_unavailable_storage(self, settings):
        storage = MagicMock()
        storage.name = "redis"
        storage.get.return_value = None
        storage.health_check.return_value = False
        service = QueryCacheService(settings, client=QueryClient(settings, storage=storage))

        response = TestClient(service.app).get("/health")

        assert response.status_code == 503
        assert response.json()["status"] == "degraded"
        assert response.json()["dependencies"] == {"storage": "unavailable"}

    def test_write_and_read_persisted_entry(self, client, clock):
        response = client.put("/cache/persisted/campaigns", json={"data": create_test_campaigns(), "ttl": 60})
        assert response.status_code == 204

        response = client.get("/cache/persisted/campaigns")
        assert response.status_code == 200
        data = response.json()
        assert data["key"] == "campaigns"
        assert data["data"] == create_test_campaigns()
        assert data["ttl"] == 60
        assert data["stored_at"] == clock.now()
        assert data["persisted"] is True

    def test_sensitive_entry_reported_as_not_persisted(self, client):
        client.put("/cache/persisted/private-notes", json={"data": "x"})

        assert client.get("/cache/persisted/private-notes").json()["persisted"] is False

    def test_missing_entry_returns_404(self, client):
        response = client.get("/cache/persisted/missing")

        assert response.status_code == 404
        data = response.json()
        assert data["code"] == "CACHE_KEY_NOT_FOUND"
        assert "missing" in data["message"]

    def test_expired_entry_returns_404(self, client, clock):
        client.put("/cache/persisted/short", json={"data": 1, "ttl": 1})
        clock.tick(2)

        assert client.get("/cache/persisted/short").status_code == 404

    def test_invalid_ttl_rejected(self, client):
        response = client.put("/cache/persisted/k", json={"data": 1, "ttl": 0})
        assert response.status_code == 422

    def test_delete_and_clear(self, client, service):
        client.put("/cache/persisted/a", json={"data": 1})
        client.put("/cache/persisted/b", json={"data": 2})

        assert client.delete("/cache/persisted/a").status_code == 204
        assert client.get("/cache/persisted/a").status_code == 404

        assert client.delete("/cache/persisted").status_code == 204
        assert service.client.persisted.size() == 0

    def test_sweep(self, client, clock):
        client.put("/cache/persisted/short", json={"data": 1, "ttl": 1})
        client.put("/cache/persisted/long", json={"data": 2, "ttl": 100})
        clock.tick(5)

        response = client.post("/cache/persisted/sweep")

        assert response.status_code == 200
        assert response.json() == {"removed": 1, "remaining": 1}

    def test_stats(self, client, service):
        service.client.lru.set("k", "v")
        client.put("/cache/persisted/a", json={"data": 1})

        data = client.get("/cache/stats").json()

        assert data["lru"] == {"size": 1, "max_size": 100, "survives_restart": False}
        assert data["persisted"]["size"] == 1
        assert data["persisted"]["storage_backend"] == "memory"
        assert data["subscriptions"] == 0

    def test_memory_invalidation(self, client, service):
        service.client.lru.set("k", "v")

        response = client.delete("/cache/memory/k")

        assert response.status_code == 200
        assert response.json() == {"key": "k", "refetches": 0}
        assert service.client.lru.get("k") is None

    def test_clear_memory(self, client, service):
        service.client.lru.set("a", 1)
        service.client.lru.set("b", 2)

        assert client.delete("/cache/memory").status_code == 204
        assert service.client.lru.size() == 0

    def test_focus_without_listeners(self, client):
        response = client.post("/focus")
        assert response.json() == {"notified": 0}

    def test_focus_route_reaches_engine_bus(self, client, service):
        assert service.client.engine.focus_bus is service.client.focus_bus

        unsubscribe = service.client.engine.focus_bus.add_listener(lambda: None)
        assert client.post("/focus").json() == {"notified": 1}
        unsubscribe()


class TestServiceMetrics:
    """The service exposes HTTP and cache metrics on its own registry."""

    def test_metrics_endpoint(self):
        app = create_app(make_settings())
        client = TestClient(app)

        client.put("/cache/persisted/a", json={"data": 1})
        client.get("/cache/persisted/a")
        client.get("/cache/persisted/missing")
        response = client.get("/metrics")

        assert response.status_code == 200
        body = response.text
        assert "http_requests_total" in body
        assert 'query_cache_cache_hits_total{cache_type="persisted"} 1.0' in body
        assert 'query_cache_cache_misses_total{cache_type="persisted"}' in body

    def test_services_do_not_share_registries(self):
        first = TestClient(create_app(make_settings()))
        second = TestClient(create_app(make_settings()))

        first.put("/cache/persisted/a", json={"data": 1})
        first.get("/cache/persisted/a")

        assert 'query_cache_cache_hits_total{cache_type="persisted"}' in first.get("/metrics").text
        assert 'query_cache_cache_hits_total{cache_type="persisted"}' not in second.get("/metrics").text
