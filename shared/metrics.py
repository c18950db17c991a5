"""
Shared metrics configuration for the query cache layer.
"""

from typing import Any, Dict, Optional

from prometheus_client import CollectorRegistry, Counter, Gauge


class CacheMetrics:
    """Prometheus metrics for the caches and the query engine.

    With ``registry=None`` the metrics are not registered anywhere, so any
    number of isolated instances can coexist (tests, per-client metrics).
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None, namespace: Optional[str] = "query_cache"):
        self.registry = registry
        self.namespace = namespace or ""
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up cache and query metrics."""
        self._metrics["cache_hits_total"] = Counter(
            "cache_hits_total",
            "Total cache hits",
            ["cache_type"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["cache_misses_total"] = Counter(
            "cache_misses_total",
            "Total cache misses",
            ["cache_type"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["cache_evictions_total"] = Counter(
            "cache_evictions_total",
            "Total LRU evictions",
            ["cache_type"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["cache_expirations_total"] = Counter(
            "cache_expirations_total",
            "Total entries dropped after their TTL elapsed",
            ["cache_type"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["cache_entries"] = Gauge(
            "cache_entries",
            "Current number of cache entries",
            ["cache_type"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["query_fetch_total"] = Counter(
            "query_fetch_total",
            "Total fetch attempts",
            ["source", "outcome"],
            namespace=self.namespace,
            registry=self.registry
        )

        self._metrics["query_retries_total"] = Counter(
            "query_retries_total",
            "Total scheduled fetch retries",
            namespace=self.namespace,
            registry=self.registry
        )

    def get_metric(self, name: str):
        """Get a metric by name."""
        return self._metrics.get(name)

    def record_hit(self, cache_type: str):
        self._metrics["cache_hits_total"].labels(cache_type=cache_type).inc()

    def record_miss(self, cache_type: str):
        self._metrics["cache_misses_total"].labels(cache_type=cache_type).inc()

    def record_eviction(self, cache_type: str):
        self._metrics["cache_evictions_total"].labels(cache_type=cache_type).inc()

    def record_expiration(self, cache_type: str, count: int = 1):
        if count > 0:
            self._metrics["cache_expirations_total"].labels(cache_type=cache_type).inc(count)

    def set_entries(self, cache_type: str, count: int):
        self._metrics["cache_entries"].labels(cache_type=cache_type).set(count)

    def record_fetch(self, source: str, outcome: str):
        self._metrics["query_fetch_total"].labels(source=source, outcome=outcome).inc()

    def record_retry(self):
        self._metrics["query_retries_total"].inc()
