"""Metrics collection for the registry.

Provides a thin convenience wrapper around ``prometheus_client`` so the
service and jobs consistently record HTTP, search, embedding, store, and
maintenance metrics.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per process (can be injected if needed)
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name used for scoping/labels if desired
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.request_count = Counter(
            'http_requests_total',
            'Total HTTP requests',
            ['method', 'endpoint', 'status'],
            registry=self.registry
        )

        self.request_duration = Histogram(
            'http_request_duration_seconds',
            'HTTP request duration',
            ['method', 'endpoint'],
            registry=self.registry
        )

        self.search_requests = Counter(
            'registry_search_requests_total',
            'Total search resolutions by strategy',
            ['strategy'],
            registry=self.registry
        )

        self.search_duration = Histogram(
            'registry_search_duration_seconds',
            'Search resolution duration',
            ['strategy'],
            registry=self.registry
        )

        self.search_fallbacks = Counter(
            'registry_search_fallbacks_total',
            'Searches degraded to keyword matching',
            ['reason'],
            registry=self.registry
        )

        self.embedding_requests = Counter(
            'registry_embedding_requests_total',
            'Total embedding requests by outcome',
            ['purpose', 'outcome'],
            registry=self.registry
        )

        self.embedding_duration = Histogram(
            'registry_embedding_duration_seconds',
            'Embedding request duration',
            ['purpose'],
            registry=self.registry
        )

        self.store_operations = Counter(
            'registry_store_operations_total',
            'Total company store operations',
            ['operation', 'status'],
            registry=self.registry
        )

        self.maintenance_updates = Counter(
            'registry_embedding_maintenance_total',
            'Companies processed by embedding maintenance',
            ['mode', 'status'],
            registry=self.registry
        )

    def record_http_request(
        self,
        method: str,
        endpoint: str,
        status: int,
        duration: float
    ) -> None:
        """Record HTTP request metrics.

        duration is expected in seconds to match Prometheus histogram units.
        """
        self.request_count.labels(method=method, endpoint=endpoint, status=status).inc()
        self.request_duration.labels(method=method, endpoint=endpoint).observe(duration)

    def record_search(self, strategy: str, duration: float) -> None:
        self.search_requests.labels(strategy=strategy).inc()
        self.search_duration.labels(strategy=strategy).observe(duration)

    def record_search_fallback(self, reason: str) -> None:
        self.search_fallbacks.labels(reason=reason).inc()

    def record_embedding(self, purpose: str, outcome: str, duration: float) -> None:
        """Record one embedding request (``outcome`` is ``ok`` or a failure reason)."""
        self.embedding_requests.labels(purpose=purpose, outcome=outcome).inc()
        self.embedding_duration.labels(purpose=purpose).observe(duration)

    def record_store_operation(self, operation: str, status: str) -> None:
        self.store_operations.labels(operation=operation, status=status).inc()

    def record_maintenance(self, mode: str, status: str) -> None:
        self.maintenance_updates.labels(mode=mode, status=status).inc()

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str) -> MetricsCollector:
    """Get or create the process-wide metrics collector.

    Returns a singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
    return _metrics_collector
