"""Metrics collection for the help-center engine.

Thin convenience wrapper around ``prometheus_client`` so the components record
search, embedding and ordering metrics with consistent label sets.

Design notes
- Metrics and labels are predeclared to avoid cardinality explosions
- A single registry is kept per collector (can be injected for testing)
"""

from typing import Optional

from prometheus_client import CollectorRegistry, Counter, Histogram, generate_latest
import structlog

logger = structlog.get_logger("helpcenter.metrics")


class MetricsCollector:
    """Centralized metrics collection.

    Parameters
    - service_name: Logical name of the owning service
    - registry: Optional custom ``CollectorRegistry`` (e.g. for testing)
    """

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        self.registry = registry or CollectorRegistry()

        self.search_requests = Counter(
            'helpcenter_search_requests_total',
            'Total article search requests',
            ['query_type'],
            registry=self.registry
        )

        self.search_duration = Histogram(
            'helpcenter_search_duration_seconds',
            'Article search duration',
            ['query_type'],
            registry=self.registry
        )

        self.embedding_regenerations = Counter(
            'helpcenter_embedding_regenerations_total',
            'Article embedding regenerations partitioned by status',
            ['status'],
            registry=self.registry
        )

        self.embedding_duration = Histogram(
            'helpcenter_embedding_regeneration_seconds',
            'Article embedding regeneration duration',
            registry=self.registry
        )

        self.embedding_terms = Counter(
            'helpcenter_embedding_terms_stored_total',
            'Embedding terms written to the store',
            registry=self.registry
        )

        self.position_assignments = Counter(
            'helpcenter_position_assignments_total',
            'Article positions computed by the position manager',
            ['reason'],
            registry=self.registry
        )

        self.bulk_reposition_failures = Counter(
            'helpcenter_bulk_reposition_failures_total',
            'Entries of a bulk reposition that could not be applied',
            registry=self.registry
        )

    def record_search(self, query_type: str, duration: float) -> None:
        """Record search metrics.

        ``duration`` is in seconds to match Prometheus histogram units.
        """
        self.search_requests.labels(query_type=query_type).inc()
        self.search_duration.labels(query_type=query_type).observe(duration)

    def record_embedding_regeneration(
        self,
        status: str,
        duration: float,
        term_count: int = 0
    ) -> None:
        """Record the outcome of one article regeneration."""
        self.embedding_regenerations.labels(status=status).inc()
        self.embedding_duration.observe(duration)
        if term_count:
            self.embedding_terms.inc(term_count)

    def record_position_assignment(self, reason: str) -> None:
        self.position_assignments.labels(reason=reason).inc()

    def record_bulk_reposition_failures(self, count: int) -> None:
        if count:
            self.bulk_reposition_failures.inc(count)

    def get_metrics(self) -> str:
        """Get metrics in Prometheus exposition format for scraping."""
        return generate_latest(self.registry).decode('utf-8')


# Global metrics collector instance
_metrics_collector: Optional[MetricsCollector] = None


def get_metrics_collector(service_name: str = "helpcenter") -> MetricsCollector:
    """Get or create the process-wide metrics collector.

    Returns a singleton to avoid duplicate collectors/labels.
    """
    global _metrics_collector
    if _metrics_collector is None:
        _metrics_collector = MetricsCollector(service_name)
        logger.debug("Created metrics collector", service=service_name)
    return _metrics_collector
