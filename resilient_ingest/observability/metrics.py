"""
Prometheus metrics for monitoring ingestion.

Defines and exposes metrics for:
- Per-source fetch outcomes and latency
- Response cache hits, misses and backend errors
- Dedup filtering
- Circuit breaker state
- Rate limiter waits

Metrics are exposed via HTTP endpoint for Prometheus scraping.
"""

import logging

from prometheus_client import (
    REGISTRY,
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from resilient_ingest.config.settings import get_settings
from resilient_ingest.resilience.circuit_breaker import CircuitState

logger = logging.getLogger(__name__)

# Buckets for latency histograms (in seconds)
LATENCY_BUCKETS = (0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0, 60.0)

# Numeric encoding for the circuit state gauge
CIRCUIT_STATE_VALUES = {
    CircuitState.CLOSED: 0,
    CircuitState.HALF_OPEN: 1,
    CircuitState.OPEN: 2,
}


class MetricsCollector:
    """
    Prometheus metrics collector for the ingestion client.

    Usage:
        metrics = get_metrics()
        metrics.start_server()

        metrics.record_source_fetch("feed", "fetched", count=5, latency=0.8)
        metrics.record_cache("api", "hit")
    """

    def __init__(self):
        """Initialize Prometheus metrics."""

        self.source_fetches = Counter(
            "resilient_ingest_source_fetches_total",
            "Per-source fetch outcomes",
            ["source_type", "status"],  # status: cached, fetched, failed
        )

        self.materials_ingested = Counter(
            "resilient_ingest_materials_ingested_total",
            "Materials returned by sources (before dedup)",
            ["source_type"],
        )

        self.fetch_latency = Histogram(
            "resilient_ingest_fetch_latency_seconds",
            "Time to fetch one source, including retries and waits",
            ["source_type"],
            buckets=LATENCY_BUCKETS,
        )

        self.cache_requests = Counter(
            "resilient_ingest_cache_requests_total",
            "Response cache lookups",
            ["source_type", "result"],  # result: hit, miss, error
        )

        self.duplicates_filtered = Counter(
            "resilient_ingest_duplicates_filtered_total",
            "Materials dropped because the channel already saw them",
        )

        self.duplicate_fallbacks = Counter(
            "resilient_ingest_duplicate_fallbacks_total",
            "Ingestions that returned duplicates because nothing fresh was found",
        )

        self.circuit_state = Gauge(
            "resilient_ingest_circuit_state",
            "Circuit breaker state (0=closed, 1=half_open, 2=open)",
            ["provider"],
        )

        self.circuit_transitions = Counter(
            "resilient_ingest_circuit_transitions_total",
            "Circuit breaker state transitions",
            ["provider", "state"],
        )

        self.rate_limit_wait = Histogram(
            "resilient_ingest_rate_limit_wait_seconds",
            "Time spent waiting for a rate limiter token",
            ["provider"],
            buckets=(0.0, 0.1, 0.5, 1.0, 5.0, 15.0, 60.0),
        )

        self.ingestions = Counter(
            "resilient_ingest_ingestions_total",
            "Ingestion calls",
            ["status"],  # status: success, empty, error
        )

        logger.info("Prometheus metrics initialized")

    def start_server(self, port: int | None = None) -> None:
        """
        Start Prometheus metrics HTTP server.

        Args:
            port: Port to expose metrics on (default from settings)
        """
        settings = get_settings()
        port = port or settings.metrics_port

        start_http_server(port, registry=REGISTRY)
        logger.info(f"Prometheus metrics server started on port {port}")

    # Convenience methods

    def record_source_fetch(
        self,
        source_type: str,
        status: str,
        count: int = 0,
        latency: float | None = None,
    ) -> None:
        """
        Record the outcome of one source.

        Args:
            source_type: api, feed or scrape
            status: cached, fetched or failed
            count: Materials returned by the source
            latency: Optional wall time for the source in seconds
        """
        self.source_fetches.labels(source_type=source_type, status=status).inc()
        if count:
            self.materials_ingested.labels(source_type=source_type).inc(count)
        if latency is not None:
            self.fetch_latency.labels(source_type=source_type).observe(latency)

    def record_cache(self, source_type: str, result: str) -> None:
        """
        Record a cache lookup.

        Args:
            source_type: api, feed or scrape
            result: hit, miss or error
        """
        self.cache_requests.labels(source_type=source_type, result=result).inc()

    def record_duplicates(self, filtered: int, fallback: bool = False) -> None:
        """Record dedup filtering for one ingestion."""
        if filtered:
            self.duplicates_filtered.inc(filtered)
        if fallback:
            self.duplicate_fallbacks.inc()

    def record_circuit_state(
        self,
        provider: str,
        old_state: CircuitState,
        new_state: CircuitState,
    ) -> None:
        """
        Record a circuit breaker transition.

        Signature matches the breaker's on_state_change hook.
        """
        self.circuit_state.labels(provider=provider).set(CIRCUIT_STATE_VALUES[new_state])
        self.circuit_transitions.labels(provider=provider, state=new_state.value).inc()

    def record_rate_limit_wait(self, provider: str, waited: float) -> None:
        """Record time spent waiting on a provider's rate limiter."""
        self.rate_limit_wait.labels(provider=provider).observe(waited)

    def record_ingestion(self, status: str) -> None:
        """Record an ingestion call outcome (success, empty, error)."""
        self.ingestions.labels(status=status).inc()


# Global metrics instance
_metrics: MetricsCollector | None = None


def get_metrics() -> MetricsCollector:
    """Get global metrics collector instance."""
    global _metrics
    if _metrics is None:
        _metrics = MetricsCollector()
    return _metrics
