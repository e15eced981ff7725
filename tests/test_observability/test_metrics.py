"""Tests for Prometheus metrics collection."""

from prometheus_client import REGISTRY

from resilient_ingest.observability.metrics import get_metrics
from resilient_ingest.resilience.circuit_breaker import CircuitState


def _value(name: str, labels: dict[str, str] | None = None) -> float:
    return REGISTRY.get_sample_value(name, labels or {}) or 0.0


class TestMetricsCollector:
    """Tests for MetricsCollector (shared global instance)."""

    def test_singleton(self):
        assert get_metrics() is get_metrics()

    def test_record_source_fetch(self):
        metrics = get_metrics()
        labels = {"source_type": "scrape", "status": "fetched"}
        before = _value("resilient_ingest_source_fetches_total", labels)
        before_items = _value(
            "resilient_ingest_materials_ingested_total", {"source_type": "scrape"}
        )

        metrics.record_source_fetch("scrape", "fetched", count=3, latency=0.4)

        assert _value("resilient_ingest_source_fetches_total", labels) == before + 1
        assert _value(
            "resilient_ingest_materials_ingested_total", {"source_type": "scrape"}
        ) == before_items + 3

    def test_record_cache(self):
        metrics = get_metrics()
        labels = {"source_type": "api", "result": "hit"}
        before = _value("resilient_ingest_cache_requests_total", labels)

        metrics.record_cache("api", "hit")

        assert _value("resilient_ingest_cache_requests_total", labels) == before + 1

    def test_record_circuit_state(self):
        metrics = get_metrics()

        metrics.record_circuit_state("metrics-test", CircuitState.CLOSED, CircuitState.OPEN)
        assert _value("resilient_ingest_circuit_state", {"provider": "metrics-test"}) == 2

        metrics.record_circuit_state("metrics-test", CircuitState.OPEN, CircuitState.HALF_OPEN)
        assert _value("resilient_ingest_circuit_state", {"provider": "metrics-test"}) == 1
        assert _value(
            "resilient_ingest_circuit_transitions_total",
            {"provider": "metrics-test", "state": "open"},
        ) == 1

    def test_record_duplicates(self):
        metrics = get_metrics()
        before = _value("resilient_ingest_duplicates_filtered_total")
        before_fallbacks = _value("resilient_ingest_duplicate_fallbacks_total")

        metrics.record_duplicates(4, fallback=True)

        assert _value("resilient_ingest_duplicates_filtered_total") == before + 4
        assert _value("resilient_ingest_duplicate_fallbacks_total") == before_fallbacks + 1
