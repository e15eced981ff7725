"""
Process-level observability setup.

Call once at startup, before building an IngestionService:

    from resilient_ingest.observability.bootstrap import setup_observability

    setup_observability(metrics=True)
"""

from resilient_ingest.config.settings import Settings, get_settings
from resilient_ingest.observability.logging import setup_logging
from resilient_ingest.observability.metrics import get_metrics
from resilient_ingest.observability.tracing import setup_tracing


def setup_observability(settings: Settings | None = None, metrics: bool = False) -> None:
    """
    Configure logging, and tracing when an OTLP endpoint is set.

    Args:
        settings: Application settings (defaults to get_settings())
        metrics: Also start the Prometheus metrics server on settings.metrics_port
    """
    settings = settings or get_settings()

    setup_logging(settings)

    if settings.tracing_enabled:
        setup_tracing(
            service_name=settings.otel_service_name,
            otlp_endpoint=settings.otel_exporter_otlp_endpoint,
        )

    if metrics:
        get_metrics().start_server(settings.metrics_port)
