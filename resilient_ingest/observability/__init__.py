"""Observability layer - logging, metrics, and tracing."""

from resilient_ingest.observability.bootstrap import setup_observability
from resilient_ingest.observability.logging import (
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
)
from resilient_ingest.observability.metrics import MetricsCollector, get_metrics
from resilient_ingest.observability.tracing import get_tracer, setup_tracing

__all__ = [
    "setup_observability",
    "setup_logging",
    "get_logger",
    "bind_context",
    "clear_context",
    "MetricsCollector",
    "get_metrics",
    "setup_tracing",
    "get_tracer",
]
