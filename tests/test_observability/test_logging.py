"""Tests for structlog configuration."""

import pytest
import structlog
from structlog.testing import capture_logs

from resilient_ingest.config.settings import get_settings
from resilient_ingest.observability.logging import (
    bind_context,
    clear_context,
    get_logger,
    setup_logging,
)
from resilient_ingest.observability.tracing import add_trace_context


@pytest.fixture
def reset_structlog():
    get_settings.cache_clear()
    yield
    structlog.reset_defaults()
    get_settings.cache_clear()


def test_development_uses_console_renderer(monkeypatch, reset_structlog):
    monkeypatch.setenv("ENVIRONMENT", "development")

    setup_logging()

    processors = structlog.get_config()["processors"]
    assert add_trace_context in processors
    assert structlog.contextvars.merge_contextvars in processors
    assert isinstance(processors[-1], structlog.dev.ConsoleRenderer)


def test_production_uses_json_renderer(monkeypatch, reset_structlog):
    monkeypatch.setenv("ENVIRONMENT", "production")

    setup_logging()

    assert isinstance(structlog.get_config()["processors"][-1], structlog.processors.JSONRenderer)


def test_bind_and_clear_context():
    bind_context(job_id="nightly")
    try:
        assert structlog.contextvars.get_contextvars()["job_id"] == "nightly"
    finally:
        clear_context()

    assert "job_id" not in structlog.contextvars.get_contextvars()


def test_get_logger_returns_usable_logger():
    logger = get_logger("test")

    with capture_logs() as logs:
        logger.info("source_fetched", provider="hnrss.org")

    assert logs == [{"event": "source_fetched", "provider": "hnrss.org", "log_level": "info"}]
