"""Tests for the ingestion exception hierarchy."""

import pytest

from resilient_ingest.errors import (
    CircuitOpenError,
    IngestError,
    NoDataIngestedError,
    PermanentProviderError,
    ProviderError,
    RateLimitError,
    TransientProviderError,
)


@pytest.mark.parametrize(
    "exc",
    [
        PermanentProviderError("bad key", provider="polygon", status_code=401),
        TransientProviderError("timeout", provider="polygon"),
        RateLimitError("slow down", provider="polygon", status_code=429, retry_after=5),
        CircuitOpenError("api:polygon"),
        NoDataIngestedError("ch1", 2),
    ],
)
def test_all_errors_are_ingest_errors(exc):
    assert isinstance(exc, IngestError)


def test_rate_limit_is_transient():
    error = RateLimitError("slow down", provider="b", status_code=429, retry_after=2.5)

    assert isinstance(error, TransientProviderError)
    assert isinstance(error, ProviderError)
    assert error.retry_after == 2.5
    assert error.status_code == 429


def test_circuit_open_message():
    assert str(CircuitOpenError("api:b")) == 'Circuit breaker open for "api:b", source unavailable'
    assert str(CircuitOpenError("api:b", retry_in=12.34)).endswith("(next probe in 12.3s)")


def test_no_data_message():
    error = NoDataIngestedError("ch1", 3)

    assert str(error) == 'No data ingested for channel "ch1" from 3 sources'
    assert error.channel_id == "ch1"
    assert error.source_count == 3
