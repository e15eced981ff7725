"""Exception hierarchy for the ingestion client.

All domain-specific exceptions inherit from ``IngestError`` so callers can
catch the entire family with a single ``except`` clause. Cache and dedup
backend failures have no exception type here; they are absorbed where they occur.
"""

from __future__ import annotations


class IngestError(Exception):
    """Base exception for all ingestion errors."""


# ---------------------------------------------------------------------------
# Provider errors
# ---------------------------------------------------------------------------


class ProviderError(IngestError):
    """A provider request failed."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code


class PermanentProviderError(ProviderError):
    """Retrying cannot help: bad credentials, unknown resource, malformed request."""


class TransientProviderError(ProviderError):
    """Timeout, 5xx, dropped connection: a later attempt may succeed."""

    def __init__(
        self,
        message: str,
        provider: str | None = None,
        status_code: int | None = None,
        retry_after: float | None = None,
    ) -> None:
        super().__init__(message, provider=provider, status_code=status_code)
        self.retry_after = retry_after


class RateLimitError(TransientProviderError):
    """The provider answered 429; ``retry_after`` holds its hint in seconds."""


# ---------------------------------------------------------------------------
# Resilience errors
# ---------------------------------------------------------------------------


class CircuitOpenError(IngestError):
    """Raised without any I/O while a provider's circuit is open."""

    def __init__(self, provider: str, retry_in: float | None = None) -> None:
        message = f'Circuit breaker open for "{provider}", source unavailable'
        if retry_in is not None:
            message += f" (next probe in {retry_in:.1f}s)"
        super().__init__(message)
        self.provider = provider
        self.retry_in = retry_in


# ---------------------------------------------------------------------------
# Ingestion errors
# ---------------------------------------------------------------------------


class NoDataIngestedError(IngestError):
    """Every source failed or returned nothing for a channel."""

    def __init__(self, channel_id: str, source_count: int) -> None:
        super().__init__(
            f'No data ingested for channel "{channel_id}" from {source_count} sources'
        )
        self.channel_id = channel_id
        self.source_count = source_count
