"""
Base provider interface and shared text utilities.

A provider turns one source descriptor into a list of SourceMaterial using a
single outbound request. Providers do not retry, rate limit, cache or
dedup; the ingestion service wraps every fetch() call with those concerns.
fetch() may therefore be called several times for the same source within
one ingestion.
"""

import hashlib
import html
import logging
import re
from abc import ABC, abstractmethod

from bs4 import BeautifulSoup

from resilient_ingest.config.settings import Settings, get_settings
from resilient_ingest.ingestion.http_client import ProviderHTTPClient
from resilient_ingest.ingestion.schemas import (
    SourceDescriptor,
    SourceMaterial,
    SourceType,
    extract_domain,
)
from resilient_ingest.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)

__all__ = [
    "BaseProvider",
    "clean_text",
    "extract_domain",
    "html_to_text",
    "stable_hash",
]


class BaseProvider(ABC):
    """
    Abstract base class for source providers.

    Subclasses must implement:
        - source_type: SourceType handled by the provider
        - fetch(): Request the source and normalize the response

    Subclasses may set retry_policy; None means the service default applies.
    """

    retry_policy: RetryPolicy | None = None

    def __init__(
        self,
        http: ProviderHTTPClient,
        settings: Settings | None = None,
        retry_policy: RetryPolicy | None = None,
    ):
        """
        Initialize provider.

        Args:
            http: Shared HTTP client
            settings: Application settings (defaults to get_settings())
            retry_policy: Override for the provider's retry policy
        """
        self._http = http
        self._settings = settings or get_settings()
        if retry_policy is not None:
            self.retry_policy = retry_policy

    @property
    @abstractmethod
    def source_type(self) -> SourceType:
        """Return the source type this provider handles."""
        ...

    @property
    def name(self) -> str:
        """Human-readable provider name."""
        return f"{self.source_type.value}_provider"

    @property
    def timeout(self) -> float:
        """Request timeout for this provider's source type."""
        return self._settings.timeout_for(self.source_type)

    @abstractmethod
    async def fetch(
        self,
        source: SourceDescriptor,
        channel_id: str,
    ) -> list[SourceMaterial]:
        """
        Fetch one source and normalize it.

        Args:
            source: Descriptor whose type matches source_type
            channel_id: Channel the materials are ingested for

        Returns:
            Materials in source order (may be empty)

        Raises:
            ProviderError: Classified as transient or permanent
        """
        ...


def clean_text(text: str) -> str:
    """
    Clean text content by collapsing whitespace and dropping control characters.

    Args:
        text: Raw text content

    Returns:
        Cleaned text
    """
    text = " ".join(text.split())
    text = re.sub(r'[\x00-\x08\x0b\x0c\x0e-\x1f\x7f]', '', text)
    return text.strip()


def stable_hash(value: str) -> str:
    """
    Deterministic 16-hex-character SHA-256 prefix of a string.

    Unlike the built-in hash(), stable across processes, so material IDs
    derived from it survive restarts.
    """
    return hashlib.sha256(value.encode("utf-8")).hexdigest()[:16]


def html_to_text(html_content: str) -> str:
    """
    Extract clean text from an HTML fragment.

    Args:
        html_content: Raw HTML string

    Returns:
        Plain text with scripts, styles and page chrome removed
    """
    if not html_content:
        return ""

    soup = BeautifulSoup(html_content, "html.parser")

    for element in soup(["script", "style", "nav", "footer", "header"]):
        element.decompose()

    text = soup.get_text(separator=" ")
    text = html.unescape(text)
    return clean_text(text)
