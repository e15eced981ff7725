"""Source providers - one per SourceType."""

from resilient_ingest.config.settings import Settings, get_settings
from resilient_ingest.ingestion.http_client import ProviderHTTPClient
from resilient_ingest.ingestion.providers.api import ApiProvider
from resilient_ingest.ingestion.providers.base import BaseProvider
from resilient_ingest.ingestion.providers.feed import FeedProvider, FeedValidationResult
from resilient_ingest.ingestion.providers.scrape import ScrapeProvider
from resilient_ingest.ingestion.schemas import SourceType


def create_default_providers(
    http: ProviderHTTPClient,
    settings: Settings | None = None,
) -> dict[SourceType, BaseProvider]:
    """Build the built-in provider for every source type around a shared HTTP client."""
    settings = settings or get_settings()
    return {
        SourceType.API: ApiProvider(http, settings),
        SourceType.FEED: FeedProvider(http, settings),
        SourceType.SCRAPE: ScrapeProvider(http, settings),
    }


__all__ = [
    "ApiProvider",
    "BaseProvider",
    "FeedProvider",
    "FeedValidationResult",
    "ScrapeProvider",
    "create_default_providers",
]
