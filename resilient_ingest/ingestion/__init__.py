"""Data ingestion module - source descriptors, providers, cache, and dedup."""

from resilient_ingest.ingestion.schemas import (
    ApiSource,
    FeedSource,
    ScrapeSource,
    SourceDescriptor,
    SourceMaterial,
    SourceType,
    parse_sources,
)

__all__ = [
    "SourceType",
    "ApiSource",
    "FeedSource",
    "ScrapeSource",
    "SourceDescriptor",
    "SourceMaterial",
    "parse_sources",
]
