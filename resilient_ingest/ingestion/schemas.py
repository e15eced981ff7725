"""
Source descriptors and the canonical material schema.

Descriptors are what a caller hands to the ingestion service: one per
configured data source, tagged by ``type``. Providers turn a descriptor into
a list of SourceMaterial, the unit every downstream consumer works with.

CRITICAL: SourceMaterial is serialized into the response cache. Renaming a
field invalidates every cached entry (they decode as misses until expiry).
"""

import json
from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Literal, Union
from urllib.parse import urlparse

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter


def _utc_now() -> datetime:
    """Return current UTC time with timezone info."""
    return datetime.now(timezone.utc)


def extract_domain(url: str) -> str:
    """Hostname of a URL without a leading ``www.``; ``unknown`` if there is none."""
    hostname = urlparse(url).hostname
    if not hostname:
        return "unknown"
    return hostname.removeprefix("www.")


class SourceType(str, Enum):
    """Supported data source kinds."""

    API = "api"
    FEED = "feed"
    SCRAPE = "scrape"


class _Source(BaseModel):
    model_config = ConfigDict(frozen=True)

    @property
    def source_type(self) -> SourceType:
        return SourceType(self.type)  # type: ignore[attr-defined]


class ApiSource(_Source):
    """A JSON HTTP API endpoint from a named provider."""

    type: Literal["api"] = "api"
    provider: str = Field(..., min_length=1, description="Provider name, e.g. 'polygon'")
    endpoint: str = Field(..., min_length=1, description="Absolute endpoint URL")
    headers: dict[str, str] = Field(default_factory=dict)
    params: dict[str, str] = Field(default_factory=dict)
    rate_limit: int | None = Field(
        default=None,
        gt=0,
        description="Requests per minute allowed for this provider",
    )

    @property
    def provider_key(self) -> str:
        return self.provider

    @property
    def cache_identifier(self) -> str:
        params = json.dumps(self.params, sort_keys=True)
        return f"{self.provider}:{self.endpoint}:{params}"


class FeedSource(_Source):
    """An RSS or Atom feed."""

    type: Literal["feed"] = "feed"
    url: str = Field(..., min_length=1)
    max_items: int = Field(default=10, gt=0)

    @property
    def provider_key(self) -> str:
        return extract_domain(self.url)

    @property
    def cache_identifier(self) -> str:
        return self.url


class ScrapeSource(_Source):
    """A web page whose content is extracted with a CSS selector.

    With ``dynamic`` set the page is rendered in a headless browser first,
    optionally waiting for ``wait_for`` to appear, for pages that build
    their content with JavaScript.
    """

    type: Literal["scrape"] = "scrape"
    url: str = Field(..., min_length=1)
    selector: str = Field(..., min_length=1)
    dynamic: bool = False
    wait_for: str | None = Field(default=None, min_length=1)

    @property
    def provider_key(self) -> str:
        return extract_domain(self.url)

    @property
    def cache_identifier(self) -> str:
        return f"{self.url}:{self.selector}"


SourceDescriptor = Annotated[
    Union[ApiSource, FeedSource, ScrapeSource],
    Field(discriminator="type"),
]

_sources_adapter = TypeAdapter(list[SourceDescriptor])


def parse_sources(raw: list[dict[str, Any]]) -> list[SourceDescriptor]:
    """
    Validate plain dicts (e.g. from a channel config) into source descriptors.

    Raises:
        pydantic.ValidationError: If an entry has an unknown type or bad fields
    """
    return _sources_adapter.validate_python(raw)


class SourceMaterial(BaseModel):
    """
    Normalized unit of ingested content.

    Created by providers, owned by the ingestion service once returned,
    never mutated afterwards.
    """

    model_config = ConfigDict(frozen=True, use_enum_values=True)

    id: str = Field(..., description="Unique material ID")
    source_type: SourceType
    provider: str
    title: str | None = None
    content: str = Field(..., description="Text content used for dedup and downstream use")
    url: str | None = None
    published_at: datetime | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    fetched_at: datetime = Field(default_factory=_utc_now)


_materials_adapter = TypeAdapter(list[SourceMaterial])


def materials_to_json(materials: list[SourceMaterial]) -> str:
    """Serialize a list of materials for the cache."""
    return _materials_adapter.dump_json(materials).decode("utf-8")


def materials_from_json(data: str | bytes) -> list[SourceMaterial]:
    """
    Decode a cached list of materials.

    Raises:
        pydantic.ValidationError: If the payload does not match the schema
    """
    return _materials_adapter.validate_json(data)
