"""
JSON HTTP API provider.

Requests the configured endpoint and normalizes the response body into one
material per record. Known providers get a dedicated normalizer that picks
out the record list, a title and useful metadata; anything else falls back
to a generic shape (a list becomes one material per element, an object
becomes a single material).
"""

import json
import logging
from dataclasses import dataclass, field
from typing import Any

from resilient_ingest.errors import TransientProviderError
from resilient_ingest.ingestion.providers.base import BaseProvider, stable_hash
from resilient_ingest.ingestion.schemas import ApiSource, SourceMaterial, SourceType

logger = logging.getLogger(__name__)


@dataclass
class NormalizedRecord:
    """One record extracted from an API response."""

    data: Any
    title: str | None = None
    url: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)


def _record_list(data: Any, *keys: str) -> list[Any]:
    """First present list under keys, else the body itself as a single record."""
    if isinstance(data, dict):
        for key in keys:
            value = data.get(key)
            if value is not None:
                return value if isinstance(value, list) else [value]
        return [data]
    if isinstance(data, list):
        return data
    return [data]


def normalize_polygon(data: Any) -> list[NormalizedRecord]:
    """Market data: results/tickers records titled by ticker symbol."""
    body = data if isinstance(data, dict) else {}
    metadata = {
        "query_count": body.get("queryCount"),
        "results_count": body.get("resultsCount"),
    }

    records = []
    for r in _record_list(data, "results", "tickers"):
        fields = r if isinstance(r, dict) else {}
        records.append(
            NormalizedRecord(
                data=r,
                title=fields.get("T") or fields.get("ticker") or "Market Data",
                metadata=dict(metadata),
            )
        )
    return records


def normalize_spoonacular(data: Any) -> list[NormalizedRecord]:
    """Recipes: results/recipes records with title, source URL and servings."""
    records = []
    for r in _record_list(data, "results", "recipes"):
        fields = r if isinstance(r, dict) else {}
        records.append(
            NormalizedRecord(
                data=r,
                title=fields.get("title"),
                url=fields.get("sourceUrl"),
                metadata={
                    "servings": fields.get("servings"),
                    "ready_in_minutes": fields.get("readyInMinutes"),
                },
            )
        )
    return records


def normalize_generic(data: Any) -> list[NormalizedRecord]:
    if isinstance(data, list):
        return [NormalizedRecord(data=item) for item in data]
    return [NormalizedRecord(data=data)]


NORMALIZERS = {
    "polygon": normalize_polygon,
    "spoonacular": normalize_spoonacular,
}


def normalize_api_response(data: Any, provider: str) -> list[NormalizedRecord]:
    """Dispatch to the provider's normalizer (generic for unknown providers)."""
    return NORMALIZERS.get(provider, normalize_generic)(data)


class ApiProvider(BaseProvider):
    """
    Provider for JSON HTTP APIs.

    Content of each material is the record pretty-printed as JSON, so that
    identical records dedup regardless of which request returned them.
    """

    @property
    def source_type(self) -> SourceType:
        return SourceType.API

    async def fetch(self, source: ApiSource, channel_id: str) -> list[SourceMaterial]:
        logger.info(f"Fetching API data from {source.provider}: {source.endpoint}")

        response = await self._http.get(
            source.endpoint,
            params=source.params,
            headers={"Accept": "application/json", **source.headers},
            timeout=self.timeout,
            provider=source.provider,
        )

        try:
            data = response.json()
        except ValueError as e:
            # Truncated bodies and HTML error pages from proxies are usually temporary
            raise TransientProviderError(
                f"Invalid JSON from {source.provider}: {e}",
                provider=source.provider,
                status_code=response.status_code,
            ) from e

        records = normalize_api_response(data, source.provider)
        materials = []
        for idx, record in enumerate(records):
            content = json.dumps(record.data, indent=2, default=str)
            materials.append(
                SourceMaterial(
                    id=f"{channel_id}-api-{source.provider}-"
                    f"{stable_hash(f'{source.endpoint}:{idx}:{content}')}",
                    source_type=SourceType.API,
                    provider=source.provider,
                    title=record.title,
                    content=content,
                    url=record.url,
                    metadata=record.metadata,
                )
            )

        logger.debug(f"{source.provider} returned {len(materials)} records")
        return materials
