"""
Ingestion service - fetches materials for a channel from many sources.

For each source, concurrently:

    cache lookup -> (miss) breaker -> retry -> rate limit -> provider fetch
                 -> cache write-through

then merges the per-source results, drops content the channel has already
seen, and returns what is left.

Features:
- Bounded concurrent fan-out (one source failing never cancels the others)
- Per-provider rate limiting and circuit breaking via ResilienceRegistry
- Fail-open response cache and dedup index
- Whole-call timeout with clean cancellation
- Metrics, tracing and a structured summary log per ingestion
"""

import asyncio
import time
from collections.abc import Sequence
from dataclasses import dataclass, field
from typing import Any

import redis.asyncio as redis
import structlog

from resilient_ingest.config.settings import Settings, get_settings
from resilient_ingest.errors import IngestError, NoDataIngestedError
from resilient_ingest.ingestion.cache import DedupIndex, ResponseCache, connect_redis
from resilient_ingest.ingestion.http_client import ProviderHTTPClient
from resilient_ingest.ingestion.providers import BaseProvider, create_default_providers
from resilient_ingest.ingestion.schemas import (
    SourceDescriptor,
    SourceMaterial,
    SourceType,
    parse_sources,
)
from resilient_ingest.observability.metrics import get_metrics
from resilient_ingest.observability.tracing import get_tracer, traced
from resilient_ingest.resilience.registry import ResilienceRegistry
from resilient_ingest.resilience.retry import RetryPolicy, retry

logger = structlog.get_logger(__name__)


@dataclass
class SourceOutcome:
    """What happened to one source during an ingestion."""

    identifier: str
    source_type: SourceType
    provider: str
    status: str  # cached, fetched, failed
    count: int = 0
    error: str | None = None


@dataclass
class IngestionReport:
    """Materials returned by an ingestion plus per-source detail."""

    channel_id: str
    materials: list[SourceMaterial]
    outcomes: list[SourceOutcome] = field(default_factory=list)
    total_fetched: int = 0
    fresh_count: int = 0
    used_duplicates: bool = False

    @property
    def failed_sources(self) -> list[SourceOutcome]:
        return [o for o in self.outcomes if o.status == "failed"]


class IngestionService:
    """
    Service that ingests source materials for a channel.

    Construct once per process and reuse: limiter and breaker state lives
    in the registry, so per-provider protection only works across calls
    that share a service (or a registry).

    Usage:
        async with IngestionService() as service:
            materials = await service.ingest("ch1", [
                FeedSource(url="https://hnrss.org/frontpage", max_items=5),
                ApiSource(provider="polygon", endpoint="https://api.polygon.io/..."),
            ])
    """

    def __init__(
        self,
        providers: dict[SourceType, BaseProvider] | None = None,
        redis_client: redis.Redis | None = None,
        cache: ResponseCache | None = None,
        dedup: DedupIndex | None = None,
        registry: ResilienceRegistry | None = None,
        settings: Settings | None = None,
        max_concurrency: int | None = None,
    ):
        """
        Initialize ingestion service.

        Args:
            providers: Provider per source type (or build the defaults)
            redis_client: Redis client for cache and dedup (or connect from config)
            cache: Response cache (or build from redis_client)
            dedup: Dedup index (or build from redis_client)
            registry: Per-provider limiters and breakers (or build from config)
            settings: Application settings (defaults to get_settings())
            max_concurrency: Cap on sources fetched at once
        """
        settings = settings or get_settings()
        self._settings = settings
        self._metrics = get_metrics()
        self._tracer = get_tracer(__name__)

        # Clients created here are closed by close(); injected ones are not
        self._http: ProviderHTTPClient | None = None
        if providers is None:
            self._http = ProviderHTTPClient(
                timeout=settings.api_timeout_seconds,
                user_agent=settings.user_agent,
            )
            providers = create_default_providers(self._http, settings)
        self._providers = providers

        self._owns_redis = False
        if redis_client is None and (cache is None or dedup is None):
            redis_client = connect_redis(
                str(settings.redis_url),
                timeout=settings.redis_timeout_seconds,
            )
            self._owns_redis = True
        self._redis = redis_client

        self._cache = cache or ResponseCache(
            redis_client,
            namespace=settings.cache_namespace,
            ttls=settings.cache_ttls,
        )
        self._dedup = dedup or DedupIndex(
            redis_client,
            namespace=settings.cache_namespace,
            window_seconds=settings.dedup_window_seconds,
        )
        self._registry = registry or ResilienceRegistry.from_settings(
            settings,
            on_state_change=self._metrics.record_circuit_state,
        )

        self._default_policy = RetryPolicy.from_settings(settings)
        self._max_concurrency = max_concurrency or settings.max_concurrent_sources
        self._semaphore = asyncio.Semaphore(self._max_concurrency)

        logger.info(
            "Ingestion service initialized",
            providers=[t.value for t in self._providers],
            max_concurrency=self._max_concurrency,
        )

    @property
    def registry(self) -> ResilienceRegistry:
        return self._registry

    async def __aenter__(self) -> "IngestionService":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def close(self) -> None:
        """Release the HTTP and Redis clients this service created."""
        if self._http is not None:
            await self._http.close()
        if self._owns_redis and self._redis is not None:
            await self._redis.aclose()
        logger.info("Ingestion service closed")

    async def ingest(
        self,
        channel_id: str,
        sources: Sequence[SourceDescriptor | dict[str, Any]],
        timeout: float | None = None,
    ) -> list[SourceMaterial]:
        """
        Ingest materials for a channel from all of its sources.

        Args:
            channel_id: Channel the materials are for (scopes dedup)
            sources: Source descriptors, or plain dicts to validate into them
            timeout: Optional bound in seconds for the whole call

        Returns:
            Fresh materials in source order; previously seen materials if
            every fetched item was a duplicate

        Raises:
            NoDataIngestedError: If no source produced any material
            TimeoutError: If timeout elapsed first
        """
        report = await self.ingest_with_report(channel_id, sources, timeout=timeout)
        return report.materials

    async def ingest_with_report(
        self,
        channel_id: str,
        sources: Sequence[SourceDescriptor | dict[str, Any]],
        timeout: float | None = None,
    ) -> IngestionReport:
        """Same as ingest(), returning per-source outcomes alongside the materials."""
        descriptors = _coerce_sources(sources)

        if timeout is None:
            return await self._ingest(channel_id, descriptors)

        try:
            return await asyncio.wait_for(self._ingest(channel_id, descriptors), timeout)
        except asyncio.TimeoutError:
            logger.error(
                "ingestion_timed_out",
                channel_id=channel_id,
                source_count=len(descriptors),
                timeout_seconds=timeout,
            )
            self._metrics.record_ingestion("error")
            raise

    async def _ingest(
        self,
        channel_id: str,
        sources: list[SourceDescriptor],
    ) -> IngestionReport:
        with structlog.contextvars.bound_contextvars(channel_id=channel_id), traced(
            self._tracer,
            "ingest",
            {"channel_id": channel_id, "source_count": len(sources)},
        ):
            logger.info("ingestion_started", source_count=len(sources))

            results = await asyncio.gather(
                *(self._fetch_source(channel_id, source) for source in sources),
                return_exceptions=True,
            )

            outcomes: list[SourceOutcome] = []
            materials: list[SourceMaterial] = []
            for source, result in zip(sources, results):
                if isinstance(result, BaseException):
                    if not isinstance(result, Exception):
                        raise result
                    outcomes.append(self._record_failure(source, result))
                    continue
                outcome, fetched = result
                outcomes.append(outcome)
                materials.extend(fetched)

            if not materials:
                self._metrics.record_ingestion("empty")
                raise NoDataIngestedError(channel_id, len(sources))

            fresh = await self._filter_seen(channel_id, materials)
            used_duplicates = not fresh
            if used_duplicates:
                # Nothing new: deliver the duplicates and restart their window
                for material in materials:
                    await self._dedup.mark_seen(channel_id, material.content)
            final = fresh or materials

            report = IngestionReport(
                channel_id=channel_id,
                materials=final,
                outcomes=outcomes,
                total_fetched=len(materials),
                fresh_count=len(fresh),
                used_duplicates=used_duplicates,
            )

            self._metrics.record_duplicates(
                len(materials) - len(fresh),
                fallback=used_duplicates,
            )
            self._metrics.record_ingestion("success")
            logger.info(
                "ingestion_complete",
                total_fetched=report.total_fetched,
                after_dedup=report.fresh_count,
                used=len(final),
                failed_sources=len(report.failed_sources),
                used_duplicates=used_duplicates,
            )
            return report

    async def _fetch_source(
        self,
        channel_id: str,
        source: SourceDescriptor,
    ) -> tuple[SourceOutcome, list[SourceMaterial]]:
        """Cache-check, fetch and cache-write one source, strictly in that order."""
        source_type = source.source_type
        provider_key = source.provider_key
        identifier = source.cache_identifier

        async with self._semaphore:
            with traced(
                self._tracer,
                "ingest.source",
                {"provider": provider_key, "source_type": source_type.value},
            ):
                cached = await self._cache.get(source_type, identifier)
                if cached is not None:
                    logger.info(
                        "source_cache_hit",
                        provider=provider_key,
                        source_type=source_type.value,
                        count=len(cached),
                    )
                    self._metrics.record_source_fetch(
                        source_type.value, "cached", count=len(cached)
                    )
                    return (
                        SourceOutcome(
                            identifier=identifier,
                            source_type=source_type,
                            provider=provider_key,
                            status="cached",
                            count=len(cached),
                        ),
                        cached,
                    )

                provider = self._providers.get(source_type)
                if provider is None:
                    raise IngestError(
                        f"No provider registered for source type {source_type.value}"
                    )

                limiter = self._registry.rate_limiter(
                    provider_key, getattr(source, "rate_limit", None)
                )
                breaker = self._registry.circuit_breaker(provider_key)
                policy = provider.retry_policy or self._default_policy
                label = f"{source_type.value}:{provider_key}"

                async def attempt() -> list[SourceMaterial]:
                    waited = await limiter.acquire()
                    if waited:
                        self._metrics.record_rate_limit_wait(provider_key, waited)
                    return await provider.fetch(source, channel_id)

                start = time.monotonic()
                materials = await breaker.execute(
                    lambda: retry(attempt, label, policy),
                    label,
                )
                elapsed = time.monotonic() - start

                if materials:
                    await self._cache.set(source_type, identifier, materials)

                logger.info(
                    "source_fetched",
                    provider=provider_key,
                    source_type=source_type.value,
                    count=len(materials),
                    elapsed_seconds=round(elapsed, 2),
                )
                self._metrics.record_source_fetch(
                    source_type.value, "fetched", count=len(materials), latency=elapsed
                )
                return (
                    SourceOutcome(
                        identifier=identifier,
                        source_type=source_type,
                        provider=provider_key,
                        status="fetched",
                        count=len(materials),
                    ),
                    materials,
                )

    def _record_failure(self, source: SourceDescriptor, exc: Exception) -> SourceOutcome:
        logger.error(
            "source_fetch_failed",
            provider=source.provider_key,
            source_type=source.source_type.value,
            identifier=source.cache_identifier[:80],
            error=str(exc),
            error_type=type(exc).__name__,
        )
        self._metrics.record_source_fetch(source.source_type.value, "failed")
        return SourceOutcome(
            identifier=source.cache_identifier,
            source_type=source.source_type,
            provider=source.provider_key,
            status="failed",
            error=str(exc),
        )

    async def _filter_seen(
        self,
        channel_id: str,
        materials: list[SourceMaterial],
    ) -> list[SourceMaterial]:
        """Drop materials the channel has seen and mark the rest, in order."""
        fresh = []
        for material in materials:
            if await self._dedup.is_duplicate(channel_id, material.content):
                logger.debug(
                    "duplicate_skipped",
                    provider=material.provider,
                    title=material.title,
                )
                continue
            await self._dedup.mark_seen(channel_id, material.content)
            fresh.append(material)
        return fresh

    async def health_check(self) -> dict[str, Any]:
        """
        Check health of the ingestion service.

        Returns:
            Dictionary with Redis reachability and per-provider resilience state
        """
        redis_healthy: bool | None = None
        if self._redis is not None:
            try:
                redis_healthy = bool(await self._redis.ping())
            except Exception as e:
                logger.warning("redis_health_check_failed", error=str(e))
                redis_healthy = False

        return {
            "redis_healthy": redis_healthy,
            "providers": [t.value for t in self._providers],
            "resilience": self._registry.snapshot(),
        }


def _coerce_sources(
    sources: Sequence[SourceDescriptor | dict[str, Any]],
) -> list[SourceDescriptor]:
    """Validate any plain-dict entries into descriptors, keeping order."""
    return [
        parse_sources([source])[0] if isinstance(source, dict) else source
        for source in sources
    ]


async def ingest_data(
    channel_id: str,
    sources: Sequence[SourceDescriptor | dict[str, Any]],
) -> list[SourceMaterial]:
    """
    One-shot ingestion with a service built from settings.

    Limiter and breaker state does not outlive the call; long-running
    callers should keep an IngestionService instead.
    """
    async with IngestionService() as service:
        return await service.ingest(channel_id, sources)
