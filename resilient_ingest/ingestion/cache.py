"""
Redis-backed response cache and per-channel dedup index.

Both stores are fail-open: a Redis outage degrades to "always miss" and
"never duplicate" rather than failing an ingestion. Backend errors are
logged and counted, never raised.

Key layout:
    {namespace}:source:{source_type}:{hash}   cached list of SourceMaterial
    {namespace}:dedup:{channel_id}:{hash}     "1" while the content is recent
"""

import hashlib

import redis.asyncio as redis
import structlog
from pydantic import ValidationError

from resilient_ingest.ingestion.schemas import (
    SourceMaterial,
    SourceType,
    materials_from_json,
    materials_to_json,
)
from resilient_ingest.observability.metrics import get_metrics

logger = structlog.get_logger(__name__)

DEFAULT_CACHE_TTLS: dict[SourceType, int] = {
    SourceType.API: 12 * 3600,
    SourceType.FEED: 6 * 3600,
    SourceType.SCRAPE: 24 * 3600,
}

DEFAULT_DEDUP_WINDOW = 48 * 3600


def content_hash(text: str) -> str:
    """SHA-256 of the UTF-8 text, truncated to 16 hex characters."""
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def connect_redis(url: str, timeout: float = 2.0) -> redis.Redis:
    """
    Create a Redis client for the cache and dedup index.

    The client connects lazily; nothing is sent until the first command.

    Args:
        url: Redis URL (e.g. redis://localhost:6379/0)
        timeout: Socket connect/read timeout in seconds
    """
    return redis.from_url(
        url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=timeout,
        socket_connect_timeout=timeout,
    )


class ResponseCache:
    """
    Cache of provider responses keyed by source type and identifier.

    Usage:
        cache = ResponseCache(redis_client, "resilient-ingest")
        materials = await cache.get(SourceType.FEED, url)
        if materials is None:
            materials = await fetch()
            await cache.set(SourceType.FEED, url, materials)
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        namespace: str = "resilient-ingest",
        ttls: dict[SourceType, int] | None = None,
    ):
        self._redis = redis_client
        self.namespace = namespace
        self.ttls = {**DEFAULT_CACHE_TTLS, **(ttls or {})}

    def make_key(self, source_type: SourceType, identifier: str) -> str:
        source_type = SourceType(source_type)
        return f"{self.namespace}:source:{source_type.value}:{content_hash(identifier)}"

    async def get(
        self,
        source_type: SourceType,
        identifier: str,
    ) -> list[SourceMaterial] | None:
        """
        Look up cached materials.

        Returns:
            The cached list, or None on a miss, a backend error, or a payload
            that no longer matches the material schema
        """
        source_type = SourceType(source_type)
        key = self.make_key(source_type, identifier)
        metrics = get_metrics()

        try:
            cached = await self._redis.get(key)
        except Exception as e:
            logger.warning("cache_get_failed", key=key, error=str(e))
            metrics.record_cache(source_type.value, "error")
            return None

        if cached is None:
            metrics.record_cache(source_type.value, "miss")
            return None

        try:
            materials = materials_from_json(cached)
        except ValidationError as e:
            logger.warning(
                "cache_entry_undecodable",
                key=key,
                error_count=e.error_count(),
            )
            metrics.record_cache(source_type.value, "miss")
            return None

        logger.debug("cache_hit", key=key, count=len(materials))
        metrics.record_cache(source_type.value, "hit")
        return materials

    async def set(
        self,
        source_type: SourceType,
        identifier: str,
        materials: list[SourceMaterial],
        ttl_seconds: int | None = None,
    ) -> bool:
        """
        Store materials under the source's key.

        Args:
            source_type: Selects the default TTL
            identifier: Source cache identifier
            materials: Materials to store
            ttl_seconds: Override for the default TTL

        Returns:
            True if the entry was written
        """
        source_type = SourceType(source_type)
        key = self.make_key(source_type, identifier)
        ttl = ttl_seconds or self.ttls[source_type]

        try:
            await self._redis.setex(key, ttl, materials_to_json(materials))
        except Exception as e:
            logger.warning("cache_set_failed", key=key, error=str(e))
            get_metrics().record_cache(source_type.value, "error")
            return False

        logger.debug("cache_stored", key=key, count=len(materials), ttl=ttl)
        return True


class DedupIndex:
    """
    Exact-content dedup per channel within a sliding time window.

    Content is identified by content_hash(); marking content seen again
    restarts its window.
    """

    def __init__(
        self,
        redis_client: redis.Redis,
        namespace: str = "resilient-ingest",
        window_seconds: int = DEFAULT_DEDUP_WINDOW,
    ):
        self._redis = redis_client
        self.namespace = namespace
        self.window_seconds = window_seconds

    def make_key(self, channel_id: str, content: str) -> str:
        return f"{self.namespace}:dedup:{channel_id}:{content_hash(content)}"

    async def is_duplicate(self, channel_id: str, content: str) -> bool:
        """True if the channel saw this content within the window (False on error)."""
        key = self.make_key(channel_id, content)
        try:
            return bool(await self._redis.exists(key))
        except Exception as e:
            logger.warning("dedup_check_failed", key=key, error=str(e))
            return False

    async def mark_seen(
        self,
        channel_id: str,
        content: str,
        ttl_seconds: int | None = None,
    ) -> bool:
        """Record content as seen for the channel. Returns True if written."""
        key = self.make_key(channel_id, content)
        try:
            await self._redis.setex(key, ttl_seconds or self.window_seconds, "1")
        except Exception as e:
            logger.warning("dedup_mark_failed", key=key, error=str(e))
            return False
        return True
