"""
RSS/Atom feed provider.

Handles:
- RSS/Atom parsing via feedparser (fetched through the shared HTTP client)
- HTML summary cleaning
- Engagement signals from aggregator feeds (Hacker News points, Reddit score)

Also exposes validate_feed() for checking a feed URL before it is added to
a channel's sources.
"""

import logging
import re
from calendar import timegm
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any

import feedparser

from resilient_ingest.errors import TransientProviderError
from resilient_ingest.ingestion.providers.base import (
    BaseProvider,
    html_to_text,
    stable_hash,
)
from resilient_ingest.ingestion.schemas import (
    FeedSource,
    SourceMaterial,
    SourceType,
    extract_domain,
)
from resilient_ingest.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)

FEED_RETRY_POLICY = RetryPolicy(max_attempts=3, initial_delay=2.0)

_HN_POINTS_PATTERNS = (
    re.compile(r"Points:\s*(\d+)", re.IGNORECASE),
    re.compile(r"(\d+)\s+points", re.IGNORECASE),
)
_REDDIT_SCORE_PATTERN = re.compile(r"(?:score|points|upvotes)[\s:]*(\d+)", re.IGNORECASE)


def extract_engagement_score(content: str, domain: str) -> int | None:
    """
    Extract an engagement signal from aggregator feed content.

    Recognizes Hacker News ("Points: 123" / "123 points") and Reddit
    ("score: 42") conventions. Other domains never carry a score.
    """
    if "hnrss" in domain or "news.ycombinator" in domain:
        for pattern in _HN_POINTS_PATTERNS:
            match = pattern.search(content)
            if match:
                return int(match.group(1))

    if "reddit.com" in domain:
        match = _REDDIT_SCORE_PATTERN.search(content)
        if match:
            return int(match.group(1))

    return None


def _parse_timestamp(entry: dict[str, Any]) -> datetime | None:
    """Publication time from a parsed entry, if the feed supplied one."""
    for field in ("published_parsed", "updated_parsed", "created_parsed"):
        parsed = entry.get(field)
        if parsed:
            return datetime.fromtimestamp(timegm(parsed), tz=timezone.utc)
    return None


def _entry_content(entry: dict[str, Any]) -> str:
    """Plain-text body: summary first, then the first content block."""
    raw = entry.get("summary") or ""
    if not raw and entry.get("content"):
        raw = entry["content"][0].get("value", "")
    return html_to_text(raw)


@dataclass
class FeedValidationResult:
    """Outcome of validate_feed()."""

    valid: bool
    title: str | None = None
    item_count: int | None = None
    error: str | None = None


class FeedProvider(BaseProvider):
    """
    Provider for RSS and Atom feeds.

    Returns the first max_items entries in feed order. A document that
    feedparser cannot read as a feed and that yields no entries is treated
    as a transient failure (origin servers occasionally return error pages
    with a 200 status).
    """

    retry_policy = FEED_RETRY_POLICY

    @property
    def source_type(self) -> SourceType:
        return SourceType.FEED

    async def _fetch_parsed(self, url: str, provider: str) -> feedparser.FeedParserDict:
        response = await self._http.get(url, timeout=self.timeout, provider=provider)
        feed = feedparser.parse(response.text)

        if feed.bozo and not feed.entries:
            raise TransientProviderError(
                f"Could not parse feed at {url}: {feed.get('bozo_exception')}",
                provider=provider,
                status_code=response.status_code,
            )
        return feed

    async def fetch(self, source: FeedSource, channel_id: str) -> list[SourceMaterial]:
        domain = source.provider_key
        logger.info(f"Fetching feed {source.url}")

        feed = await self._fetch_parsed(source.url, domain)

        materials = []
        for entry in feed.entries[: source.max_items]:
            title = entry.get("title")
            content = _entry_content(entry) or title or ""
            guid = entry.get("id")

            metadata: dict[str, Any] = {
                "creator": entry.get("author"),
                "categories": [tag.get("term") for tag in entry.get("tags", [])],
                "guid": guid,
            }
            score = extract_engagement_score(content, domain)
            if score is not None:
                metadata["engagement_score"] = score

            entry_key = guid or entry.get("link") or title or content
            materials.append(
                SourceMaterial(
                    id=f"{channel_id}-feed-{stable_hash(entry_key)}",
                    source_type=SourceType.FEED,
                    provider=domain,
                    title=title,
                    content=content,
                    url=entry.get("link"),
                    published_at=_parse_timestamp(entry),
                    metadata=metadata,
                )
            )

        logger.debug(f"Feed {source.url} returned {len(materials)} entries")
        return materials

    async def validate_feed(self, url: str) -> FeedValidationResult:
        """
        Check that a URL serves a readable feed.

        Never raises for fetch or parse failures; they are reported in the
        result's error field.
        """
        try:
            feed = await self._fetch_parsed(url, extract_domain(url))
        except Exception as e:
            logger.info(f"Feed validation failed for {url}: {e}")
            return FeedValidationResult(valid=False, error=str(e))

        return FeedValidationResult(
            valid=True,
            title=feed.feed.get("title"),
            item_count=len(feed.entries),
        )
