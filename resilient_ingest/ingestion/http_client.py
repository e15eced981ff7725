"""
HTTP infrastructure layer shared by all providers.

Provides:
- parse_retry_after(): Decode a Retry-After header (seconds or HTTP date)
- ProviderHTTPClient: Async HTTP client that classifies failures

The client performs exactly one request per call. Retrying, rate limiting
and circuit breaking happen above it in the resilience layer, which decides
what to do based on the exception type raised here:

    timeout / connection / read errors, 408, 5xx  -> TransientProviderError
    429                                            -> RateLimitError
    other 4xx, unsupported URL                     -> PermanentProviderError
"""

import logging
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Any

import httpx

from resilient_ingest.errors import (
    PermanentProviderError,
    RateLimitError,
    TransientProviderError,
)

logger = logging.getLogger(__name__)

TRANSIENT_STATUS_CODES = frozenset({408, 500, 502, 503, 504})


def parse_retry_after(value: str | None, now: datetime | None = None) -> float | None:
    """
    Parse a Retry-After header into seconds.

    Args:
        value: Header value, either delta-seconds or an HTTP date
        now: Reference time for HTTP dates (defaults to current UTC time)

    Returns:
        Non-negative seconds to wait, or None if absent or unparseable
    """
    if not value:
        return None

    value = value.strip()
    if value.isdigit():
        return float(value)

    try:
        retry_at = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None

    if retry_at.tzinfo is None:
        retry_at = retry_at.replace(tzinfo=timezone.utc)
    now = now or datetime.now(timezone.utc)
    return max(0.0, (retry_at - now).total_seconds())


class ProviderHTTPClient:
    """
    Async HTTP client that maps failures onto the provider error taxonomy.

    Example:
        async with ProviderHTTPClient(user_agent="resilient-ingest/0.1.0") as http:
            response = await http.get(
                "https://api.example.com/data",
                params={"q": "search"},
                provider="example",
            )
    """

    def __init__(
        self,
        timeout: float = 30.0,
        user_agent: str | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        """
        Initialize HTTP client.

        Args:
            timeout: Default request timeout in seconds
            user_agent: User-Agent sent with every request
            client: Pre-built httpx client (not closed by close())
        """
        self.timeout = timeout
        self.user_agent = user_agent
        self._client = client
        self._owns_client = client is None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"User-Agent": self.user_agent} if self.user_agent else None
            self._client = httpx.AsyncClient(
                timeout=self.timeout,
                headers=headers,
                follow_redirects=True,
            )
        return self._client

    async def close(self) -> None:
        """Close the underlying client if this instance created it."""
        if self._client is not None and self._owns_client:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "ProviderHTTPClient":
        self._get_client()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    async def get(
        self,
        url: str,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
        timeout: float | None = None,
        provider: str | None = None,
    ) -> httpx.Response:
        """
        Perform a single GET request.

        Args:
            url: Request URL
            params: Query parameters
            headers: Request headers
            timeout: Per-request timeout overriding the default
            provider: Provider key attached to raised errors

        Returns:
            httpx.Response with a 2xx/3xx status

        Raises:
            TransientProviderError: Timeouts, transport errors, 408 and 5xx
            RateLimitError: 429, with retry_after from the Retry-After header
            PermanentProviderError: Other 4xx and unusable URLs
        """
        client = self._get_client()
        kwargs: dict[str, Any] = {
            "params": params or None,
            "headers": headers or None,
        }
        if timeout is not None:
            kwargs["timeout"] = timeout

        try:
            response = await client.get(url, **kwargs)
        except (httpx.UnsupportedProtocol, httpx.InvalidURL) as e:
            raise PermanentProviderError(
                f"Invalid request URL {url}: {e}", provider=provider
            ) from e
        except httpx.TimeoutException as e:
            logger.warning(f"Timeout requesting {url}: {type(e).__name__}")
            raise TransientProviderError(
                f"Request to {url} timed out", provider=provider
            ) from e
        except httpx.TransportError as e:
            logger.warning(f"Transport error requesting {url}: {type(e).__name__}: {e}")
            raise TransientProviderError(
                f"Request to {url} failed: {type(e).__name__}: {e}",
                provider=provider,
            ) from e

        self._raise_for_status(response, url, provider)
        return response

    def _raise_for_status(
        self,
        response: httpx.Response,
        url: str,
        provider: str | None,
    ) -> None:
        status = response.status_code
        if status < 400:
            return

        message = f"Request to {url} failed with status {status} {response.reason_phrase}"

        if status == 429:
            retry_after = parse_retry_after(response.headers.get("Retry-After"))
            logger.warning(f"Rate limited by {url}, retry_after={retry_after}")
            raise RateLimitError(
                message,
                provider=provider,
                status_code=status,
                retry_after=retry_after,
            )

        if status in TRANSIENT_STATUS_CODES or status >= 500:
            raise TransientProviderError(message, provider=provider, status_code=status)

        raise PermanentProviderError(message, provider=provider, status_code=status)
