"""Tests for the provider HTTP client error mapping."""

from datetime import datetime, timedelta, timezone
from email.utils import format_datetime

import httpx
import pytest
import respx

from resilient_ingest.errors import (
    PermanentProviderError,
    RateLimitError,
    TransientProviderError,
)
from resilient_ingest.ingestion.http_client import ProviderHTTPClient, parse_retry_after

URL = "https://api.example.com/data"


class TestParseRetryAfter:
    """Tests for Retry-After header parsing."""

    def test_seconds(self):
        assert parse_retry_after("120") == 120.0

    def test_http_date(self):
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now + timedelta(seconds=30), usegmt=True)
        assert parse_retry_after(header, now=now) == pytest.approx(30.0)

    def test_past_date_is_zero(self):
        now = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)
        header = format_datetime(now - timedelta(minutes=5), usegmt=True)
        assert parse_retry_after(header, now=now) == 0.0

    @pytest.mark.parametrize("value", [None, "", "soon"])
    def test_unusable_values(self, value):
        assert parse_retry_after(value) is None


class TestProviderHTTPClient:
    """Tests for ProviderHTTPClient."""

    @pytest.mark.asyncio
    @respx.mock
    async def test_get_success(self):
        """Should return response on successful GET."""
        respx.get(URL).mock(return_value=httpx.Response(200, json={"result": "success"}))

        async with ProviderHTTPClient() as client:
            response = await client.get(URL)

        assert response.json() == {"result": "success"}

    @pytest.mark.asyncio
    @respx.mock
    async def test_sends_params_headers_and_user_agent(self):
        route = respx.get(URL).mock(return_value=httpx.Response(200, json={}))

        async with ProviderHTTPClient(user_agent="resilient-ingest/test") as client:
            await client.get(URL, params={"q": "search"}, headers={"X-Key": "k"})

        request = route.calls.last.request
        assert "q=search" in str(request.url)
        assert request.headers["X-Key"] == "k"
        assert request.headers["User-Agent"] == "resilient-ingest/test"

    @pytest.mark.asyncio
    @respx.mock
    async def test_single_request_per_call(self):
        """The client never retries on its own."""
        route = respx.get(URL).mock(return_value=httpx.Response(503))

        async with ProviderHTTPClient() as client:
            with pytest.raises(TransientProviderError):
                await client.get(URL)

        assert route.call_count == 1

    @pytest.mark.asyncio
    @respx.mock
    @pytest.mark.parametrize("status", [408, 500, 502, 503, 504])
    async def test_transient_statuses(self, status):
        respx.get(URL).mock(return_value=httpx.Response(status))

        async with ProviderHTTPClient() as client:
            with pytest.raises(TransientProviderError) as exc_info:
                await client.get(URL, provider="example")

        assert exc_info.value.status_code == status
        assert exc_info.value.provider == "example"
        assert not isinstance(exc_info.value, RateLimitError)

    @pytest.mark.asyncio
    @respx.mock
    @pytest.mark.parametrize("status", [400, 401, 403, 404, 410, 422])
    async def test_permanent_statuses(self, status):
        respx.get(URL).mock(return_value=httpx.Response(status))

        async with ProviderHTTPClient() as client:
            with pytest.raises(PermanentProviderError) as exc_info:
                await client.get(URL)

        assert exc_info.value.status_code == status
        assert str(status) in str(exc_info.value)

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_carries_retry_after(self):
        respx.get(URL).mock(return_value=httpx.Response(429, headers={"Retry-After": "12"}))

        async with ProviderHTTPClient() as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.get(URL)

        assert exc_info.value.retry_after == 12.0
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    @respx.mock
    async def test_rate_limit_without_header(self):
        respx.get(URL).mock(return_value=httpx.Response(429))

        async with ProviderHTTPClient() as client:
            with pytest.raises(RateLimitError) as exc_info:
                await client.get(URL)

        assert exc_info.value.retry_after is None

    @pytest.mark.asyncio
    @respx.mock
    @pytest.mark.parametrize(
        "error",
        [
            httpx.ConnectTimeout("connect timed out"),
            httpx.ReadTimeout("read timed out"),
            httpx.ConnectError("connection refused"),
            httpx.ReadError("connection reset"),
        ],
    )
    async def test_transport_errors_are_transient(self, error):
        respx.get(URL).mock(side_effect=error)

        async with ProviderHTTPClient() as client:
            with pytest.raises(TransientProviderError) as exc_info:
                await client.get(URL)

        assert isinstance(exc_info.value.__cause__, type(error))

    @pytest.mark.asyncio
    async def test_unsupported_scheme_is_permanent(self):
        async with ProviderHTTPClient() as client:
            with pytest.raises(PermanentProviderError):
                await client.get("ftp://example.com/feed")

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self):
        inner = httpx.AsyncClient()
        client = ProviderHTTPClient(client=inner)

        await client.close()

        assert not inner.is_closed
        await inner.aclose()
