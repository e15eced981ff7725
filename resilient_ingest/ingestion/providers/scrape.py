"""
Web page provider.

Fetches a page and extracts one material per element matched by the
source's CSS selector. Static pages are fetched over HTTP; sources marked
``dynamic`` are rendered in headless Chromium via Playwright so content
built by JavaScript is present before the selector runs.
"""

import logging

from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import async_playwright
from soupsieve import SelectorSyntaxError

from resilient_ingest.errors import PermanentProviderError, TransientProviderError
from resilient_ingest.ingestion.providers.base import (
    BaseProvider,
    clean_text,
    stable_hash,
)
from resilient_ingest.ingestion.schemas import ScrapeSource, SourceMaterial, SourceType
from resilient_ingest.resilience.retry import RetryPolicy

logger = logging.getLogger(__name__)

SCRAPE_RETRY_POLICY = RetryPolicy(max_attempts=2, initial_delay=3.0)

# How long a dynamic page may take to show the wait_for element
WAIT_FOR_TIMEOUT_MS = 10_000


async def render_page(
    url: str,
    wait_for: str | None = None,
    timeout: float = 30.0,
    user_agent: str | None = None,
) -> str:
    """
    Render a page in headless Chromium and return the resulting HTML.

    Args:
        url: Page to load
        wait_for: Optional CSS selector to wait for after network idle
        timeout: Navigation timeout in seconds
        user_agent: Optional User-Agent for the browser context

    Raises:
        playwright.async_api.Error: If the browser fails to launch, navigate
            or find wait_for in time
    """
    async with async_playwright() as pw:
        browser = await pw.chromium.launch(headless=True)
        try:
            page = await browser.new_page(user_agent=user_agent)
            await page.goto(url, wait_until="networkidle", timeout=timeout * 1000)
            if wait_for:
                await page.wait_for_selector(wait_for, timeout=WAIT_FOR_TIMEOUT_MS)
            return await page.content()
        finally:
            await browser.close()


class ScrapeProvider(BaseProvider):
    """Provider for CSS-selector scraping of static or browser-rendered HTML."""

    retry_policy = SCRAPE_RETRY_POLICY

    @property
    def source_type(self) -> SourceType:
        return SourceType.SCRAPE

    async def _fetch_static(self, source: ScrapeSource) -> str:
        response = await self._http.get(
            source.url,
            headers={"Accept": "text/html,application/xhtml+xml"},
            timeout=self.timeout,
            provider=source.provider_key,
        )
        return response.text

    async def _fetch_rendered(self, source: ScrapeSource) -> str:
        try:
            return await render_page(
                source.url,
                wait_for=source.wait_for,
                timeout=self.timeout,
                user_agent=self._settings.user_agent,
            )
        except PlaywrightError as e:
            logger.warning(f"Rendering {source.url} failed: {e.message}")
            raise TransientProviderError(
                f"Rendering {source.url} failed: {e.message}",
                provider=source.provider_key,
            ) from e

    async def fetch(self, source: ScrapeSource, channel_id: str) -> list[SourceMaterial]:
        domain = source.provider_key
        mode = "dynamic" if source.dynamic else "static"
        logger.info(f"Scraping {source.url} ({source.selector}, {mode})")

        if source.dynamic:
            page_html = await self._fetch_rendered(source)
        else:
            page_html = await self._fetch_static(source)

        soup = BeautifulSoup(page_html, "html.parser")
        try:
            elements = soup.select(source.selector)
        except SelectorSyntaxError as e:
            raise PermanentProviderError(
                f"Invalid selector {source.selector!r}: {e}", provider=domain
            ) from e

        materials = []
        for idx, element in enumerate(elements):
            text = clean_text(element.get_text(separator=" "))
            if not text:
                continue

            heading = element.select_one("h1, h2, h3")
            title = clean_text(heading.get_text(separator=" ")) if heading else ""

            materials.append(
                SourceMaterial(
                    id=f"{channel_id}-scrape-{stable_hash(f'{source.url}:{idx}:{text}')}",
                    source_type=SourceType.SCRAPE,
                    provider=domain,
                    title=title or None,
                    content=text,
                    url=source.url,
                    metadata={
                        "selector": source.selector,
                        "html": element.decode_contents(),
                    },
                )
            )

        if not materials:
            logger.warning(f"Selector {source.selector!r} matched no text on {source.url}")
        return materials
