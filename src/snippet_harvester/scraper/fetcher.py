"""Mode-dispatching fetcher used by the target runner."""

from __future__ import annotations

from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import httpx

from snippet_harvester.api.metrics import fetch_attempts_total
from snippet_harvester.scraper.config import DEFAULT_READINESS
from snippet_harvester.scraper.http_fetcher import fetch_static
from snippet_harvester.scraper.models import RawContent, RenderMode
from snippet_harvester.scraper.playwright_fetcher import BrowserPool, open_rendered_page


class Fetcher:
    """Opens :class:`RawContent` for a URL in the requested rendering mode.

    Args:
        client: Shared HTTP client for static fetches.
        browser_pool: Page source for dynamic fetches.
        user_agent: Overrides the static ``User-Agent`` header.
        readiness: ``networkidle`` or ``selector``; see
            :func:`~snippet_harvester.scraper.playwright_fetcher.open_rendered_page`.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        browser_pool: BrowserPool,
        *,
        user_agent: str | None = None,
        readiness: str = DEFAULT_READINESS,
    ) -> None:
        self.client = client
        self.browser_pool = browser_pool
        self.user_agent = user_agent
        self.readiness = readiness

    @asynccontextmanager
    async def open(
        self,
        url: str,
        mode: RenderMode,
        timeout_ms: int,
        *,
        selector: str | None = None,
    ) -> AsyncIterator[RawContent]:
        """Fetch ``url`` and yield its content.

        Live resources held by dynamic content are released when the block
        exits.

        Raises:
            FetchError: If the page could not be retrieved.
        """
        fetch_attempts_total.labels(mode=mode.value).inc()
        match mode:
            case RenderMode.STATIC:
                yield await fetch_static(
                    url,
                    client=self.client,
                    timeout_ms=timeout_ms,
                    user_agent=self.user_agent,
                )
            case RenderMode.DYNAMIC:
                async with open_rendered_page(
                    url,
                    pool=self.browser_pool,
                    timeout_ms=timeout_ms,
                    selector=selector,
                    readiness=self.readiness,
                ) as content:
                    yield content
            case _:
                raise ValueError(f"unsupported rendering mode: {mode!r}")
