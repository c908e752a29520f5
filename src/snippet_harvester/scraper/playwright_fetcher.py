"""Dynamic-mode fetcher: headless Chromium through Playwright.

Every page is a scoped resource.  :meth:`BrowserPool.page` and
:func:`open_rendered_page` are async context managers, and the page (plus
its browser context, and the browser itself when not pooled) is closed on
every exit path, including failures during navigation.

Install the browser binary once per host::

    playwright install chromium
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator, Callable
from contextlib import AsyncExitStack, asynccontextmanager
from typing import Any

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from snippet_harvester.core.exceptions import FetchError
from snippet_harvester.scraper.config import (
    BROWSER_LAUNCH_ARGS,
    BROWSER_USER_AGENT,
    BROWSER_VIEWPORT,
    DEFAULT_READINESS,
)
from snippet_harvester.scraper.models import DynamicContent, ErrorKind

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Browser pool
# ---------------------------------------------------------------------------


class BrowserPool:
    """Hands out isolated pages from a headless browser.

    With ``pooled=True`` one browser is launched lazily and shared; its
    lifetime ends with :meth:`close`, not with any single fetch.  A
    semaphore caps concurrently open pages at ``max_pages``.

    With ``pooled=False`` each :meth:`page` call launches its own browser and
    tears it down on exit.

    Args:
        pooled: Share one browser across fetches.
        max_pages: Upper bound on concurrently open pages.
        user_agent: ``User-Agent`` of every browser context.
        playwright_factory: Returns the Playwright context manager.  Tests
            substitute a fake.
    """

    def __init__(
        self,
        *,
        pooled: bool = True,
        max_pages: int = 2,
        user_agent: str | None = None,
        playwright_factory: Callable[[], Any] = async_playwright,
    ) -> None:
        self._pooled = pooled
        self._user_agent = user_agent or BROWSER_USER_AGENT
        self._factory = playwright_factory
        self._semaphore = asyncio.Semaphore(max(1, max_pages))
        self._lock = asyncio.Lock()
        self._playwright_cm: Any = None
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None

    @property
    def pooled(self) -> bool:
        return self._pooled

    @property
    def user_agent(self) -> str:
        return self._user_agent

    async def _launch(self, playwright: Playwright) -> Browser:
        return await playwright.chromium.launch(headless=True, args=list(BROWSER_LAUNCH_ARGS))

    async def _shared_browser(self) -> Browser:
        async with self._lock:
            if self._browser is None or not self._browser.is_connected():
                if self._playwright is None:
                    self._playwright_cm = self._factory()
                    self._playwright = await self._playwright_cm.__aenter__()
                self._browser = await self._launch(self._playwright)
                logger.info("scraper: launched shared headless browser")
            return self._browser

    @asynccontextmanager
    async def _page_from(self, browser: Browser) -> AsyncIterator[Page]:
        context = await browser.new_context(
            user_agent=self._user_agent,
            viewport=BROWSER_VIEWPORT,
        )
        try:
            page = await context.new_page()
            try:
                yield page
            finally:
                await page.close()
        finally:
            await context.close()

    @asynccontextmanager
    async def page(self) -> AsyncIterator[Page]:
        """Acquire a fresh page; it is closed when the block exits."""
        async with self._semaphore:
            if self._pooled:
                browser = await self._shared_browser()
                async with self._page_from(browser) as page:
                    yield page
                return

            async with self._factory() as playwright:
                browser = await self._launch(playwright)
                try:
                    async with self._page_from(browser) as page:
                        yield page
                finally:
                    await browser.close()

    async def close(self) -> None:
        """Close the shared browser and stop Playwright, if they were started."""
        async with self._lock:
            if self._browser is not None:
                try:
                    await self._browser.close()
                except PlaywrightError as exc:
                    logger.warning("scraper: error closing shared browser: %s", exc)
                self._browser = None
            if self._playwright_cm is not None:
                await self._playwright_cm.__aexit__(None, None, None)
                self._playwright_cm = None
                self._playwright = None


# ---------------------------------------------------------------------------
# Rendered page fetch
# ---------------------------------------------------------------------------


@asynccontextmanager
async def open_rendered_page(
    url: str,
    *,
    pool: BrowserPool,
    timeout_ms: int,
    selector: str | None = None,
    readiness: str = DEFAULT_READINESS,
) -> AsyncIterator[DynamicContent]:
    """Navigate to ``url`` and yield the live page once it is ready.

    Readiness is either ``networkidle`` (DOM parsed and the network quiet)
    or ``selector`` (DOM parsed and ``selector`` attached).  Both waits are
    bounded by ``timeout_ms``.  Without a selector the ``selector`` mode
    degrades to ``networkidle``.

    Raises:
        FetchError: ``timeout`` when the readiness wait expires,
            ``http_status`` for a non-2xx main document, ``network`` for
            a browser that cannot be launched or has gone away and for any
            other navigation failure.
    """
    async with AsyncExitStack() as stack:
        try:
            page = await stack.enter_async_context(pool.page())
        except PlaywrightError as exc:
            logger.warning("scraper: could not acquire a browser page for %s: %s", url, exc)
            raise FetchError(ErrorKind.NETWORK, f"browser unavailable: {exc}", url=url) from exc

        page.set_default_timeout(timeout_ms)
        wait_for_selector = readiness == "selector" and bool(selector)
        try:
            response = await page.goto(
                url,
                timeout=timeout_ms,
                wait_until="domcontentloaded" if wait_for_selector else "networkidle",
            )
            if response is not None and not response.ok:
                raise FetchError(
                    ErrorKind.HTTP_STATUS,
                    f"HTTP {response.status}",
                    url=url,
                    status_code=response.status,
                )
            if wait_for_selector:
                await page.wait_for_selector(f"css={selector}", state="attached", timeout=timeout_ms)
        except PlaywrightTimeoutError as exc:
            logger.warning("scraper: readiness wait timed out for %s", url)
            raise FetchError(ErrorKind.TIMEOUT, f"page not ready after {timeout_ms} ms", url=url) from exc
        except PlaywrightError as exc:
            logger.warning("scraper: playwright navigation failed for %s: %s", url, exc)
            raise FetchError(ErrorKind.NETWORK, f"playwright error: {exc}", url=url) from exc

        yield DynamicContent(
            page=page,
            final_url=page.url,
            status_code=response.status if response is not None else None,
        )
