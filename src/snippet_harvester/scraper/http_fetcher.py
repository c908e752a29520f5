"""Static-mode fetcher: a single HTTP GET through ``httpx``.

There are no retries here; the target runner owns the retry policy.
Failures are raised as :class:`~snippet_harvester.core.exceptions.FetchError`
with a classification the runner copies onto the final result.
"""

from __future__ import annotations

import logging

import httpx

from snippet_harvester.core.exceptions import FetchError
from snippet_harvester.scraper.config import DEFAULT_HEADERS, USER_AGENT
from snippet_harvester.scraper.models import ErrorKind, StaticContent

logger = logging.getLogger(__name__)


async def fetch_static(
    url: str,
    *,
    client: httpx.AsyncClient,
    timeout_ms: int,
    user_agent: str | None = None,
) -> StaticContent:
    """Fetch ``url`` and return its body as :class:`StaticContent`.

    Redirects are followed.  A timeout and a connection failure are both
    classified as ``network``; the error message says which one happened.

    Args:
        url: Target URL.
        client: Shared :class:`httpx.AsyncClient` instance.
        timeout_ms: Request timeout in milliseconds.
        user_agent: Overrides the default ``User-Agent`` header.

    Returns:
        The response body and the final URL after redirects.

    Raises:
        FetchError: ``network`` on timeout, connection or protocol failure;
            ``http_status`` on a non-2xx final response.
    """
    headers = {**DEFAULT_HEADERS, "User-Agent": user_agent or USER_AGENT}
    try:
        response = await client.get(
            url,
            timeout=timeout_ms / 1000.0,
            follow_redirects=True,
            headers=headers,
        )
    except httpx.TimeoutException as exc:
        logger.warning("scraper: timeout fetching %s", url)
        raise FetchError(ErrorKind.NETWORK, f"timeout after {timeout_ms} ms", url=url) from exc
    except httpx.TooManyRedirects as exc:
        logger.warning("scraper: too many redirects for %s", url)
        raise FetchError(ErrorKind.NETWORK, "too many redirects", url=url) from exc
    except httpx.RequestError as exc:
        logger.warning("scraper: request error for %s: %s", url, exc)
        raise FetchError(ErrorKind.NETWORK, f"request error: {exc}", url=url) from exc

    if not response.is_success:
        logger.info("scraper: HTTP %d for %s", response.status_code, url)
        raise FetchError(
            ErrorKind.HTTP_STATUS,
            f"HTTP {response.status_code}",
            url=url,
            status_code=response.status_code,
        )

    return StaticContent(
        html=response.text,
        final_url=str(response.url),
        status_code=response.status_code,
    )
