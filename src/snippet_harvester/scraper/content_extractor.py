"""Selector-based text extraction from fetched content.

Static content is parsed with BeautifulSoup (``html.parser``) and queried
with soupsieve, its CSS engine.  Dynamic content is queried inside the live
page through a Playwright locator.  Both paths run the matched texts through
:func:`clean_fragments` so they return the same shape.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable
from functools import lru_cache

import soupsieve
from bs4 import BeautifulSoup
from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Page

from snippet_harvester.core.exceptions import ExtractionFault, FetchError
from snippet_harvester.scraper.models import ErrorKind, RawContent, RenderMode

logger = logging.getLogger(__name__)

_WHITESPACE_RE = re.compile(r"\s+")


# ---------------------------------------------------------------------------
# Selector validation
# ---------------------------------------------------------------------------


@lru_cache(maxsize=256)
def _compile(selector: str) -> soupsieve.SoupSieve:
    return soupsieve.compile(selector)


def validate_selector(selector: str) -> soupsieve.SoupSieve:
    """Compile ``selector`` and return the compiled matcher.

    Raises:
        ExtractionFault: If the selector is empty or not valid CSS.
    """
    if not selector or not selector.strip():
        raise ExtractionFault(selector, "selector is empty")
    try:
        return _compile(selector.strip())
    except soupsieve.SelectorSyntaxError as exc:
        raise ExtractionFault(selector, str(exc).splitlines()[0]) from exc


# ---------------------------------------------------------------------------
# Fragment normalisation
# ---------------------------------------------------------------------------


def clean_fragments(texts: Iterable[str | None], *, dedupe: bool = True) -> list[str]:
    """Normalise raw node texts into the fragment list.

    Trims each text, collapses internal whitespace runs to a single space and
    drops empty strings.  Document order is preserved.  With ``dedupe`` a
    repeated fragment is dropped, keeping its first occurrence.
    """
    fragments: list[str] = []
    seen: set[str] = set()
    for raw in texts:
        text = _WHITESPACE_RE.sub(" ", raw or "").strip()
        if not text:
            continue
        if dedupe:
            if text in seen:
                continue
            seen.add(text)
        fragments.append(text)
    return fragments


# ---------------------------------------------------------------------------
# Extraction
# ---------------------------------------------------------------------------


def extract_static(html: str, selector: str, *, dedupe: bool = True) -> list[str]:
    """Apply ``selector`` to serialized HTML.

    Args:
        html: Raw HTML string.
        selector: CSS selector.
        dedupe: Drop repeated fragments.

    Returns:
        Matched texts in document order.  An empty list when nothing matches.

    Raises:
        ExtractionFault: If the selector is not valid CSS.
    """
    matcher = validate_selector(selector)
    soup = BeautifulSoup(html, "html.parser")
    nodes = matcher.select(soup)
    return clean_fragments((node.get_text() for node in nodes), dedupe=dedupe)


async def extract_dynamic(page: Page, selector: str, *, dedupe: bool = True) -> list[str]:
    """Apply ``selector`` inside a rendered page.

    Uses ``textContent`` of each matching element, the in-page counterpart
    of BeautifulSoup's ``get_text()``.

    Raises:
        ExtractionFault: If the selector is not valid CSS, or the page
            rejects it.
        FetchError: If the page itself fails while being queried.
    """
    validate_selector(selector)
    try:
        texts = await page.locator(f"css={selector.strip()}").all_text_contents()
    except PlaywrightError as exc:
        if "selector" in str(exc).lower() and "parse" in str(exc).lower():
            raise ExtractionFault(selector, str(exc).splitlines()[0]) from exc
        raise FetchError(ErrorKind.NETWORK, f"page query failed: {exc}") from exc
    return clean_fragments(texts, dedupe=dedupe)


async def extract(content: RawContent, selector: str, *, dedupe: bool = True) -> list[str]:
    """Dispatch to the extractor matching the content's rendering mode."""
    match content.mode:
        case RenderMode.STATIC:
            return extract_static(content.html, selector, dedupe=dedupe)
        case RenderMode.DYNAMIC:
            return await extract_dynamic(content.page, selector, dedupe=dedupe)
        case _:
            raise ValueError(f"unsupported content mode: {content.mode!r}")
