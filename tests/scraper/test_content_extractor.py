"""Unit tests for selector-based fragment extraction.

Covers static extraction through BeautifulSoup/soupsieve, fragment cleanup,
selector validation, and the dynamic path against a mocked Playwright page.
"""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest
from playwright.async_api import Error as PlaywrightError

from snippet_harvester.core.exceptions import ExtractionFault, FetchError
from snippet_harvester.scraper.content_extractor import (
    clean_fragments,
    extract,
    extract_dynamic,
    extract_static,
    validate_selector,
)
from snippet_harvester.scraper.models import DynamicContent, ErrorKind, StaticContent

_ARTICLE = """
<html><body>
  <h1>Front page</h1>
  <ul class="news">
    <li class="item"><a href="/1">First   story</a></li>
    <li class="item"><a href="/2">Second
        story</a></li>
    <li class="item other"><a href="/3">Third story</a></li>
  </ul>
  <p class="item">Not in the list</p>
</body></html>
"""


def _page(texts: list[str] | None = None, error: Exception | None = None) -> MagicMock:
    locator = MagicMock()
    locator.all_text_contents = AsyncMock(return_value=texts or [], side_effect=error)
    page = MagicMock()
    page.locator = MagicMock(return_value=locator)
    return page


# ---------------------------------------------------------------------------
# clean_fragments
# ---------------------------------------------------------------------------


class TestCleanFragments:
    def test_trims_and_drops_empty(self) -> None:
        assert clean_fragments(["  a ", "", "   ", None, "b"]) == ["a", "b"]

    def test_collapses_internal_whitespace(self) -> None:
        assert clean_fragments(["one\n\t  two   three"]) == ["one two three"]

    def test_dedupe_keeps_first_occurrence(self) -> None:
        assert clean_fragments(["x", "y", "x", "z", "y"]) == ["x", "y", "z"]

    def test_without_dedupe_keeps_repeats(self) -> None:
        assert clean_fragments(["x", " x ", "y"], dedupe=False) == ["x", "x", "y"]


# ---------------------------------------------------------------------------
# validate_selector
# ---------------------------------------------------------------------------


class TestValidateSelector:
    def test_valid_selector_compiles(self) -> None:
        assert validate_selector("ul.news > li.item a") is not None

    def test_empty_selector_rejected(self) -> None:
        with pytest.raises(ExtractionFault):
            validate_selector("   ")

    def test_syntax_error_rejected(self) -> None:
        with pytest.raises(ExtractionFault) as exc_info:
            validate_selector("div[")
        assert exc_info.value.selector == "div["


# ---------------------------------------------------------------------------
# extract_static
# ---------------------------------------------------------------------------


class TestExtractStatic:
    def test_headline_scenario(self) -> None:
        html = "<h1>Hello</h1><h1>  Hello  </h1><h1></h1>"
        assert extract_static(html, "h1") == ["Hello"]

    def test_headline_scenario_without_dedupe(self) -> None:
        html = "<h1>Hello</h1><h1>  Hello  </h1><h1></h1>"
        assert extract_static(html, "h1", dedupe=False) == ["Hello", "Hello"]

    def test_document_order_is_preserved(self) -> None:
        fragments = extract_static(_ARTICLE, "ul.news li.item")
        assert fragments == ["First story", "Second story", "Third story"]

    def test_nested_text_is_concatenated(self) -> None:
        html = "<div class='t'><b>Bold</b> and <i>italic</i></div>"
        assert extract_static(html, ".t") == ["Bold and italic"]

    def test_no_match_returns_empty_list(self) -> None:
        assert extract_static(_ARTICLE, "table.missing td") == []

    def test_repeated_calls_are_identical(self) -> None:
        first = extract_static(_ARTICLE, ".item")
        second = extract_static(_ARTICLE, ".item")
        assert first == second
        assert first == ["First story", "Second story", "Third story", "Not in the list"]

    def test_invalid_selector_raises_fault(self) -> None:
        with pytest.raises(ExtractionFault):
            extract_static(_ARTICLE, "ul.news > ")


# ---------------------------------------------------------------------------
# extract_dynamic / extract
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestExtractDynamic:
    async def test_uses_css_locator_and_cleans_texts(self) -> None:
        page = _page(["  Live  score ", "", "Live score", "Final"])
        fragments = await extract_dynamic(page, "span.score")
        page.locator.assert_called_once_with("css=span.score")
        assert fragments == ["Live score", "Final"]

    async def test_invalid_selector_never_touches_page(self) -> None:
        page = _page()
        with pytest.raises(ExtractionFault):
            await extract_dynamic(page, "div[")
        page.locator.assert_not_called()

    async def test_selector_parse_error_from_page_is_fault(self) -> None:
        page = _page(error=PlaywrightError("Failed to parse selector \"div\""))
        with pytest.raises(ExtractionFault):
            await extract_dynamic(page, "div")

    async def test_page_failure_is_network_fetch_error(self) -> None:
        page = _page(error=PlaywrightError("Target page, context or browser has been closed"))
        with pytest.raises(FetchError) as exc_info:
            await extract_dynamic(page, "div")
        assert exc_info.value.kind is ErrorKind.NETWORK


@pytest.mark.asyncio
class TestExtractDispatch:
    async def test_static_content(self) -> None:
        content = StaticContent(html="<p>a</p><p>b</p>", final_url="https://example.test", status_code=200)
        assert await extract(content, "p") == ["a", "b"]

    async def test_dynamic_content(self) -> None:
        page = _page(["rendered"])
        content = DynamicContent(page=page, final_url="https://example.test", status_code=200)
        assert await extract(content, "p") == ["rendered"]

    async def test_unknown_mode_is_rejected(self) -> None:
        content = MagicMock(mode="pdf")
        with pytest.raises(ValueError, match="unsupported content mode"):
            await extract(content, "p")
