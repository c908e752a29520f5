"""Constants for the fetchers and the extractor."""

from __future__ import annotations

# ---------------------------------------------------------------------------
# HTTP
# ---------------------------------------------------------------------------

#: User-agent string sent with every static request.
USER_AGENT: str = "SnippetHarvester/1.0 (+https://github.com/snippet-harvester; scheduled extractor)"

#: User-agent used by the headless browser.  Some sites serve a bare shell
#: to obvious bots, so the browser presents itself as a desktop Chrome.
BROWSER_USER_AGENT: str = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)

#: Headers sent with every static request, in addition to ``User-Agent``.
DEFAULT_HEADERS: dict[str, str] = {
    "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
    "Accept-Language": "en-US,en;q=0.9",
}

# ---------------------------------------------------------------------------
# Browser
# ---------------------------------------------------------------------------

#: Readiness condition for dynamic pages.  ``networkidle`` waits until the
#: network has been quiet for 500 ms; ``selector`` loads the DOM and then
#: waits for the target selector to attach.
DEFAULT_READINESS: str = "networkidle"

#: Viewport of the headless browser context.
BROWSER_VIEWPORT: dict[str, int] = {"width": 1920, "height": 1080}

#: Chromium flags for running inside containers.
BROWSER_LAUNCH_ARGS: tuple[str, ...] = ("--no-sandbox", "--disable-dev-shm-usage")

# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------

#: How far ahead the trigger search looks before declaring an expression
#: unsatisfiable (e.g. ``0 0 31 2 *``).
TRIGGER_SEARCH_DAYS: int = 366 * 4 + 1
