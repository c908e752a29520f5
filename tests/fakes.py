"""In-memory stand-ins for the engine's collaborators.

They implement the same protocols as the SQL stores and the real fetcher,
so the runner and scheduler can be exercised without I/O.
"""

from __future__ import annotations

from collections.abc import AsyncIterator, Awaitable, Callable, Sequence
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from snippet_harvester.core.exceptions import TargetStoreUnavailableError
from snippet_harvester.scraper.models import (
    ExtractionResult,
    Outcome,
    RawContent,
    RenderMode,
    StaticContent,
    Target,
)

Step = Union[str, BaseException]


@dataclass
class FetchCall:
    url: str
    mode: RenderMode
    timeout_ms: int
    selector: str | None


class FakeFetcher:
    """Scripted fetcher.

    ``pages`` maps a URL to a list of steps.  Each call consumes one step: a
    string is returned as static HTML, an exception is raised.  The last
    step repeats once the list is exhausted.
    """

    def __init__(
        self,
        pages: dict[str, Sequence[Step]] | None = None,
        *,
        before_open: Callable[[str], Awaitable[None]] | None = None,
    ) -> None:
        self.pages: dict[str, list[Step]] = {url: list(steps) for url, steps in (pages or {}).items()}
        self.before_open = before_open
        self.calls: list[FetchCall] = []

    def attempts_for(self, url: str) -> int:
        return sum(1 for c in self.calls if c.url == url)

    def _next_step(self, url: str) -> Step:
        steps = self.pages.get(url)
        if not steps:
            return "<html><body></body></html>"
        if len(steps) > 1:
            return steps.pop(0)
        return steps[0]

    @asynccontextmanager
    async def open(
        self,
        url: str,
        mode: RenderMode,
        timeout_ms: int,
        *,
        selector: str | None = None,
    ) -> AsyncIterator[RawContent]:
        self.calls.append(FetchCall(url=url, mode=mode, timeout_ms=timeout_ms, selector=selector))
        if self.before_open is not None:
            await self.before_open(url)
        step = self._next_step(url)
        if isinstance(step, BaseException):
            raise step
        yield StaticContent(html=step, final_url=url, status_code=200)


class InMemoryTargetStore:
    """Target store over a plain list.  Set ``error`` to make enumeration fail."""

    def __init__(self, targets: Sequence[Target] = ()) -> None:
        self.targets: list[Target] = list(targets)
        self.error: BaseException | None = None
        self.list_calls = 0

    async def list_active(self) -> list[Target]:
        self.list_calls += 1
        if self.error is not None:
            raise self.error
        return sorted((t for t in self.targets if t.active), key=lambda t: t.id)

    async def list_all(self) -> list[Target]:
        return list(self.targets)

    async def get(self, target_id: int) -> Target | None:
        if isinstance(self.error, TargetStoreUnavailableError):
            raise self.error
        return next((t for t in self.targets if t.id == target_id), None)

    async def count(self, *, active_only: bool = False) -> int:
        return sum(1 for t in self.targets if t.active or not active_only)


@dataclass
class InMemoryResultSink:
    """Result sink over a list.  Appends for ids in ``fail_for`` raise."""

    results: list[ExtractionResult] = field(default_factory=list)
    fail_for: set[int] = field(default_factory=set)

    async def append(self, result: ExtractionResult) -> None:
        if result.target_id in self.fail_for:
            raise RuntimeError(f"sink rejected target {result.target_id}")
        self.results.append(result)

    async def query(
        self,
        target_id: int | None = None,
        limit: int = 50,
        *,
        outcome: Outcome | None = None,
    ) -> list[ExtractionResult]:
        rows = [
            r
            for r in reversed(self.results)
            if (target_id is None or r.target_id == target_id) and (outcome is None or r.outcome is outcome)
        ]
        return rows[:limit]

    async def count(self, *, since: datetime | None = None) -> int:
        return sum(1 for r in self.results if since is None or r.scraped_at >= since)


def target_ids(results: Sequence[Any]) -> list[int]:
    return [r.target_id for r in results]
