"""Value types shared by the fetcher, extractor, runner and scheduler.

Everything here is immutable except :class:`RunBatch`, which only lives in
memory while a scheduler pass aggregates its results.
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import TYPE_CHECKING, Any, Union

from snippet_harvester.core.exceptions import ScheduleConfigError, TargetValidationError
from snippet_harvester.scraper.trigger import parse_trigger

if TYPE_CHECKING:
    from playwright.async_api import Page


# ---------------------------------------------------------------------------
# Enumerations
# ---------------------------------------------------------------------------


class RenderMode(str, Enum):
    """How a target's page is retrieved and queried."""

    STATIC = "static"
    DYNAMIC = "dynamic"

    @classmethod
    def parse(cls, value: Any) -> RenderMode:
        """Return the mode for ``value`` or raise :class:`TargetValidationError`.

        Unknown values are rejected rather than falling back to ``static``.
        """
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            allowed = ", ".join(m.value for m in cls)
            raise TargetValidationError(
                f"unknown rendering mode {value!r} (expected one of: {allowed})",
                field="mode",
            ) from None


class Outcome(str, Enum):
    """Classification of one target run."""

    OK = "ok"
    EMPTY = "empty"
    FAILED = "failed"


class ErrorKind(str, Enum):
    """Error classification attached to a ``failed`` result."""

    NETWORK = "network"
    HTTP_STATUS = "http_status"
    TIMEOUT = "timeout"
    BAD_SELECTOR = "bad_selector"
    INTERNAL = "internal"


# ---------------------------------------------------------------------------
# Target
# ---------------------------------------------------------------------------


def validate_target_fields(url: str, selector: str, mode: Any) -> tuple[str, str, RenderMode]:
    """Normalise and validate the fields every target must carry.

    Returns:
        ``(url, selector, mode)`` with surrounding whitespace stripped.

    Raises:
        TargetValidationError: If the URL or selector is empty or the mode
            is not a known :class:`RenderMode`.
    """
    url = (url or "").strip()
    selector = (selector or "").strip()
    if not url:
        raise TargetValidationError("url must not be empty", field="url")
    if not selector:
        raise TargetValidationError("selector must not be empty", field="selector")
    return url, selector, RenderMode.parse(mode)


@dataclass(frozen=True)
class Target:
    """A page and selector to extract fragments from.

    Owned by the target store; the engine treats it as an immutable value
    for the duration of one run.
    """

    id: int
    name: str
    url: str
    selector: str
    mode: RenderMode = RenderMode.STATIC
    active: bool = True
    category: str = "general"
    created_at: datetime | None = field(default=None, compare=False)

    def __post_init__(self) -> None:
        url, selector, mode = validate_target_fields(self.url, self.selector, self.mode)
        object.__setattr__(self, "url", url)
        object.__setattr__(self, "selector", selector)
        object.__setattr__(self, "mode", mode)


# ---------------------------------------------------------------------------
# Raw content (tagged union)
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class StaticContent:
    """Serialized HTML returned by a static fetch."""

    html: str
    final_url: str
    status_code: int
    mode: RenderMode = field(default=RenderMode.STATIC, init=False)


@dataclass(frozen=True)
class DynamicContent:
    """A live handle into a rendered document.

    Only valid inside the ``async with`` block that produced it; the page is
    closed as soon as the block exits.
    """

    page: Page
    final_url: str
    status_code: int | None
    mode: RenderMode = field(default=RenderMode.DYNAMIC, init=False)


RawContent = Union[StaticContent, DynamicContent]


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ExtractionResult:
    """The immutable record produced by one target run.

    Attributes:
        target_id: Id of the target that was run.
        outcome: ``ok``, ``empty`` or ``failed``.
        scraped_at: When the run finished (timezone-aware UTC).
        fragments: Extracted text fragments in document order.
        error_kind: Classification of the final error for ``failed`` results.
        error_detail: Human-readable description of the final error.
        attempts: Number of fetch attempts made (0 if rejected before fetching).
        target_name: Display name of the target, when known.
        category: Category label of the target, when known.
    """

    target_id: int
    outcome: Outcome
    scraped_at: datetime
    fragments: tuple[str, ...] = ()
    error_kind: ErrorKind | None = None
    error_detail: str | None = None
    attempts: int = 0
    target_name: str | None = None
    category: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.outcome is Outcome.OK


# ---------------------------------------------------------------------------
# Schedule policy
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SchedulePolicy:
    """Process-wide scraping policy.

    Attributes:
        trigger: Daily ``HH:MM`` time or a five-field cron expression.
        max_retries: Extra attempts after the first failed fetch.
        timeout_ms: Upper bound for one fetch attempt, in milliseconds.
        inter_target_delay_ms: Pause between two targets of a batch.
        retry_backoff_ms: Delay before the first retry.
        retry_backoff_multiplier: Growth factor applied to each further
            retry delay.  ``1.0`` gives a fixed delay.
        dedupe_fragments: Drop repeated fragments within one run, keeping
            the first occurrence.
    """

    trigger: str = "09:00"
    max_retries: int = 3
    timeout_ms: int = 30_000
    inter_target_delay_ms: int = 2_000
    retry_backoff_ms: int = 1_000
    retry_backoff_multiplier: float = 2.0
    dedupe_fragments: bool = True

    def __post_init__(self) -> None:
        parse_trigger(self.trigger)
        if self.max_retries < 0:
            raise ScheduleConfigError("max_retries must be a non-negative integer")
        if self.timeout_ms <= 0:
            raise ScheduleConfigError("timeout must be greater than 0 ms")
        if self.inter_target_delay_ms < 0:
            raise ScheduleConfigError("inter_target_delay must be 0 ms or more")
        if self.retry_backoff_ms <= 0:
            raise ScheduleConfigError("retry_backoff must be greater than 0 ms")
        if self.retry_backoff_multiplier < 1.0:
            raise ScheduleConfigError("retry_backoff_multiplier must be at least 1.0")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def backoff_seconds(self, attempt: int) -> float:
        """Return the delay to wait after failed attempt number ``attempt`` (1-based)."""
        exponent = max(attempt - 1, 0)
        return self.retry_backoff_ms * (self.retry_backoff_multiplier**exponent) / 1000.0

    def replace(self, **changes: Any) -> SchedulePolicy:
        return dataclasses.replace(self, **changes)


# ---------------------------------------------------------------------------
# Run batch
# ---------------------------------------------------------------------------


@dataclass
class RunBatch:
    """Aggregate of one scheduler pass across all active targets."""

    trigger: str
    started_at: datetime
    finished_at: datetime | None = None
    results: list[ExtractionResult] = field(default_factory=list)
    total: int = 0
    aborted: bool = False
    error: str | None = None
    stopped_early: bool = False
    sink_failures: int = 0

    def _count(self, outcome: Outcome) -> int:
        return sum(1 for r in self.results if r.outcome is outcome)

    @property
    def succeeded(self) -> int:
        return self._count(Outcome.OK)

    @property
    def empty(self) -> int:
        return self._count(Outcome.EMPTY)

    @property
    def failed(self) -> int:
        return self._count(Outcome.FAILED)

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def summary(self) -> dict[str, Any]:
        """Return a JSON-serialisable summary for logs and task results."""
        return {
            "trigger": self.trigger,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "total": self.total,
            "processed": len(self.results),
            "succeeded": self.succeeded,
            "empty": self.empty,
            "failed": self.failed,
            "aborted": self.aborted,
            "error": self.error,
            "stopped_early": self.stopped_early,
            "sink_failures": self.sink_failures,
        }
