"""Application-wide exception hierarchy for Snippet Harvester.

All custom exceptions subclass ``SnippetHarvesterError`` so that callers can
catch the whole family with a single ``except`` clause when needed.

Hierarchy::

    SnippetHarvesterError
    ├── TargetValidationError        (field)
    ├── TargetNotFoundError          (target_id)
    ├── TargetStoreUnavailableError
    ├── FetchError                   (kind, url, status_code)
    ├── ExtractionFault              (selector)
    ├── ScheduleConfigError          (expression)
    └── BatchAlreadyRunningError

``FetchError`` is the only transient error: the target runner retries it.
Everything else is either rejected before a run starts or surfaced as-is.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from snippet_harvester.scraper.models import ErrorKind


class SnippetHarvesterError(Exception):
    """Base class for all Snippet Harvester exceptions."""


# ---------------------------------------------------------------------------
# Target definition errors
# ---------------------------------------------------------------------------


class TargetValidationError(SnippetHarvesterError):
    """Raised when a target definition is malformed.

    Covers an empty URL or selector and an unknown rendering mode.  Raised
    at target-creation time so that a malformed target never reaches the
    runner.

    Args:
        message: Human-readable description of the problem.
        field: Name of the offending field, if known.
    """

    def __init__(self, message: str, field: str | None = None) -> None:
        super().__init__(message)
        self.field = field


class TargetNotFoundError(SnippetHarvesterError):
    """Raised when a target id is absent, or present but inactive."""

    def __init__(self, target_id: int) -> None:
        super().__init__(f"Target '{target_id}' not found or inactive")
        self.target_id = target_id


class TargetStoreUnavailableError(SnippetHarvesterError):
    """Raised when the target store cannot be read.

    During batch enumeration this is a structural fault: the whole batch is
    aborted and the scheduler waits for the next trigger.
    """


# ---------------------------------------------------------------------------
# Engine errors
# ---------------------------------------------------------------------------


class FetchError(SnippetHarvesterError):
    """Raised when a page could not be retrieved.

    Args:
        kind: Error classification (network, http_status or timeout).
        message: Human-readable description of the failure.
        url: The URL that was being fetched.
        status_code: HTTP status code for ``http_status`` failures.
    """

    def __init__(
        self,
        kind: ErrorKind,
        message: str,
        *,
        url: str | None = None,
        status_code: int | None = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind
        self.url = url
        self.status_code = status_code


class ExtractionFault(SnippetHarvesterError):
    """Raised when a selector cannot be applied because its syntax is invalid.

    Never retried: an unparseable selector cannot succeed on a later attempt.
    """

    def __init__(self, selector: str, message: str) -> None:
        super().__init__(f"invalid selector {selector!r}: {message}")
        self.selector = selector


# ---------------------------------------------------------------------------
# Scheduling errors
# ---------------------------------------------------------------------------


class ScheduleConfigError(SnippetHarvesterError):
    """Raised when a schedule policy or recurrence expression is invalid."""

    def __init__(self, message: str, expression: str | None = None) -> None:
        super().__init__(message)
        self.expression = expression


class BatchAlreadyRunningError(SnippetHarvesterError):
    """Raised when a manual batch is requested while another batch is in flight."""

    def __init__(self) -> None:
        super().__init__("A scraping batch is already running")
