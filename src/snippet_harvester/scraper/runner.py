"""Target runner: fetch, extract, retry and classify one target.

:meth:`TargetRunner.run` is the error boundary of the engine.  Whatever
happens below it, the caller gets an :class:`ExtractionResult` back and
never an exception, so one broken target cannot stop a batch.

Classification rules:

- an attempt yields fragments: ``ok``;
- an attempt succeeds but matches nothing: ``empty``, not retried;
- every attempt raises :class:`FetchError`: ``failed`` with the last error's
  kind;
- invalid selector syntax: ``failed``/``bad_selector``, detected before any
  fetch and never retried;
- anything unexpected: ``failed``/``internal``, not retried.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

import structlog

from snippet_harvester.api.metrics import extraction_results_total
from snippet_harvester.core.exceptions import ExtractionFault, FetchError
from snippet_harvester.scraper.content_extractor import extract, validate_selector
from snippet_harvester.scraper.fetcher import Fetcher
from snippet_harvester.scraper.models import (
    ErrorKind,
    ExtractionResult,
    Outcome,
    SchedulePolicy,
    Target,
)

logger = structlog.get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(UTC)


class TargetRunner:
    """Runs one target under a :class:`SchedulePolicy`.

    Args:
        fetcher: Anything with the :meth:`Fetcher.open` context manager.
        sleep: Awaitable used for retry backoff.  Tests pass a recorder.
        clock: Returns the timestamp stamped on results.
    """

    def __init__(
        self,
        fetcher: Fetcher,
        *,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._fetcher = fetcher
        self._sleep = sleep
        self._clock = clock

    # ------------------------------------------------------------------
    # Result construction
    # ------------------------------------------------------------------

    def _result(
        self,
        target: Target,
        outcome: Outcome,
        *,
        fragments: list[str] | None = None,
        error_kind: ErrorKind | None = None,
        error_detail: str | None = None,
        attempts: int,
    ) -> ExtractionResult:
        result = ExtractionResult(
            target_id=target.id,
            outcome=outcome,
            scraped_at=self._clock(),
            fragments=tuple(fragments or ()),
            error_kind=error_kind,
            error_detail=error_detail,
            attempts=attempts,
            target_name=target.name,
            category=target.category,
        )
        extraction_results_total.labels(
            outcome=outcome.value,
            error_kind=error_kind.value if error_kind else "none",
        ).inc()
        logger.info(
            "target_run_finished",
            target_id=target.id,
            outcome=outcome.value,
            error_kind=error_kind.value if error_kind else None,
            fragments=len(result.fragments),
            attempts=attempts,
        )
        return result

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def _attempt(self, target: Target, policy: SchedulePolicy) -> list[str]:
        async with self._fetcher.open(
            target.url,
            target.mode,
            policy.timeout_ms,
            selector=target.selector,
        ) as content:
            return await extract(content, target.selector, dedupe=policy.dedupe_fragments)

    async def run(self, target: Target, policy: SchedulePolicy) -> ExtractionResult:
        """Run ``target`` and return its classified result.  Never raises."""
        log = logger.bind(target_id=target.id, url=target.url, mode=target.mode.value)

        try:
            validate_selector(target.selector)
        except ExtractionFault as exc:
            log.warning("target_selector_invalid", error=str(exc))
            return self._result(
                target, Outcome.FAILED, error_kind=ErrorKind.BAD_SELECTOR, error_detail=str(exc), attempts=0
            )

        last_error: FetchError | None = None
        max_attempts = policy.max_attempts
        for attempt in range(1, max_attempts + 1):
            try:
                fragments = await self._attempt(target, policy)
            except FetchError as exc:
                last_error = exc
                log.warning(
                    "fetch_attempt_failed",
                    attempt=attempt,
                    max_attempts=max_attempts,
                    error_kind=exc.kind.value,
                    error=str(exc),
                )
                if attempt < max_attempts:
                    await self._sleep(policy.backoff_seconds(attempt))
                continue
            except ExtractionFault as exc:
                log.warning("target_selector_rejected", attempt=attempt, error=str(exc))
                return self._result(
                    target,
                    Outcome.FAILED,
                    error_kind=ErrorKind.BAD_SELECTOR,
                    error_detail=str(exc),
                    attempts=attempt,
                )
            except Exception as exc:  # noqa: BLE001
                log.exception("target_run_internal_error", attempt=attempt)
                return self._result(
                    target,
                    Outcome.FAILED,
                    error_kind=ErrorKind.INTERNAL,
                    error_detail=f"{type(exc).__name__}: {exc}",
                    attempts=attempt,
                )

            outcome = Outcome.OK if fragments else Outcome.EMPTY
            return self._result(target, outcome, fragments=fragments, attempts=attempt)

        assert last_error is not None
        return self._result(
            target,
            Outcome.FAILED,
            error_kind=last_error.kind,
            error_detail=str(last_error),
            attempts=max_attempts,
        )
