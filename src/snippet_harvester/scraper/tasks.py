"""Celery tasks for worker deployments.

Two tasks are provided:

``scheduler_tick_task``
    Sent by Beat every minute.  Loads the persisted policy, checks whether
    its trigger fired since the previous tick (the previous tick time lives
    in Redis), and if so runs a scheduled batch under the Redis batch lock.
    A tick that finds the lock held is skipped, not queued.

``scrape_target_task``
    Runs one target on demand, exactly like ``POST /api/scrape/{id}``.

Task naming convention::

    snippet_harvester.scraper.tasks.<action>

Retry policy:
    ``max_retries=0``.  Fetch retries happen inside the target runner; a
    failed tick is simply superseded by the next one.

Each task builds its own :class:`~snippet_harvester.core.context.AppContext`
inside ``asyncio.run`` and closes it before returning, so no connection
outlives the event loop it was created on.
"""

from __future__ import annotations

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import structlog

from snippet_harvester.config.settings import get_settings
from snippet_harvester.core.context import AppContext, build_context
from snippet_harvester.core.exceptions import TargetNotFoundError
from snippet_harvester.workers.celery_app import celery_app

logger = structlog.get_logger(__name__)

#: Redis key holding the ISO timestamp of the last processed tick.
LAST_TICK_KEY: str = "snippet_harvester:scheduler:last_tick"

#: Window assumed for the very first tick, when no previous tick is stored.
_FIRST_TICK_WINDOW = timedelta(minutes=1)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


async def _build_worker_context() -> AppContext:
    settings = get_settings().model_copy(update={"scheduler_backend": "celery"})
    return await build_context(settings)


def _parse_previous(raw: Any, now: datetime) -> datetime:
    if raw is None:
        return now - _FIRST_TICK_WINDOW
    if isinstance(raw, bytes):
        raw = raw.decode()
    try:
        previous = datetime.fromisoformat(raw)
    except ValueError:
        logger.warning("scheduler_tick_marker_invalid", value=raw)
        return now - _FIRST_TICK_WINDOW
    if previous.tzinfo is None:
        previous = previous.replace(tzinfo=UTC)
    return min(previous, now)


async def _tick(context: AppContext, redis_client: Any, now: datetime) -> dict[str, Any]:
    """Run a scheduled batch if the trigger fired in ``(previous tick, now]``.

    The tick marker is swapped atomically (``SET ... GET``) so two ticks
    never evaluate the same window.
    """
    raw_previous = await redis_client.set(LAST_TICK_KEY, now.isoformat(), get=True)
    previous = _parse_previous(raw_previous, now)
    scheduler = context.scheduler

    if not scheduler.trigger.fired_between(previous, now):
        return {"status": "idle", "trigger": scheduler.trigger.expression}

    logger.info("scheduler_tick_fired", trigger=scheduler.trigger.expression, window_start=previous.isoformat())
    batch = await scheduler.trigger_scheduled()
    if batch is None:
        return {"status": "skipped", "reason": "batch_in_progress"}
    return {"status": "aborted" if batch.aborted else "completed", **batch.summary()}


async def _run_tick() -> dict[str, Any]:
    context = await _build_worker_context()
    try:
        return await _tick(context, context.redis_client, datetime.now(UTC))
    finally:
        await context.aclose()


async def _scrape_target(target_id: int) -> dict[str, Any]:
    context = await _build_worker_context()
    try:
        result = await context.scheduler.run_target(target_id)
    except TargetNotFoundError as exc:
        logger.warning("scrape_target_not_found", target_id=target_id)
        return {"status": "not_found", "target_id": target_id, "detail": str(exc)}
    finally:
        await context.aclose()
    return {
        "status": "done",
        "target_id": result.target_id,
        "outcome": result.outcome.value,
        "error_kind": result.error_kind.value if result.error_kind else None,
        "fragments": list(result.fragments),
        "attempts": result.attempts,
        "scraped_at": result.scraped_at.isoformat(),
    }


# ---------------------------------------------------------------------------
# Tasks
# ---------------------------------------------------------------------------


@celery_app.task(
    name="snippet_harvester.scraper.tasks.scheduler_tick_task",
    bind=True,
    acks_late=True,
    max_retries=0,
)
def scheduler_tick_task(self: Any) -> dict[str, Any]:  # noqa: ARG001
    """Evaluate the trigger and run a batch if it fired since the last tick."""
    return asyncio.run(_run_tick())


@celery_app.task(
    name="snippet_harvester.scraper.tasks.scrape_target_task",
    bind=True,
    acks_late=True,
    max_retries=0,
)
def scrape_target_task(self: Any, target_id: int) -> dict[str, Any]:  # noqa: ARG001
    """Run one target on a worker and persist its result."""
    logger.info("scrape_target_task_started", target_id=target_id, task_id=self.request.id)
    return asyncio.run(_scrape_target(target_id))
