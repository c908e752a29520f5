"""Dashboard statistics route."""

from __future__ import annotations

from datetime import UTC, datetime
from zoneinfo import ZoneInfo

from fastapi import APIRouter

from snippet_harvester.api.dependencies import AppContextDep
from snippet_harvester.core.schemas.results import BatchSummary
from snippet_harvester.core.schemas.stats import SchedulerStatus, StatsRead

router = APIRouter(prefix="/api/stats", tags=["stats"])


def start_of_day(now: datetime, timezone: str) -> datetime:
    """Return local midnight of ``now``'s day in ``timezone``, expressed in UTC."""
    local = now.astimezone(ZoneInfo(timezone))
    return local.replace(hour=0, minute=0, second=0, microsecond=0).astimezone(UTC)


@router.get("", response_model=StatsRead)
async def get_stats(context: AppContextDep) -> StatsRead:
    """Return target and result counters plus the scheduler's live state."""
    midnight = start_of_day(datetime.now(UTC), context.settings.timezone)
    scheduler = context.scheduler
    current, total = scheduler.progress
    last_batch = scheduler.last_batch

    return StatsRead(
        total_targets=await context.target_store.count(),
        active_targets=await context.target_store.count(active_only=True),
        today_results=await context.result_sink.count(since=midnight),
        total_results=await context.result_sink.count(),
        scheduler=SchedulerStatus(
            state=scheduler.state.value,
            current=current,
            total=total,
            trigger=scheduler.policy.trigger,
            next_fire_at=scheduler.next_fire_at or scheduler.upcoming_fire(),
            last_batch=BatchSummary.model_validate(last_batch) if last_batch is not None else None,
        ),
    )
