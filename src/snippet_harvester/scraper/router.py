"""FastAPI router for running the engine and reading its results.

Routes:
    POST   /api/scrape/{target_id}   run one target now and return its result
    POST   /api/scrape               start a full batch in the background
    GET    /api/data                 query stored results, newest first

A single-target run is synchronous and bypasses the batch guard.  A full
batch is refused with 409 while another batch is in flight, and with 503
when the target store cannot be read.
"""

from __future__ import annotations

from typing import Optional

import structlog
from fastapi import APIRouter, Query, status

from snippet_harvester.api.dependencies import AppContextDep, SchedulerDep
from snippet_harvester.core.schemas.results import BatchStarted, ExtractionResultRead
from snippet_harvester.scraper.models import Outcome

logger = structlog.get_logger(__name__)

router = APIRouter(prefix="/api", tags=["scrape"])


@router.post("/scrape/{target_id}", response_model=ExtractionResultRead)
async def scrape_target(target_id: int, scheduler: SchedulerDep) -> ExtractionResultRead:
    """Run one target and return the stored result.

    A failed fetch is still a 200 response; the failure is reported in
    ``outcome`` and ``error_kind``.  An absent or inactive target is a 404.
    """
    result = await scheduler.run_target(target_id)
    return ExtractionResultRead.model_validate(result)


@router.post("/scrape", response_model=BatchStarted, status_code=status.HTTP_202_ACCEPTED)
async def scrape_all(scheduler: SchedulerDep) -> BatchStarted:
    """Start a batch over every active target."""
    _task, total = await scheduler.start_manual_batch()
    logger.info("manual_batch_started", targets=total)
    return BatchStarted(targets=total)


@router.get("/data", response_model=list[ExtractionResultRead])
async def list_results(
    context: AppContextDep,
    target_id: Optional[int] = Query(default=None),
    outcome: Optional[Outcome] = Query(default=None),
    limit: int = Query(default=50, ge=1, le=500),
) -> list[ExtractionResultRead]:
    results = await context.result_sink.query(target_id, limit, outcome=outcome)
    return [ExtractionResultRead.model_validate(r) for r in results]
