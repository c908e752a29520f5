"""Pydantic response schema for ``GET /api/stats``."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from snippet_harvester.core.schemas.results import BatchSummary


class SchedulerStatus(BaseModel):
    state: str
    current: int
    total: int
    trigger: str
    next_fire_at: Optional[datetime] = None
    last_batch: Optional[BatchSummary] = None


class StatsRead(BaseModel):
    """Dashboard counters.  ``today_results`` counts results since 00:00 UTC."""

    total_targets: int
    active_targets: int
    today_results: int
    total_results: int
    scheduler: SchedulerStatus
