"""Pydantic response schemas for extraction results and batches."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict

from snippet_harvester.scraper.models import ErrorKind, Outcome


class ExtractionResultRead(BaseModel):
    """One target run as reported by the API.

    ``error_kind`` is set only when ``outcome`` is ``failed``.
    """

    model_config = ConfigDict(from_attributes=True)

    target_id: int
    target_name: Optional[str] = None
    category: Optional[str] = None
    outcome: Outcome
    fragments: List[str]
    error_kind: Optional[ErrorKind] = None
    error_detail: Optional[str] = None
    attempts: int
    scraped_at: datetime


class BatchStarted(BaseModel):
    """Acknowledgement for ``POST /api/scrape``."""

    status: str = "started"
    targets: int


class BatchSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    trigger: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    total: int
    succeeded: int
    empty: int
    failed: int
    aborted: bool
    error: Optional[str] = None
    stopped_early: bool
