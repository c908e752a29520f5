"""Pydantic request/response schemas for scrape targets."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from snippet_harvester.scraper.models import RenderMode


class TargetCreate(BaseModel):
    """Payload for creating a target.

    Unknown ``mode`` values are rejected with 422 rather than falling back
    to ``static``.
    """

    model_config = ConfigDict(str_strip_whitespace=True)

    name: str = Field(min_length=1, max_length=255)
    url: str = Field(min_length=1)
    selector: str = Field(min_length=1)
    mode: RenderMode = RenderMode.STATIC
    category: str = Field(default="general", max_length=100)
    active: bool = True


class TargetUpdate(BaseModel):
    """Partial update; omitted fields keep their stored value."""

    model_config = ConfigDict(str_strip_whitespace=True)

    name: Optional[str] = Field(default=None, min_length=1, max_length=255)
    url: Optional[str] = Field(default=None, min_length=1)
    selector: Optional[str] = Field(default=None, min_length=1)
    mode: Optional[RenderMode] = None
    category: Optional[str] = Field(default=None, max_length=100)
    active: Optional[bool] = None


class TargetRead(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    url: str
    selector: str
    mode: RenderMode
    category: str
    active: bool
    created_at: Optional[datetime] = None
