"""Pydantic schemas for the configuration surface (``/api/settings``)."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from snippet_harvester.core.exceptions import ScheduleConfigError
from snippet_harvester.scraper.models import SchedulePolicy
from snippet_harvester.scraper.trigger import parse_trigger


class SettingsRead(BaseModel):
    """Current policy values.  Durations are in milliseconds."""

    scrape_time: str
    max_retries: int
    timeout: int
    inter_target_delay: int
    retry_backoff: int
    retry_backoff_multiplier: float
    dedupe_fragments: bool
    timezone: str
    next_fire_at: Optional[datetime] = None

    @classmethod
    def from_policy(
        cls, policy: SchedulePolicy, *, timezone: str, next_fire_at: datetime | None = None
    ) -> SettingsRead:
        return cls(
            scrape_time=policy.trigger,
            max_retries=policy.max_retries,
            timeout=policy.timeout_ms,
            inter_target_delay=policy.inter_target_delay_ms,
            retry_backoff=policy.retry_backoff_ms,
            retry_backoff_multiplier=policy.retry_backoff_multiplier,
            dedupe_fragments=policy.dedupe_fragments,
            timezone=timezone,
            next_fire_at=next_fire_at,
        )


class SettingsUpdate(BaseModel):
    """Partial policy update; omitted fields keep their current value."""

    scrape_time: Optional[str] = None
    max_retries: Optional[int] = Field(default=None, ge=0)
    timeout: Optional[int] = Field(default=None, gt=0)
    inter_target_delay: Optional[int] = Field(default=None, ge=0)
    retry_backoff: Optional[int] = Field(default=None, gt=0)
    retry_backoff_multiplier: Optional[float] = Field(default=None, ge=1.0)
    dedupe_fragments: Optional[bool] = None

    @field_validator("scrape_time")
    @classmethod
    def _valid_trigger(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            return parse_trigger(value).expression
        except ScheduleConfigError as exc:
            raise ValueError(str(exc)) from exc

    def apply(self, policy: SchedulePolicy) -> SchedulePolicy:
        """Return ``policy`` with the provided fields replaced."""
        changes = {
            "trigger": self.scrape_time,
            "max_retries": self.max_retries,
            "timeout_ms": self.timeout,
            "inter_target_delay_ms": self.inter_target_delay,
            "retry_backoff_ms": self.retry_backoff,
            "retry_backoff_multiplier": self.retry_backoff_multiplier,
            "dedupe_fragments": self.dedupe_fragments,
        }
        return policy.replace(**{k: v for k, v in changes.items() if v is not None})
