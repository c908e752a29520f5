"""Recurrence expressions resolved to concrete fire times.

Two notations are accepted:

- ``HH:MM``: once a day at that local time (shorthand for ``M H * * *``).
- A five-field cron expression ``minute hour day-of-month month day-of-week``.

Field parsing is delegated to Celery's :class:`~celery.schedules.crontab`, so
ranges, steps and names (``mon-fri``, ``*/15``) behave exactly as they do in
the worker's beat schedule.  Day-of-month and day-of-week restrictions must
both match, as in Celery.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import UTC, date, datetime, timedelta
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from celery.schedules import ParseException, crontab

from snippet_harvester.core.exceptions import ScheduleConfigError
from snippet_harvester.scraper.config import TRIGGER_SEARCH_DAYS

_TIME_OF_DAY_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")

# Reference instant used to prove an expression can fire at all.
_SATISFIABILITY_ORIGIN = datetime(2000, 1, 1, tzinfo=UTC)


@dataclass(frozen=True)
class Trigger:
    """A parsed recurrence expression bound to a time zone."""

    expression: str
    schedule: crontab
    tz: ZoneInfo

    def _matches_day(self, day: date) -> bool:
        return (
            day.month in self.schedule.month_of_year
            and day.day in self.schedule.day_of_month
            and day.isoweekday() % 7 in self.schedule.day_of_week
        )

    def next_fire(self, after: datetime) -> datetime | None:
        """Return the first fire time strictly after ``after``, in UTC.

        Naive datetimes are interpreted as UTC.  Returns ``None`` if the
        expression never fires within the search horizon.
        """
        if after.tzinfo is None:
            after = after.replace(tzinfo=UTC)
        local_after = after.astimezone(self.tz)
        hours = sorted(self.schedule.hour)
        minutes = sorted(self.schedule.minute)

        start = local_after.date()
        for offset in range(TRIGGER_SEARCH_DAYS):
            day = start + timedelta(days=offset)
            if not self._matches_day(day):
                continue
            for hour in hours:
                for minute in minutes:
                    candidate = datetime(day.year, day.month, day.day, hour, minute, tzinfo=self.tz)
                    if candidate > after:
                        return candidate.astimezone(UTC)
        return None

    def fired_between(self, start: datetime, end: datetime) -> bool:
        """Return ``True`` if a fire time falls in the half-open window ``(start, end]``."""
        if end.tzinfo is None:
            end = end.replace(tzinfo=UTC)
        fire = self.next_fire(start)
        return fire is not None and fire <= end


def _to_cron_fields(expression: str) -> tuple[str, str, str, str, str]:
    match = _TIME_OF_DAY_RE.match(expression)
    if match:
        hour, minute = match.groups()
        return str(int(minute)), str(int(hour)), "*", "*", "*"

    fields = expression.split()
    if len(fields) != 5:
        raise ScheduleConfigError(
            f"invalid trigger {expression!r}: expected HH:MM or a five-field cron expression",
            expression=expression,
        )
    minute, hour, day_of_month, month, day_of_week = fields
    return minute, hour, day_of_month, month, day_of_week


def parse_trigger(expression: str, timezone: str = "UTC") -> Trigger:
    """Parse ``expression`` into a :class:`Trigger`.

    Args:
        expression: ``HH:MM`` or a five-field cron expression.
        timezone: IANA zone name in which the expression is interpreted.

    Returns:
        The parsed trigger.

    Raises:
        ScheduleConfigError: If the expression or zone is invalid, or the
            expression can never fire (e.g. ``0 0 31 2 *``).
    """
    expression = (expression or "").strip()
    if not expression:
        raise ScheduleConfigError("trigger must not be empty", expression=expression)

    try:
        tz = ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ScheduleConfigError(f"unknown time zone {timezone!r}", expression=expression) from exc

    minute, hour, day_of_month, month, day_of_week = _to_cron_fields(expression)
    try:
        schedule = crontab(
            minute=minute,
            hour=hour,
            day_of_month=day_of_month,
            month_of_year=month,
            day_of_week=day_of_week,
        )
    except (ParseException, ValueError) as exc:
        raise ScheduleConfigError(f"invalid trigger {expression!r}: {exc}", expression=expression) from exc

    trigger = Trigger(expression=expression, schedule=schedule, tz=tz)
    if trigger.next_fire(_SATISFIABILITY_ORIGIN) is None:
        raise ScheduleConfigError(f"trigger {expression!r} never fires", expression=expression)
    return trigger
