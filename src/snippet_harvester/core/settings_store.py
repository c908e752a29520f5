"""Persisted configuration surface.

The ``settings`` table holds the scraping policy as text key/value rows.
Missing keys are seeded from the environment defaults on startup; after
that the table is the source of truth and ``PUT /api/settings`` writes to it.
"""

from __future__ import annotations

import logging

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from snippet_harvester.core.exceptions import ScheduleConfigError
from snippet_harvester.core.models import SettingRecord
from snippet_harvester.scraper.models import SchedulePolicy

logger = logging.getLogger(__name__)

SCRAPE_TIME = "scrape_time"
MAX_RETRIES = "max_retries"
TIMEOUT = "timeout"
INTER_TARGET_DELAY = "inter_target_delay"
RETRY_BACKOFF = "retry_backoff"
RETRY_BACKOFF_MULTIPLIER = "retry_backoff_multiplier"
DEDUPE_FRAGMENTS = "dedupe_fragments"


def policy_to_values(policy: SchedulePolicy) -> dict[str, str]:
    return {
        SCRAPE_TIME: policy.trigger,
        MAX_RETRIES: str(policy.max_retries),
        TIMEOUT: str(policy.timeout_ms),
        INTER_TARGET_DELAY: str(policy.inter_target_delay_ms),
        RETRY_BACKOFF: str(policy.retry_backoff_ms),
        RETRY_BACKOFF_MULTIPLIER: repr(float(policy.retry_backoff_multiplier)),
        DEDUPE_FRAGMENTS: "true" if policy.dedupe_fragments else "false",
    }


def _parse_bool(raw: str) -> bool:
    value = raw.strip().lower()
    if value in {"1", "true", "yes", "on"}:
        return True
    if value in {"0", "false", "no", "off"}:
        return False
    raise ValueError(f"not a boolean: {raw!r}")


def policy_from_values(values: dict[str, str], defaults: SchedulePolicy) -> SchedulePolicy:
    """Build a policy from stored text values, filling gaps from ``defaults``.

    Raises:
        ScheduleConfigError: If a stored value cannot be parsed or is out of range.
    """
    try:
        return SchedulePolicy(
            trigger=values.get(SCRAPE_TIME, defaults.trigger),
            max_retries=int(values.get(MAX_RETRIES, defaults.max_retries)),
            timeout_ms=int(values.get(TIMEOUT, defaults.timeout_ms)),
            inter_target_delay_ms=int(values.get(INTER_TARGET_DELAY, defaults.inter_target_delay_ms)),
            retry_backoff_ms=int(values.get(RETRY_BACKOFF, defaults.retry_backoff_ms)),
            retry_backoff_multiplier=float(
                values.get(RETRY_BACKOFF_MULTIPLIER, defaults.retry_backoff_multiplier)
            ),
            dedupe_fragments=(
                _parse_bool(values[DEDUPE_FRAGMENTS]) if DEDUPE_FRAGMENTS in values else defaults.dedupe_fragments
            ),
        )
    except ValueError as exc:
        raise ScheduleConfigError(f"invalid stored setting: {exc}") from exc


class SqlSettingsStore:
    """Key/value access to the ``settings`` table."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def load(self) -> dict[str, str]:
        async with self._session_factory() as session:
            rows = (await session.execute(sa.select(SettingRecord.key, SettingRecord.value))).all()
        return {key: value for key, value in rows}

    async def seed_defaults(self, defaults: SchedulePolicy) -> None:
        """Insert any missing policy key with its default value.  Existing rows are left alone."""
        wanted = policy_to_values(defaults)
        async with self._session_factory() as session:
            existing = set((await session.execute(sa.select(SettingRecord.key))).scalars().all())
            missing = [SettingRecord(key=k, value=v) for k, v in wanted.items() if k not in existing]
            if missing:
                session.add_all(missing)
                await session.commit()
                logger.info("settings: seeded %d default value(s)", len(missing))

    async def load_policy(self, defaults: SchedulePolicy) -> SchedulePolicy:
        """Return the persisted policy.

        A stored value that no longer validates is logged and the whole
        policy falls back to ``defaults``.
        """
        values = await self.load()
        try:
            return policy_from_values(values, defaults)
        except ScheduleConfigError as exc:
            logger.error("settings: persisted policy is invalid, using defaults: %s", exc)
            return defaults

    async def save_policy(self, policy: SchedulePolicy) -> None:
        """Upsert every policy key."""
        values = policy_to_values(policy)
        async with self._session_factory() as session:
            records = {
                r.key: r
                for r in (
                    await session.execute(sa.select(SettingRecord).where(SettingRecord.key.in_(list(values))))
                ).scalars()
            }
            for key, value in values.items():
                if key in records:
                    records[key].value = value
                else:
                    session.add(SettingRecord(key=key, value=value))
            await session.commit()
