"""Shared pytest fixtures for Snippet Harvester tests.

Fixture summary
---------------
policy           fast SchedulePolicy (no inter-target delay, 1 ms backoff).
session_factory  async session factory on a fresh in-memory SQLite database.
sleeps           list recording every delay passed to the ``sleep`` fake.
fake_sleep       awaitable that records its argument and returns at once.

No test needs PostgreSQL, Redis or a browser: the database runs on
``sqlite+aiosqlite``, Redis is replaced by ``AsyncMock`` and Playwright by
``MagicMock`` trees.
"""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

# ---------------------------------------------------------------------------
# Test environment bootstrap
# ---------------------------------------------------------------------------
# Set before any application module reads Settings().

_TEST_ENV_DEFAULTS: dict[str, str] = {
    "DATABASE_URL": "sqlite+aiosqlite:///:memory:",
    "AUTO_CREATE_SCHEMA": "true",
    "SCHEDULER_ENABLED": "false",
    "SCHEDULER_BACKEND": "inprocess",
    "REDIS_URL": "redis://localhost:6379/15",
    "CELERY_BROKER_URL": "memory://",
    "CELERY_RESULT_BACKEND": "cache+memory://",
    "METRICS_ENABLED": "true",
}

for _key, _default in _TEST_ENV_DEFAULTS.items():
    os.environ.setdefault(_key, _default)

from snippet_harvester.config.settings import get_settings  # noqa: E402
from snippet_harvester.core.database import build_engine, build_session_factory, create_schema  # noqa: E402
from snippet_harvester.scraper.models import SchedulePolicy  # noqa: E402

get_settings.cache_clear()


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def policy() -> SchedulePolicy:
    return SchedulePolicy(
        trigger="09:00",
        max_retries=2,
        timeout_ms=1_000,
        inter_target_delay_ms=0,
        retry_backoff_ms=1,
        retry_backoff_multiplier=2.0,
    )


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def fake_sleep(sleeps: list[float]) -> Callable[[float], Awaitable[None]]:
    async def _sleep(seconds: float) -> None:
        sleeps.append(seconds)

    return _sleep


# ---------------------------------------------------------------------------
# Database fixtures
# ---------------------------------------------------------------------------


@pytest_asyncio.fixture
async def session_factory() -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Fresh in-memory SQLite schema per test."""
    engine = build_engine("sqlite+aiosqlite:///:memory:")
    await create_schema(engine)
    try:
        yield build_session_factory(engine)
    finally:
        await engine.dispose()
