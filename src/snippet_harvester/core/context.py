"""Explicit wiring of the engine and its collaborators.

Nothing in the engine reaches for a global: the API lifespan and each
Celery task build an :class:`AppContext` with :func:`build_context` and pass
its parts down by reference.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx
import redis.asyncio as aioredis
import structlog
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from snippet_harvester.config.settings import Settings
from snippet_harvester.core.database import build_engine, build_session_factory, create_schema
from snippet_harvester.core.result_sink import ResultSink, SqlResultSink
from snippet_harvester.core.settings_store import SqlSettingsStore
from snippet_harvester.core.target_store import SqlTargetStore, TargetStore
from snippet_harvester.scraper.fetcher import Fetcher
from snippet_harvester.scraper.models import SchedulePolicy
from snippet_harvester.scraper.playwright_fetcher import BrowserPool
from snippet_harvester.scraper.runner import TargetRunner
from snippet_harvester.scraper.scheduler import BatchGuard, Scheduler
from snippet_harvester.workers.batch_lock import RedisBatchGuard

logger = structlog.get_logger(__name__)


@dataclass
class EngineContext:
    """What the scheduler reads on every batch.

    ``policy`` is replaced, never mutated, by :meth:`Scheduler.reconfigure`.
    """

    target_store: TargetStore
    result_sink: ResultSink
    policy: SchedulePolicy


@dataclass
class AppContext:
    """Every long-lived resource of one process."""

    settings: Settings
    engine: AsyncEngine
    session_factory: async_sessionmaker[AsyncSession]
    target_store: SqlTargetStore
    result_sink: SqlResultSink
    settings_store: SqlSettingsStore
    engine_context: EngineContext
    http_client: httpx.AsyncClient
    browser_pool: BrowserPool
    fetcher: Fetcher
    runner: TargetRunner
    scheduler: Scheduler
    redis_client: Any | None = None

    async def aclose(self) -> None:
        """Stop the scheduler gracefully, then release every resource."""
        await self.scheduler.shutdown()
        await self.browser_pool.close()
        await self.http_client.aclose()
        if self.redis_client is not None:
            await self.redis_client.aclose()
        await self.engine.dispose()
        logger.info("app_context_closed")


async def build_context(settings: Settings, *, guard: BatchGuard | None = None) -> AppContext:
    """Build the engine, stores and scheduler for ``settings``.

    The policy is loaded from the ``settings`` table after seeding any
    missing key from the environment defaults.  With the ``celery``
    scheduler backend and no explicit ``guard``, batches are guarded by the
    Redis lock.

    Raises:
        ScheduleConfigError: If the environment defaults are invalid.
    """
    engine = build_engine(settings.database_url)
    if settings.auto_create_schema:
        await create_schema(engine)
    session_factory = build_session_factory(engine)

    target_store = SqlTargetStore(session_factory)
    result_sink = SqlResultSink(session_factory)
    settings_store = SqlSettingsStore(session_factory)

    defaults = settings.default_policy()
    await settings_store.seed_defaults(defaults)
    policy = await settings_store.load_policy(defaults)

    http_client = httpx.AsyncClient()
    browser_pool = BrowserPool(
        pooled=settings.browser_pooled,
        max_pages=settings.browser_max_pages,
        user_agent=settings.user_agent,
    )
    fetcher = Fetcher(http_client, browser_pool, user_agent=settings.user_agent)
    runner = TargetRunner(fetcher)

    redis_client = None
    if guard is None and settings.scheduler_backend == "celery":
        redis_client = aioredis.from_url(settings.redis_url)
        guard = RedisBatchGuard(redis_client)

    engine_context = EngineContext(target_store=target_store, result_sink=result_sink, policy=policy)
    scheduler = Scheduler(engine_context, runner, guard=guard, timezone=settings.timezone)

    logger.info(
        "app_context_built",
        scheduler_backend=settings.scheduler_backend,
        trigger=policy.trigger,
        browser_pooled=settings.browser_pooled,
    )
    return AppContext(
        settings=settings,
        engine=engine,
        session_factory=session_factory,
        target_store=target_store,
        result_sink=result_sink,
        settings_store=settings_store,
        engine_context=engine_context,
        http_client=http_client,
        browser_pool=browser_pool,
        fetcher=fetcher,
        runner=runner,
        scheduler=scheduler,
        redis_client=redis_client,
    )
