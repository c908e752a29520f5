"""Tests for building the application context from settings."""

from __future__ import annotations

import pytest

from snippet_harvester.config.settings import Settings
from snippet_harvester.core.context import build_context
from snippet_harvester.scraper.config import BROWSER_USER_AGENT


def _settings(**overrides: object) -> Settings:
    values: dict[str, object] = {
        "database_url": "sqlite+aiosqlite:///:memory:",
        "auto_create_schema": True,
        "scheduler_enabled": False,
        "scheduler_backend": "inprocess",
    }
    values.update(overrides)
    return Settings(**values)


@pytest.mark.asyncio
class TestBuildContext:
    async def test_user_agent_reaches_both_fetchers(self) -> None:
        context = await build_context(_settings(user_agent="Harvester/2.0"))
        try:
            assert context.fetcher.user_agent == "Harvester/2.0"
            assert context.browser_pool.user_agent == "Harvester/2.0"
        finally:
            await context.aclose()

    async def test_browser_keeps_desktop_user_agent_by_default(self) -> None:
        context = await build_context(_settings())
        try:
            assert context.fetcher.user_agent is None
            assert context.browser_pool.user_agent == BROWSER_USER_AGENT
        finally:
            await context.aclose()

    async def test_inprocess_backend_has_no_redis_client(self) -> None:
        context = await build_context(_settings(browser_pooled=False, browser_max_pages=3))
        try:
            assert context.redis_client is None
            assert context.browser_pool.pooled is False
        finally:
            await context.aclose()
