"""Tests for the SQL target store, result sink and settings store.

Run against an in-memory SQLite database (``sqlite+aiosqlite``).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta
from unittest.mock import MagicMock

import pytest
from sqlalchemy.exc import OperationalError

from snippet_harvester.core.exceptions import TargetStoreUnavailableError, TargetValidationError
from snippet_harvester.core.result_sink import SqlResultSink
from snippet_harvester.core.settings_store import SqlSettingsStore, policy_to_values
from snippet_harvester.core.target_store import SqlTargetStore
from snippet_harvester.scraper.models import ErrorKind, ExtractionResult, Outcome, RenderMode, SchedulePolicy

_T0 = datetime(2026, 3, 10, 9, 0, tzinfo=UTC)


def _result(target_id: int, outcome: Outcome, at: datetime, fragments: tuple[str, ...] = ()) -> ExtractionResult:
    return ExtractionResult(
        target_id=target_id,
        outcome=outcome,
        scraped_at=at,
        fragments=fragments,
        error_kind=ErrorKind.HTTP_STATUS if outcome is Outcome.FAILED else None,
        error_detail="HTTP 500" if outcome is Outcome.FAILED else None,
        attempts=1,
    )


# ---------------------------------------------------------------------------
# SqlTargetStore
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestSqlTargetStore:
    async def test_create_and_get(self, session_factory) -> None:
        store = SqlTargetStore(session_factory)

        created = await store.create(
            name=" Front page ", url="https://example.test/a", selector="h1", mode="dynamic", category="news"
        )
        fetched = await store.get(created.id)

        assert fetched == created
        assert fetched.name == "Front page"
        assert fetched.mode is RenderMode.DYNAMIC
        assert fetched.created_at is not None
        assert fetched.created_at.tzinfo is not None

    @pytest.mark.parametrize(
        ("fields", "bad_field"),
        [
            ({"url": "", "selector": "h1", "mode": "static"}, "url"),
            ({"url": "https://example.test", "selector": " ", "mode": "static"}, "selector"),
            ({"url": "https://example.test", "selector": "h1", "mode": "headless"}, "mode"),
        ],
    )
    async def test_create_rejects_malformed_target(self, session_factory, fields: dict, bad_field: str) -> None:
        store = SqlTargetStore(session_factory)
        with pytest.raises(TargetValidationError) as exc_info:
            await store.create(name="bad", **fields)
        assert exc_info.value.field == bad_field
        assert await store.count() == 0

    async def test_list_active_is_ordered_and_filtered(self, session_factory) -> None:
        store = SqlTargetStore(session_factory)
        a = await store.create(name="a", url="https://example.test/a", selector="h1")
        b = await store.create(name="b", url="https://example.test/b", selector="h1", active=False)
        c = await store.create(name="c", url="https://example.test/c", selector="h1")

        active = await store.list_active()

        assert [t.id for t in active] == [a.id, c.id]
        assert b.id not in {t.id for t in active}
        assert await store.count() == 3
        assert await store.count(active_only=True) == 2

    async def test_update(self, session_factory) -> None:
        store = SqlTargetStore(session_factory)
        target = await store.create(name="a", url="https://example.test/a", selector="h1")

        updated = await store.update(target.id, selector="h2.title", active=False)

        assert updated.selector == "h2.title"
        assert updated.active is False
        assert updated.url == target.url

    async def test_update_missing_and_invalid(self, session_factory) -> None:
        store = SqlTargetStore(session_factory)
        target = await store.create(name="a", url="https://example.test/a", selector="h1")

        assert await store.update(999, name="x") is None
        with pytest.raises(TargetValidationError):
            await store.update(target.id, mode="headless")
        with pytest.raises(TargetValidationError):
            await store.update(target.id, colour="red")
        assert (await store.get(target.id)).mode is RenderMode.STATIC

    async def test_delete_removes_results(self, session_factory) -> None:
        store = SqlTargetStore(session_factory)
        sink = SqlResultSink(session_factory)
        target = await store.create(name="a", url="https://example.test/a", selector="h1")
        await sink.append(_result(target.id, Outcome.OK, _T0, ("x",)))

        assert await store.delete(target.id) is True
        assert await store.get(target.id) is None
        assert await sink.count() == 0
        assert await store.delete(target.id) is False

    async def test_unreachable_database_is_reported(self) -> None:
        session = MagicMock()
        session.__aenter__.side_effect = OperationalError("SELECT 1", {}, Exception("connection refused"))
        store = SqlTargetStore(MagicMock(return_value=session))

        with pytest.raises(TargetStoreUnavailableError):
            await store.list_active()


# ---------------------------------------------------------------------------
# SqlResultSink
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestSqlResultSink:
    async def test_query_newest_first_with_target_details(self, session_factory) -> None:
        store = SqlTargetStore(session_factory)
        sink = SqlResultSink(session_factory)
        target = await store.create(name="Front", url="https://example.test/a", selector="h1", category="news")

        await sink.append(_result(target.id, Outcome.OK, _T0, ("first", "second")))
        await sink.append(_result(target.id, Outcome.FAILED, _T0 + timedelta(hours=1)))

        rows = await sink.query()

        assert [r.outcome for r in rows] == [Outcome.FAILED, Outcome.OK]
        assert rows[0].error_kind is ErrorKind.HTTP_STATUS
        assert rows[1].fragments == ("first", "second")
        assert rows[1].target_name == "Front"
        assert rows[1].category == "news"
        assert rows[1].scraped_at == _T0

    async def test_query_filters(self, session_factory) -> None:
        store = SqlTargetStore(session_factory)
        sink = SqlResultSink(session_factory)
        a = await store.create(name="a", url="https://example.test/a", selector="h1")
        b = await store.create(name="b", url="https://example.test/b", selector="h1")
        for i in range(3):
            await sink.append(_result(a.id, Outcome.OK, _T0 + timedelta(minutes=i), ("x",)))
        await sink.append(_result(b.id, Outcome.EMPTY, _T0))

        assert len(await sink.query(a.id)) == 3
        assert len(await sink.query(a.id, limit=2)) == 2
        assert [r.target_id for r in await sink.query(outcome=Outcome.EMPTY)] == [b.id]

    async def test_count_since(self, session_factory) -> None:
        store = SqlTargetStore(session_factory)
        sink = SqlResultSink(session_factory)
        a = await store.create(name="a", url="https://example.test/a", selector="h1")
        await sink.append(_result(a.id, Outcome.OK, _T0 - timedelta(days=1)))
        await sink.append(_result(a.id, Outcome.OK, _T0))

        assert await sink.count() == 2
        assert await sink.count(since=_T0 - timedelta(hours=1)) == 1


# ---------------------------------------------------------------------------
# SqlSettingsStore
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
class TestSqlSettingsStore:
    async def test_seed_fills_only_missing_keys(self, session_factory) -> None:
        store = SqlSettingsStore(session_factory)
        await store.save_policy(SchedulePolicy(trigger="06:15"))

        await store.seed_defaults(SchedulePolicy(trigger="09:00", max_retries=5))
        values = await store.load()

        assert values["scrape_time"] == "06:15"
        assert set(values) == set(policy_to_values(SchedulePolicy()))

    async def test_round_trip(self, session_factory) -> None:
        store = SqlSettingsStore(session_factory)
        policy = SchedulePolicy(
            trigger="*/30 * * * *",
            max_retries=1,
            timeout_ms=5_000,
            inter_target_delay_ms=0,
            retry_backoff_ms=250,
            retry_backoff_multiplier=1.5,
            dedupe_fragments=False,
        )

        await store.save_policy(policy)

        assert await store.load_policy(SchedulePolicy()) == policy

    async def test_invalid_stored_value_falls_back_to_defaults(self, session_factory) -> None:
        store = SqlSettingsStore(session_factory)
        defaults = SchedulePolicy(trigger="07:00")
        await store.seed_defaults(defaults)

        from snippet_harvester.core.models import SettingRecord  # noqa: PLC0415

        async with session_factory() as session:
            record = await session.get(SettingRecord, "max_retries")
            record.value = "-3"
            await session.commit()

        assert await store.load_policy(defaults) == defaults
