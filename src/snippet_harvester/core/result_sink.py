"""Result sink: durable storage of extraction results.

Results are appended one at a time, as soon as each target finishes, and
read back newest first.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Protocol

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from snippet_harvester.core.models import ExtractionResultRecord, TargetRecord
from snippet_harvester.scraper.models import ErrorKind, ExtractionResult, Outcome


class ResultSink(Protocol):
    """What the scheduler and the API need from result storage."""

    async def append(self, result: ExtractionResult) -> None: ...

    async def query(
        self,
        target_id: int | None = None,
        limit: int = 50,
        *,
        outcome: Outcome | None = None,
    ) -> Sequence[ExtractionResult]: ...

    async def count(self, *, since: datetime | None = None) -> int: ...


def _as_aware(value: datetime) -> datetime:
    return value if value.tzinfo is not None else value.replace(tzinfo=UTC)


class SqlResultSink:
    """SQLAlchemy-backed :class:`ResultSink`."""

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def append(self, result: ExtractionResult) -> None:
        record = ExtractionResultRecord(
            target_id=result.target_id,
            fragments=list(result.fragments),
            outcome=result.outcome.value,
            error_kind=result.error_kind.value if result.error_kind else None,
            error_detail=result.error_detail,
            attempts=result.attempts,
            scraped_at=result.scraped_at,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()

    async def query(
        self,
        target_id: int | None = None,
        limit: int = 50,
        *,
        outcome: Outcome | None = None,
    ) -> list[ExtractionResult]:
        """Return up to ``limit`` results, most recent first.

        Args:
            target_id: Restrict to one target.
            limit: Maximum number of rows.
            outcome: Restrict to one outcome.
        """
        stmt = (
            sa.select(ExtractionResultRecord, TargetRecord.name, TargetRecord.category)
            .join(TargetRecord, TargetRecord.id == ExtractionResultRecord.target_id)
            .order_by(ExtractionResultRecord.scraped_at.desc(), ExtractionResultRecord.id.desc())
            .limit(limit)
        )
        if target_id is not None:
            stmt = stmt.where(ExtractionResultRecord.target_id == target_id)
        if outcome is not None:
            stmt = stmt.where(ExtractionResultRecord.outcome == Outcome(outcome).value)

        async with self._session_factory() as session:
            rows = (await session.execute(stmt)).all()

        return [
            ExtractionResult(
                target_id=record.target_id,
                outcome=Outcome(record.outcome),
                scraped_at=_as_aware(record.scraped_at),
                fragments=tuple(record.fragments or ()),
                error_kind=ErrorKind(record.error_kind) if record.error_kind else None,
                error_detail=record.error_detail,
                attempts=record.attempts,
                target_name=name,
                category=category,
            )
            for record, name, category in rows
        ]

    async def count(self, *, since: datetime | None = None) -> int:
        stmt = sa.select(sa.func.count()).select_from(ExtractionResultRecord)
        if since is not None:
            stmt = stmt.where(ExtractionResultRecord.scraped_at >= since)
        async with self._session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())
