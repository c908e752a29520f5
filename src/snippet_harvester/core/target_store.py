"""Target store: CRUD over target definitions.

The engine depends only on the :class:`TargetStore` protocol.
:class:`SqlTargetStore` is the SQLAlchemy implementation used by the API
process and the Celery workers.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import UTC, datetime
from typing import Any, Protocol

import sqlalchemy as sa
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from snippet_harvester.core.exceptions import TargetStoreUnavailableError, TargetValidationError
from snippet_harvester.core.models import ExtractionResultRecord, TargetRecord
from snippet_harvester.scraper.models import Target, validate_target_fields

_UPDATABLE_FIELDS = frozenset({"name", "url", "selector", "mode", "category", "active"})


class TargetStore(Protocol):
    """What the scheduler and the API need from target storage."""

    async def list_active(self) -> Sequence[Target]: ...

    async def list_all(self) -> Sequence[Target]: ...

    async def get(self, target_id: int) -> Target | None: ...

    async def create(
        self,
        *,
        name: str,
        url: str,
        selector: str,
        mode: Any = "static",
        category: str = "general",
        active: bool = True,
    ) -> Target: ...

    async def update(self, target_id: int, **changes: Any) -> Target | None: ...

    async def delete(self, target_id: int) -> bool: ...

    async def count(self, *, active_only: bool = False) -> int: ...


def _as_aware(value: datetime | None) -> datetime | None:
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


def _to_target(record: TargetRecord) -> Target:
    return Target(
        id=record.id,
        name=record.name,
        url=record.url,
        selector=record.selector,
        mode=record.mode,
        active=record.active,
        category=record.category,
        created_at=_as_aware(record.created_at),
    )


class SqlTargetStore:
    """SQLAlchemy-backed :class:`TargetStore`.

    Every method opens its own short session, so concurrent callers never
    share a transaction.

    Args:
        session_factory: Async session factory bound to the application engine.
    """

    def __init__(self, session_factory: async_sessionmaker[AsyncSession]) -> None:
        self._session_factory = session_factory

    async def list_active(self) -> list[Target]:
        """Return a snapshot of every active target in ascending id order.

        The snapshot is read in a single statement, so targets added while
        a batch runs are not part of it.

        Raises:
            TargetStoreUnavailableError: If the database cannot be reached.
        """
        stmt = sa.select(TargetRecord).where(TargetRecord.active.is_(True)).order_by(TargetRecord.id)
        try:
            async with self._session_factory() as session:
                records = (await session.execute(stmt)).scalars().all()
        except (SQLAlchemyError, OSError) as exc:
            raise TargetStoreUnavailableError(f"could not list active targets: {exc}") from exc
        return [_to_target(r) for r in records]

    async def list_all(self) -> list[Target]:
        """Return every target, newest first."""
        stmt = sa.select(TargetRecord).order_by(TargetRecord.created_at.desc(), TargetRecord.id.desc())
        async with self._session_factory() as session:
            records = (await session.execute(stmt)).scalars().all()
        return [_to_target(r) for r in records]

    async def get(self, target_id: int) -> Target | None:
        async with self._session_factory() as session:
            record = await session.get(TargetRecord, target_id)
        return _to_target(record) if record is not None else None

    async def create(
        self,
        *,
        name: str,
        url: str,
        selector: str,
        mode: Any = "static",
        category: str = "general",
        active: bool = True,
    ) -> Target:
        """Validate and insert a new target.

        Raises:
            TargetValidationError: If the URL or selector is empty, the mode
                is unknown, or the name is blank.
        """
        url, selector, render_mode = validate_target_fields(url, selector, mode)
        name = (name or "").strip()
        if not name:
            raise TargetValidationError("name must not be empty", field="name")

        record = TargetRecord(
            name=name,
            url=url,
            selector=selector,
            mode=render_mode.value,
            category=(category or "general").strip() or "general",
            active=active,
        )
        async with self._session_factory() as session:
            session.add(record)
            await session.commit()
        return _to_target(record)

    async def update(self, target_id: int, **changes: Any) -> Target | None:
        """Apply a partial update.

        Returns:
            The updated target, or ``None`` if ``target_id`` does not exist.

        Raises:
            TargetValidationError: If the merged definition is invalid or an
                unknown field is given.
        """
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise TargetValidationError(f"unknown field(s): {', '.join(sorted(unknown))}")

        async with self._session_factory() as session:
            record = await session.get(TargetRecord, target_id)
            if record is None:
                return None

            url, selector, mode = validate_target_fields(
                changes.get("url", record.url),
                changes.get("selector", record.selector),
                changes.get("mode", record.mode),
            )
            if "name" in changes:
                name = (changes["name"] or "").strip()
                if not name:
                    raise TargetValidationError("name must not be empty", field="name")
                record.name = name
            record.url = url
            record.selector = selector
            record.mode = mode.value
            if "category" in changes:
                record.category = (changes["category"] or "general").strip() or "general"
            if "active" in changes:
                record.active = bool(changes["active"])
            await session.commit()
        return _to_target(record)

    async def delete(self, target_id: int) -> bool:
        """Delete a target and its results.  Returns ``False`` if it did not exist."""
        async with self._session_factory() as session:
            record = await session.get(TargetRecord, target_id)
            if record is None:
                return False
            await session.execute(
                sa.delete(ExtractionResultRecord).where(ExtractionResultRecord.target_id == target_id)
            )
            await session.delete(record)
            await session.commit()
        return True

    async def count(self, *, active_only: bool = False) -> int:
        stmt = sa.select(sa.func.count()).select_from(TargetRecord)
        if active_only:
            stmt = stmt.where(TargetRecord.active.is_(True))
        async with self._session_factory() as session:
            return int((await session.execute(stmt)).scalar_one())
