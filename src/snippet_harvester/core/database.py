"""Async SQLAlchemy engine and session factory.

Engines are built explicitly by :func:`build_engine` and owned by the
application context; there are no module-level engine singletons.

PostgreSQL pools are sized for the API process plus Celery workers:

- pool_size=10:         baseline connections held open
- max_overflow=20:      burst connections allowed above pool_size
- pool_pre_ping=True:   verify connection health before handing out

SQLite URLs (tests, local experiments) share one connection through
``StaticPool`` so that an in-memory database survives across sessions.
"""

from __future__ import annotations

from sqlalchemy.ext.asyncio import (
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)
from sqlalchemy.pool import StaticPool

from snippet_harvester.core.models import Base


def build_engine(database_url: str, *, echo: bool = False) -> AsyncEngine:
    """Create the async engine for ``database_url``."""
    if database_url.startswith("sqlite"):
        return create_async_engine(
            database_url,
            echo=echo,
            poolclass=StaticPool,
            connect_args={"check_same_thread": False},
        )
    return create_async_engine(
        database_url,
        echo=echo,
        pool_size=10,
        max_overflow=20,
        pool_pre_ping=True,
    )


def build_session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


async def create_schema(engine: AsyncEngine) -> None:
    """Create every table that does not exist yet.

    Development and test helper; production schemas are managed by Alembic.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
