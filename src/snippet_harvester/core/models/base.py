"""SQLAlchemy declarative base and shared mixins for all ORM models.

Columns use portable types (``sa.JSON``, ``sa.DateTime(timezone=True)``) so
the same models run on PostgreSQL in production and on SQLite in tests.
"""

from __future__ import annotations

from datetime import UTC, datetime

import sqlalchemy as sa
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


def utcnow() -> datetime:
    return datetime.now(UTC)


class Base(DeclarativeBase):
    """Shared declarative base for all Snippet Harvester models."""


class CreatedAtMixin:
    """Adds a ``created_at`` column.

    The value is set client-side on INSERT so it is available without a
    refresh; the server default covers rows written outside the ORM.
    """

    created_at: Mapped[datetime] = mapped_column(
        sa.DateTime(timezone=True),
        nullable=False,
        default=utcnow,
        server_default=sa.func.now(),
    )
