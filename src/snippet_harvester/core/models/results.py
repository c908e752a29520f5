"""ORM model for extraction results.

Rows are append-only: each target run inserts a new row and nothing updates
it afterwards.
"""

from __future__ import annotations

from datetime import datetime
from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snippet_harvester.core.models.base import Base

if TYPE_CHECKING:
    from snippet_harvester.core.models.targets import TargetRecord


class ExtractionResultRecord(Base):
    """One persisted :class:`~snippet_harvester.scraper.models.ExtractionResult`."""

    __tablename__ = "extraction_results"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    target_id: Mapped[int] = mapped_column(
        sa.Integer,
        sa.ForeignKey("targets.id", ondelete="CASCADE"),
        nullable=False,
    )
    fragments: Mapped[list[str]] = mapped_column(sa.JSON, nullable=False, default=list)
    outcome: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    error_kind: Mapped[str | None] = mapped_column(sa.String(32), nullable=True)
    error_detail: Mapped[str | None] = mapped_column(sa.Text, nullable=True)
    attempts: Mapped[int] = mapped_column(sa.Integer, nullable=False, default=0)
    scraped_at: Mapped[datetime] = mapped_column(sa.DateTime(timezone=True), nullable=False)

    target: Mapped[TargetRecord] = relationship(back_populates="results")

    __table_args__ = (
        sa.Index("ix_extraction_results_target_scraped", "target_id", "scraped_at"),
        sa.Index("ix_extraction_results_scraped_at", "scraped_at"),
    )
