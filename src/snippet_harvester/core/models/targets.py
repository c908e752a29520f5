"""ORM model for scrape targets."""

from __future__ import annotations

from typing import TYPE_CHECKING

import sqlalchemy as sa
from sqlalchemy.orm import Mapped, mapped_column, relationship

from snippet_harvester.core.models.base import Base, CreatedAtMixin

if TYPE_CHECKING:
    from snippet_harvester.core.models.results import ExtractionResultRecord


class TargetRecord(CreatedAtMixin, Base):
    """A page/selector pair the scheduler visits on every batch while ``active``.

    ``mode`` holds a :class:`~snippet_harvester.scraper.models.RenderMode`
    value; it is validated before the row is written.
    """

    __tablename__ = "targets"

    id: Mapped[int] = mapped_column(sa.Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(sa.String(255), nullable=False)
    url: Mapped[str] = mapped_column(sa.Text, nullable=False)
    selector: Mapped[str] = mapped_column(sa.Text, nullable=False)
    mode: Mapped[str] = mapped_column(sa.String(16), nullable=False, server_default="static")
    category: Mapped[str] = mapped_column(sa.String(100), nullable=False, server_default="general")
    active: Mapped[bool] = mapped_column(sa.Boolean, nullable=False, server_default=sa.true(), index=True)

    results: Mapped[list[ExtractionResultRecord]] = relationship(
        back_populates="target",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (sa.CheckConstraint("mode IN ('static', 'dynamic')", name="ck_targets_mode"),)

    def __repr__(self) -> str:
        return f"<TargetRecord id={self.id} name={self.name!r} mode={self.mode}>"
