"""Initial schema: targets, extraction results and settings.

Creates the Snippet Harvester tables in FK-dependency order:

1. targets             page/selector pairs visited by the scheduler
2. extraction_results  append-only run results (FK -> targets, CASCADE)
3. settings            key/value store for the schedule policy

Revision ID: 001
Revises:
Create Date: 2026-10-18
"""

from __future__ import annotations

from typing import Sequence, Union

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    """Create all tables and indexes."""
    op.create_table(
        "targets",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column("name", sa.String(255), nullable=False),
        sa.Column("url", sa.Text(), nullable=False),
        sa.Column("selector", sa.Text(), nullable=False),
        sa.Column("mode", sa.String(16), nullable=False, server_default=sa.text("'static'")),
        sa.Column("category", sa.String(100), nullable=False, server_default=sa.text("'general'")),
        sa.Column("active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column(
            "created_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
        sa.CheckConstraint("mode IN ('static', 'dynamic')", name="ck_targets_mode"),
    )
    op.create_index("ix_targets_active", "targets", ["active"])

    op.create_table(
        "extraction_results",
        sa.Column("id", sa.Integer(), primary_key=True, autoincrement=True),
        sa.Column(
            "target_id",
            sa.Integer(),
            sa.ForeignKey("targets.id", ondelete="CASCADE"),
            nullable=False,
        ),
        sa.Column("fragments", sa.JSON(), nullable=False),
        sa.Column("outcome", sa.String(16), nullable=False),
        sa.Column("error_kind", sa.String(32), nullable=True),
        sa.Column("error_detail", sa.Text(), nullable=True),
        sa.Column("attempts", sa.Integer(), nullable=False, server_default=sa.text("0")),
        sa.Column("scraped_at", sa.DateTime(timezone=True), nullable=False),
    )
    op.create_index(
        "ix_extraction_results_target_scraped",
        "extraction_results",
        ["target_id", "scraped_at"],
    )
    op.create_index("ix_extraction_results_scraped_at", "extraction_results", ["scraped_at"])

    op.create_table(
        "settings",
        sa.Column("key", sa.String(64), primary_key=True),
        sa.Column("value", sa.Text(), nullable=False),
        sa.Column(
            "updated_at",
            sa.DateTime(timezone=True),
            nullable=False,
            server_default=sa.text("NOW()"),
        ),
    )


def downgrade() -> None:
    """Drop all tables."""
    op.drop_table("settings")
    op.drop_index("ix_extraction_results_scraped_at", table_name="extraction_results")
    op.drop_index("ix_extraction_results_target_scraped", table_name="extraction_results")
    op.drop_table("extraction_results")
    op.drop_index("ix_targets_active", table_name="targets")
    op.drop_table("targets")
