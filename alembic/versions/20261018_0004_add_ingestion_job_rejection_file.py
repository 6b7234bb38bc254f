"""add ingestion_jobs.rejection_file

Revision ID: 20261018_0004
Revises: 20261018_0003
Create Date: 2026-10-18 14:05:00
"""

from __future__ import annotations

from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "20261018_0004"
down_revision = "20261018_0003"
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.add_column(
        "ingestion_jobs",
        sa.Column(
            "rejection_file",
            sa.Text(),
            nullable=True,
            comment="Rendered CSV of every rejected row",
        ),
    )
    op.alter_column(
        "ingestion_jobs",
        "result_payload",
        existing_type=postgresql.JSONB(astext_type=sa.Text()),
        existing_nullable=True,
        comment="Run summary, errors and a preview of rejected rows",
        existing_comment="Run summary, errors and rejected rows",
    )


def downgrade() -> None:
    op.alter_column(
        "ingestion_jobs",
        "result_payload",
        existing_type=postgresql.JSONB(astext_type=sa.Text()),
        existing_nullable=True,
        comment="Run summary, errors and rejected rows",
        existing_comment="Run summary, errors and a preview of rejected rows",
    )
    op.drop_column("ingestion_jobs", "rejection_file")
