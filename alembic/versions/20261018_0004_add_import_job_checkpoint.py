"""add import job checkpoint and staleness index

Revision ID: 20261018_0004
Revises: 20261018_0003
Create Date: 2026-10-18 12:30:00
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
        "import_jobs",
        sa.Column(
            "checkpoint_payload",
            postgresql.JSONB(astext_type=sa.Text()),
            nullable=True,
            comment="Running tally, rewritten with every progress update",
        ),
    )
    op.alter_column(
        "import_jobs",
        "request_payload",
        existing_type=postgresql.JSONB(astext_type=sa.Text()),
        existing_nullable=True,
        comment="Import flags, filename, detected format, default overrides and the parsed records",
        existing_comment="Import flags, filename, detected format and default overrides",
    )
    op.create_index(
        "ix_import_jobs_status_updated_at",
        "import_jobs",
        ["status", "updated_at"],
        unique=False,
    )


def downgrade() -> None:
    op.drop_index("ix_import_jobs_status_updated_at", table_name="import_jobs")
    op.alter_column(
        "import_jobs",
        "request_payload",
        existing_type=postgresql.JSONB(astext_type=sa.Text()),
        existing_nullable=True,
        comment="Import flags, filename, detected format and default overrides",
        existing_comment="Import flags, filename, detected format, default overrides and the parsed records",
    )
    op.drop_column("import_jobs", "checkpoint_payload")
