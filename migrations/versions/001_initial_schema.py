"""Initial schema: events table for the project activity feed.

Revision ID: 001
Revises:
Create Date: 2026-10-19

"""

from collections.abc import Sequence

import sqlalchemy as sa
from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: str | None = None
branch_labels: str | Sequence[str] | None = None
depends_on: str | Sequence[str] | None = None


def upgrade() -> None:
    """Create the events table and its lookup indexes."""
    op.create_table(
        "events",
        sa.Column("id", sa.Integer, primary_key=True),
        sa.Column("project_id", sa.Integer, nullable=False),
        sa.Column("action", sa.String(32), nullable=False),
        sa.Column("author_id", sa.Integer, nullable=False),
        sa.Column("data", sa.JSON, nullable=False),
        sa.Column(
            "created_at",
            sa.DateTime,
            nullable=False,
            server_default=sa.func.now(),
        ),
    )
    op.create_index("ix_events_project_id_created_at", "events", ["project_id", "created_at"])
    op.create_index("ix_events_author_id", "events", ["author_id"])


def downgrade() -> None:
    """Drop the events table."""
    op.drop_index("ix_events_author_id", table_name="events")
    op.drop_index("ix_events_project_id_created_at", table_name="events")
    op.drop_table("events")
