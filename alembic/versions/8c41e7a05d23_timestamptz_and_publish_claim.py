"""timestamptz_and_publish_claim

Revision ID: 8c41e7a05d23
Revises: 3f9a1c2d7b10
Create Date: 2026-10-19 14:37:05.604112

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "8c41e7a05d23"
down_revision: Union[str, Sequence[str], None] = "3f9a1c2d7b10"
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# (table, column, nullable); existing values were written as UTC wall-clock time
TIMESTAMP_COLUMNS = [
    ("credit_accounts", "last_reset_at", True),
    ("generation_records", "created_at", False),
    ("generation_tasks", "submitted_at", False),
    ("generation_tasks", "completed_at", True),
]


def upgrade() -> None:
    """Store timestamps as TIMESTAMP WITH TIME ZONE and add generation_tasks.claimed_at."""
    for table, column, nullable in TIMESTAMP_COLUMNS:
        op.alter_column(
            table,
            column,
            existing_type=sa.DateTime(),
            type_=sa.DateTime(timezone=True),
            existing_nullable=nullable,
            postgresql_using=f"{column} AT TIME ZONE 'UTC'",
        )

    op.add_column(
        "generation_tasks",
        sa.Column("claimed_at", sa.DateTime(timezone=True), nullable=True),
    )


def downgrade() -> None:
    """Drop claimed_at and revert timestamps to naive UTC."""
    op.drop_column("generation_tasks", "claimed_at")

    for table, column, nullable in TIMESTAMP_COLUMNS:
        op.alter_column(
            table,
            column,
            existing_type=sa.DateTime(timezone=True),
            type_=sa.DateTime(),
            existing_nullable=nullable,
            postgresql_using=f"{column} AT TIME ZONE 'UTC'",
        )
