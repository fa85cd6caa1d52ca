"""create_credit_and_generation_tables

Revision ID: 3f9a1c2d7b10
Revises:
Create Date: 2026-10-19 09:12:41.218334

"""

from typing import Sequence, Union

import sqlalchemy as sa

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "3f9a1c2d7b10"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

# SQLModel stores str enums by member name
generation_task_status = sa.Enum(
    "PROCESSING", "PUBLISHING", "COMPLETE", "FAILED", name="generationtaskstatus"
)


def upgrade() -> None:
    """Create credit_accounts, generation_records and generation_tasks tables."""
    op.create_table(
        "credit_accounts",
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("credits", sa.Integer(), nullable=False),
        sa.Column("last_reset_at", sa.DateTime(), nullable=True),
        sa.CheckConstraint("credits >= 0", name="ck_credit_accounts_non_negative"),
        sa.PrimaryKeyConstraint("user_id"),
    )

    op.create_table(
        "generation_records",
        sa.Column("id", sa.Uuid(), nullable=False),
        sa.Column("image_url", sa.String(), nullable=False),
        sa.Column("style_id", sa.String(length=100), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("created_at", sa.DateTime(), nullable=False),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index("ix_generation_records_user_id", "generation_records", ["user_id"])
    op.create_index("ix_generation_records_created_at", "generation_records", ["created_at"])

    op.create_table(
        "generation_tasks",
        sa.Column("task_id", sa.String(length=255), nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("provider_id", sa.String(length=255), nullable=False),
        sa.Column("style_id", sa.String(length=100), nullable=False),
        sa.Column("status", generation_task_status, nullable=False),
        sa.Column("image_url", sa.String(), nullable=True),
        sa.Column("error", sa.String(length=1000), nullable=True),
        sa.Column("submitted_at", sa.DateTime(), nullable=False),
        sa.Column("completed_at", sa.DateTime(), nullable=True),
        sa.PrimaryKeyConstraint("task_id"),
    )
    op.create_index("ix_generation_tasks_user_id", "generation_tasks", ["user_id"])
    op.create_index("ix_generation_tasks_status", "generation_tasks", ["status"])


def downgrade() -> None:
    """Drop all Portraitly tables."""
    op.drop_index("ix_generation_tasks_status", table_name="generation_tasks")
    op.drop_index("ix_generation_tasks_user_id", table_name="generation_tasks")
    op.drop_table("generation_tasks")
    generation_task_status.drop(op.get_bind(), checkfirst=True)

    op.drop_index("ix_generation_records_created_at", table_name="generation_records")
    op.drop_index("ix_generation_records_user_id", table_name="generation_records")
    op.drop_table("generation_records")

    op.drop_table("credit_accounts")
