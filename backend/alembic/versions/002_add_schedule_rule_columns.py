"""Add days and day_of_month columns for WEEKLY and MONTHLY schedules

Revision ID: 002
Revises: 001
Create Date: 2025-09-16

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '002'
down_revision: Union[str, None] = '001'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Check existing columns
    columns = {row[1] for row in conn.execute(text("PRAGMA table_info(predefined_task_schedules)")).fetchall()}

    if "days" not in columns:
        # Comma separated weekday codes, e.g. MON,WED,FRI
        conn.execute(text("ALTER TABLE predefined_task_schedules ADD COLUMN days TEXT"))

    if "day_of_month" not in columns:
        conn.execute(text("ALTER TABLE predefined_task_schedules ADD COLUMN day_of_month INTEGER"))


def downgrade() -> None:
    # SQLite doesn't support DROP COLUMN easily; downgrade is a no-op
    pass
