"""At most one task per schedule per day, plus a lookup index on scheduled_on

Revision ID: 003
Revises: 002
Create Date: 2025-10-07

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '003'
down_revision: Union[str, None] = '002'
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Keep the earliest task when duplicates slipped in before the index existed
    conn.execute(text("""
        DELETE FROM tasks
        WHERE schedule_id IS NOT NULL
          AND rowid NOT IN (
              SELECT MIN(rowid) FROM tasks
              WHERE schedule_id IS NOT NULL
              GROUP BY schedule_id, scheduled_day
          )
    """))

    conn.execute(text("""
        CREATE UNIQUE INDEX IF NOT EXISTS ux_tasks_schedule_day
        ON tasks (schedule_id, scheduled_day)
        WHERE schedule_id IS NOT NULL
    """))
    conn.execute(text(
        "CREATE INDEX IF NOT EXISTS ix_tasks_scheduled_on ON tasks (scheduled_on)"
    ))


def downgrade() -> None:
    conn = op.get_bind()
    conn.execute(text("DROP INDEX IF EXISTS ix_tasks_scheduled_on"))
    conn.execute(text("DROP INDEX IF EXISTS ux_tasks_schedule_day"))
