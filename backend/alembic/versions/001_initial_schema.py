"""Initial schema - users, sessions, predefined tasks, schedules, tasks, customers, cats

Revision ID: 001
Revises: None
Create Date: 2025-09-02

"""
from typing import Sequence, Union

from alembic import op
from sqlalchemy import text

revision: str = '001'
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    conn = op.get_bind()

    # Users and sessions are written by the auth provider
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS users (
            id TEXT PRIMARY KEY,
            name TEXT,
            email TEXT UNIQUE,
            created_at TEXT NOT NULL
        )
    """))
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS sessions (
            id TEXT PRIMARY KEY,
            token TEXT NOT NULL UNIQUE,
            user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            expires_at TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS predefined_tasks (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            description TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS predefined_task_schedules (
            id TEXT PRIMARY KEY,
            predefined_task_id TEXT NOT NULL REFERENCES predefined_tasks(id) ON DELETE CASCADE,
            schedule_type TEXT NOT NULL,
            schedule_on TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """))

    # scheduled_on is naive UTC, YYYY-MM-DDTHH:MM:SS.fff; scheduled_day is its date part
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS tasks (
            id TEXT PRIMARY KEY,
            predefined_task_id TEXT REFERENCES predefined_tasks(id) ON DELETE SET NULL,
            schedule_id TEXT REFERENCES predefined_task_schedules(id) ON DELETE SET NULL,
            scheduled_on TEXT NOT NULL,
            scheduled_day TEXT NOT NULL,
            status TEXT NOT NULL DEFAULT 'PENDING',
            assigned_to TEXT REFERENCES users(id) ON DELETE SET NULL,
            duration INTEGER,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))

    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS customers (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            gender TEXT NOT NULL,
            type TEXT,
            birthday TEXT,
            breed TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))
    conn.execute(text("""
        CREATE TABLE IF NOT EXISTS cats (
            id TEXT PRIMARY KEY,
            name TEXT NOT NULL,
            gender TEXT NOT NULL,
            birthday TEXT,
            breed TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """))


def downgrade() -> None:
    conn = op.get_bind()
    for table in ("cats", "customers", "tasks", "predefined_task_schedules",
                  "predefined_tasks", "sessions", "users"):
        conn.execute(text(f"DROP TABLE IF EXISTS {table}"))
