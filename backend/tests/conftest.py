"""
Shared pytest fixtures for backend tests.
Each test gets its own SQLite file with the schema applied directly.
"""
import pytest
import sqlite3
import sys
import os

# Add backend to path for imports
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from config import Settings
from database import Database

# Mirrors alembic/versions 001-003
SCHEMA = """
    CREATE TABLE users (
        id TEXT PRIMARY KEY,
        name TEXT,
        email TEXT UNIQUE,
        created_at TEXT NOT NULL
    );

    CREATE TABLE sessions (
        id TEXT PRIMARY KEY,
        token TEXT NOT NULL UNIQUE,
        user_id TEXT NOT NULL REFERENCES users(id) ON DELETE CASCADE,
        expires_at TEXT NOT NULL,
        created_at TEXT NOT NULL
    );

    CREATE TABLE predefined_tasks (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        description TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE predefined_task_schedules (
        id TEXT PRIMARY KEY,
        predefined_task_id TEXT NOT NULL REFERENCES predefined_tasks(id) ON DELETE CASCADE,
        schedule_type TEXT NOT NULL,
        schedule_on TEXT NOT NULL,
        created_at TEXT NOT NULL,
        days TEXT,
        day_of_month INTEGER
    );

    CREATE TABLE tasks (
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
    );

    CREATE UNIQUE INDEX ux_tasks_schedule_day
        ON tasks (schedule_id, scheduled_day)
        WHERE schedule_id IS NOT NULL;

    CREATE INDEX ix_tasks_scheduled_on ON tasks (scheduled_on);

    CREATE TABLE customers (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        gender TEXT NOT NULL,
        type TEXT,
        birthday TEXT,
        breed TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );

    CREATE TABLE cats (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        gender TEXT NOT NULL,
        birthday TEXT,
        breed TEXT,
        created_at TEXT NOT NULL,
        updated_at TEXT NOT NULL
    );
"""


@pytest.fixture
def test_db(tmp_path) -> Database:
    """
    Create an isolated test database for each test.
    Uses a temp file (not :memory:) because Database opens a new connection per operation.
    """
    db_path = str(tmp_path / "test.db")

    # Create tables directly (skip alembic for tests)
    conn = sqlite3.connect(db_path)
    conn.executescript(SCHEMA)
    conn.commit()
    conn.close()

    yield Database(db_path)


@pytest.fixture
def settings(test_db) -> Settings:
    return Settings(database_path=test_db.path, run_migrations=False)


@pytest.fixture
def app_client(test_db, settings):
    """Test client for an app wired to the test database, migrations skipped."""
    from fastapi.testclient import TestClient
    from main import create_app

    with TestClient(create_app(settings, test_db)) as client:
        yield client

