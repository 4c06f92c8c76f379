import logging
import os
import secrets
import sqlite3
import subprocess
import uuid
from contextlib import contextmanager
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Iterable, Optional

from dates import format_timestamp, load_timestamp, utcnow
from errors import StorageError, ValidationError
from models import (
    SCHEDULE_ADAPTER,
    Cat,
    Customer,
    PredefinedTask,
    Schedule,
    Session,
    Task,
    TaskStatus,
    User,
)

logger = logging.getLogger(__name__)

# Tasks are always read with the name of their predefined task
TASK_SELECT = """
    SELECT tasks.*, predefined_tasks.name AS name
    FROM tasks
    LEFT JOIN predefined_tasks ON predefined_tasks.id = tasks.predefined_task_id
"""

SCHEDULE_CONFLICT_MESSAGE = "A task for this schedule already exists on that day"
SCHEDULED_TASK_REASSIGN_MESSAGE = "Cannot change the predefined task of a task created from a schedule"


def _new_id() -> str:
    return str(uuid.uuid4())


def _to_column(value):
    """Convert a model value to its SQLite representation."""
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, datetime):
        return format_timestamp(value)
    if isinstance(value, date):
        return value.isoformat()
    return value


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        name=row["name"],
        email=row["email"],
        created_at=load_timestamp(row["created_at"]),
    )


def _row_to_schedule(row) -> Schedule:
    data = {
        "id": row["id"],
        "predefined_task_id": row["predefined_task_id"],
        "type": row["schedule_type"],
        "time": row["schedule_on"],
    }
    if row["days"]:
        data["days"] = row["days"].split(",")
    if row["day_of_month"] is not None:
        data["day_of_month"] = row["day_of_month"]
    return SCHEDULE_ADAPTER.validate_python(data)


def _row_to_predefined_task(row, schedules: list[Schedule]) -> PredefinedTask:
    return PredefinedTask(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        schedules=schedules,
        created_at=load_timestamp(row["created_at"]),
        updated_at=load_timestamp(row["updated_at"]),
    )


def _row_to_task(row) -> Task:
    return Task(
        id=row["id"],
        predefined_task_id=row["predefined_task_id"],
        schedule_id=row["schedule_id"],
        name=row["name"],
        scheduled_on=load_timestamp(row["scheduled_on"]),
        status=row["status"],
        assigned_to=row["assigned_to"],
        duration=row["duration"],
        created_at=load_timestamp(row["created_at"]),
        updated_at=load_timestamp(row["updated_at"]),
    )


def _row_to_cat(row) -> Cat:
    return Cat(
        id=row["id"],
        name=row["name"],
        gender=row["gender"],
        birthday=row["birthday"],
        breed=row["breed"],
        created_at=load_timestamp(row["created_at"]),
        updated_at=load_timestamp(row["updated_at"]),
    )


def _row_to_customer(row) -> Customer:
    return Customer(
        id=row["id"],
        name=row["name"],
        gender=row["gender"],
        type=row["type"],
        birthday=row["birthday"],
        breed=row["breed"],
        created_at=load_timestamp(row["created_at"]),
        updated_at=load_timestamp(row["updated_at"]),
    )


class Database:
    """
    Handle on the SQLite store, owned by the app and passed to whoever needs it.
    Opens one connection per operation.

    Absent rows come back as None (False for deletes). Any driver failure is
    raised as StorageError, so callers never inspect sqlite3 errors.
    """

    def __init__(self, path: str):
        self.path = path

    @contextmanager
    def connect(self):
        """Context manager for database connections."""
        try:
            conn = sqlite3.connect(self.path, timeout=30)
        except sqlite3.Error as e:
            logger.exception("Could not open database at %s", self.path)
            raise StorageError("Database unavailable") from e
        conn.row_factory = sqlite3.Row
        try:
            conn.execute("PRAGMA foreign_keys = ON")
            yield conn
        except sqlite3.Error as e:
            logger.exception("Database operation failed")
            raise StorageError("Database operation failed") from e
        finally:
            conn.close()

    def init_db(self):
        """Initialize database by running Alembic migrations."""
        backend_dir = os.path.dirname(os.path.abspath(__file__))
        env = dict(os.environ, DATABASE_PATH=os.path.abspath(self.path))
        logger.info("Running migrations on %s", self.path)
        subprocess.run(
            ["alembic", "upgrade", "head"],
            cwd=backend_dir,
            env=env,
            check=True
        )

    # Generic row helpers

    def _insert(self, conn, table: str, values: dict):
        columns = ", ".join(values.keys())
        placeholders = ", ".join("?" for _ in values)
        conn.execute(
            f"INSERT INTO {table} ({columns}) VALUES ({placeholders})",
            [_to_column(v) for v in values.values()]
        )

    def _update(self, conn, table: str, row_id: str, updates: dict) -> bool:
        """
        Update a row with the fields provided. Only fields that differ from the
        stored values are written, and updated_at moves only when something changed.
        Returns False if the row does not exist.
        """
        row = conn.execute(f"SELECT * FROM {table} WHERE id = ?", (row_id,)).fetchone()
        if not row:
            return False

        keys = row.keys()
        changes = {}
        for field, new_value in updates.items():
            if field not in keys:
                continue
            new_value = _to_column(new_value)
            if new_value != row[field]:
                changes[field] = new_value

        if changes:
            changes["updated_at"] = format_timestamp(utcnow())
            set_clause = ", ".join(f"{field} = ?" for field in changes.keys())
            values = list(changes.values()) + [row_id]
            conn.execute(f"UPDATE {table} SET {set_clause} WHERE id = ?", values)
        return True

    def _delete(self, table: str, row_id: str) -> bool:
        with self.connect() as conn:
            cursor = conn.execute(f"DELETE FROM {table} WHERE id = ?", (row_id,))
            conn.commit()
            return cursor.rowcount > 0

    # Users and sessions. Sign-in itself belongs to the auth provider;
    # the backend only needs to resolve tokens and check user existence.

    def create_user(self, name: Optional[str] = None, email: Optional[str] = None) -> User:
        user = User(id=_new_id(), name=name, email=email, created_at=utcnow())
        with self.connect() as conn:
            self._insert(conn, "users", {
                "id": user.id,
                "name": user.name,
                "email": user.email,
                "created_at": user.created_at,
            })
            conn.commit()
        return user

    def get_user(self, user_id: str) -> Optional[User]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM users WHERE id = ?", (user_id,)).fetchone()
            return _row_to_user(row) if row else None

    def create_session(self, user_id: str, ttl: timedelta = timedelta(days=7)) -> Session:
        now = utcnow()
        session = Session(
            id=_new_id(),
            token=secrets.token_urlsafe(32),
            user_id=user_id,
            expires_at=now + ttl,
            created_at=now,
        )
        with self.connect() as conn:
            self._insert(conn, "sessions", {
                "id": session.id,
                "token": session.token,
                "user_id": session.user_id,
                "expires_at": session.expires_at,
                "created_at": session.created_at,
            })
            conn.commit()
        return session

    def get_session_user(self, token: str) -> Optional[User]:
        """User behind an unexpired session token, or None."""
        with self.connect() as conn:
            row = conn.execute(
                """SELECT users.* FROM sessions
                   JOIN users ON users.id = sessions.user_id
                   WHERE sessions.token = ? AND sessions.expires_at > ?""",
                (token, format_timestamp(utcnow()))
            ).fetchone()
            return _row_to_user(row) if row else None

    # Predefined tasks and their schedules

    def _schedules_for(self, conn, predefined_task_ids: list[str]) -> dict[str, list[Schedule]]:
        if not predefined_task_ids:
            return {}
        placeholders = ", ".join("?" for _ in predefined_task_ids)
        rows = conn.execute(
            f"""SELECT * FROM predefined_task_schedules
                WHERE predefined_task_id IN ({placeholders})
                ORDER BY created_at, rowid""",
            predefined_task_ids
        ).fetchall()
        by_task: dict[str, list[Schedule]] = {}
        for row in rows:
            by_task.setdefault(row["predefined_task_id"], []).append(_row_to_schedule(row))
        return by_task

    def _insert_schedule(self, conn, predefined_task_id: str, schedule: Schedule, now: datetime):
        self._insert(conn, "predefined_task_schedules", {
            "id": _new_id(),
            "predefined_task_id": predefined_task_id,
            "schedule_type": schedule.type,
            "schedule_on": schedule.time,
            "days": schedule.rule_days(),
            "day_of_month": schedule.rule_day_of_month(),
            "created_at": now,
        })

    def _fetch_predefined_task(self, conn, predefined_task_id: str) -> Optional[PredefinedTask]:
        row = conn.execute(
            "SELECT * FROM predefined_tasks WHERE id = ?", (predefined_task_id,)
        ).fetchone()
        if not row:
            return None
        schedules = self._schedules_for(conn, [row["id"]]).get(row["id"], [])
        return _row_to_predefined_task(row, schedules)

    def list_predefined_tasks(self) -> list[PredefinedTask]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM predefined_tasks ORDER BY created_at DESC, rowid DESC"
            ).fetchall()
            schedules = self._schedules_for(conn, [row["id"] for row in rows])
            return [_row_to_predefined_task(row, schedules.get(row["id"], [])) for row in rows]

    def get_predefined_task(self, predefined_task_id: str) -> Optional[PredefinedTask]:
        with self.connect() as conn:
            return self._fetch_predefined_task(conn, predefined_task_id)

    def create_predefined_task(
        self,
        name: str,
        description: Optional[str] = None,
        schedules: Iterable[Schedule] = ()
    ) -> PredefinedTask:
        """Create a predefined task together with its schedules, in one transaction."""
        now = utcnow()
        predefined_task_id = _new_id()
        with self.connect() as conn:
            self._insert(conn, "predefined_tasks", {
                "id": predefined_task_id,
                "name": name,
                "description": description,
                "created_at": now,
                "updated_at": now,
            })
            for schedule in schedules:
                self._insert_schedule(conn, predefined_task_id, schedule, now)
            conn.commit()
            return self._fetch_predefined_task(conn, predefined_task_id)

    def _update_schedule(self, conn, existing: Schedule, schedule: Schedule) -> bool:
        """Rewrite a schedule's rule in place, keeping its id. Returns True if the rule changed."""
        if existing.rule_key() == schedule.rule_key():
            return False
        conn.execute(
            """UPDATE predefined_task_schedules
               SET schedule_type = ?, schedule_on = ?, days = ?, day_of_month = ?
               WHERE id = ?""",
            (schedule.type, schedule.time, schedule.rule_days(), schedule.rule_day_of_month(), existing.id)
        )
        return True

    def update_predefined_task(
        self,
        predefined_task_id: str,
        schedules: Optional[Iterable[Schedule]] = None,
        **updates
    ) -> Optional[PredefinedTask]:
        """
        Update name/description and, when `schedules` is given, replace the
        schedule set.

        An entry carrying the id of one of this task's schedules edits that
        schedule in place. Entries without a known id are matched by rule, so an
        unchanged schedule keeps its id either way and tasks already
        materialized from it stay linked. Schedules left unmatched are deleted.
        """
        with self.connect() as conn:
            if not self._update(conn, "predefined_tasks", predefined_task_id, updates):
                return None

            if schedules is not None:
                now = utcnow()
                current = {
                    schedule.id: schedule
                    for schedule in self._schedules_for(conn, [predefined_task_id]).get(predefined_task_id, [])
                }
                changed = False

                by_rule = []
                for schedule in schedules:
                    if schedule.id in current:
                        existing = current.pop(schedule.id)
                        changed |= self._update_schedule(conn, existing, schedule)
                    else:
                        by_rule.append(schedule)

                unmatched: dict[tuple, list[str]] = {}
                for schedule in current.values():
                    unmatched.setdefault(schedule.rule_key(), []).append(schedule.id)

                for schedule in by_rule:
                    kept = unmatched.get(schedule.rule_key())
                    if kept:
                        kept.pop(0)
                    else:
                        self._insert_schedule(conn, predefined_task_id, schedule, now)
                        changed = True

                for schedule_ids in unmatched.values():
                    for schedule_id in schedule_ids:
                        conn.execute(
                            "DELETE FROM predefined_task_schedules WHERE id = ?", (schedule_id,)
                        )
                        changed = True

                if changed:
                    conn.execute(
                        "UPDATE predefined_tasks SET updated_at = ? WHERE id = ?",
                        (format_timestamp(now), predefined_task_id)
                    )

            conn.commit()
            return self._fetch_predefined_task(conn, predefined_task_id)


    def delete_predefined_task(self, predefined_task_id: str) -> bool:
        """Delete a predefined task. Schedules cascade; tasks keep a null reference."""
        return self._delete("predefined_tasks", predefined_task_id)

    def list_schedules(self) -> list[Schedule]:
        with self.connect() as conn:
            rows = conn.execute(
                "SELECT * FROM predefined_task_schedules ORDER BY schedule_on, created_at"
            ).fetchall()
            return [_row_to_schedule(row) for row in rows]

    # Tasks

    def list_tasks(
        self,
        status: Optional[TaskStatus] = None,
        assigned_to: Optional[str] = None
    ) -> list[Task]:
        clauses = []
        params = []
        if status is not None:
            clauses.append("tasks.status = ?")
            params.append(_to_column(status))
        if assigned_to is not None:
            clauses.append("tasks.assigned_to = ?")
            params.append(assigned_to)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self.connect() as conn:
            rows = conn.execute(
                f"{TASK_SELECT} {where} ORDER BY tasks.scheduled_on, tasks.created_at",
                params
            ).fetchall()
            return [_row_to_task(row) for row in rows]

    def list_tasks_between(self, start: datetime, end: datetime) -> list[Task]:
        """Tasks scheduled within [start, end], earliest first."""
        with self.connect() as conn:
            rows = conn.execute(
                f"""{TASK_SELECT}
                    WHERE tasks.scheduled_on >= ? AND tasks.scheduled_on <= ?
                    ORDER BY tasks.scheduled_on, tasks.created_at""",
                (format_timestamp(start), format_timestamp(end))
            ).fetchall()
            return [_row_to_task(row) for row in rows]

    def scheduled_ids_between(self, start: datetime, end: datetime) -> set[str]:
        """Ids of schedules that already have a task within [start, end]."""
        with self.connect() as conn:
            rows = conn.execute(
                """SELECT DISTINCT schedule_id FROM tasks
                   WHERE schedule_id IS NOT NULL AND scheduled_on >= ? AND scheduled_on <= ?""",
                (format_timestamp(start), format_timestamp(end))
            ).fetchall()
            return {row["schedule_id"] for row in rows}

    def get_task(self, task_id: str) -> Optional[Task]:
        with self.connect() as conn:
            row = conn.execute(f"{TASK_SELECT} WHERE tasks.id = ?", (task_id,)).fetchone()
            return _row_to_task(row) if row else None

    def create_task(
        self,
        predefined_task_id: Optional[str],
        scheduled_on: datetime,
        status: TaskStatus = TaskStatus.PENDING,
        assigned_to: Optional[str] = None,
        duration: Optional[int] = None
    ) -> Task:
        """Create an ad-hoc task (not tied to a schedule)."""
        now = utcnow()
        task_id = _new_id()
        with self.connect() as conn:
            self._insert(conn, "tasks", {
                "id": task_id,
                "predefined_task_id": predefined_task_id,
                "schedule_id": None,
                "scheduled_on": scheduled_on,
                "scheduled_day": scheduled_on.date(),
                "status": status,
                "assigned_to": assigned_to,
                "duration": duration,
                "created_at": now,
                "updated_at": now,
            })
            conn.commit()
            row = conn.execute(f"{TASK_SELECT} WHERE tasks.id = ?", (task_id,)).fetchone()
            return _row_to_task(row)

    def create_scheduled_tasks(self, instances: Iterable[tuple[Schedule, datetime]]) -> int:
        """
        Create one PENDING task per (schedule, scheduled_on) pair unless that
        schedule already has a task on that day.

        The unique index on (schedule_id, scheduled_day) makes each insert
        conditional, and the batch runs in one immediate transaction: either
        every missing task is created or none is. Returns how many were created.
        """
        now = utcnow()
        created = 0
        with self.connect() as conn:
            conn.isolation_level = None
            conn.execute("BEGIN IMMEDIATE")
            try:
                for schedule, scheduled_on in instances:
                    cursor = conn.execute(
                        """INSERT OR IGNORE INTO tasks
                           (id, predefined_task_id, schedule_id, scheduled_on, scheduled_day,
                            status, created_at, updated_at)
                           VALUES (?, ?, ?, ?, ?, ?, ?, ?)""",
                        (
                            _new_id(),
                            schedule.predefined_task_id,
                            schedule.id,
                            format_timestamp(scheduled_on),
                            scheduled_on.date().isoformat(),
                            TaskStatus.PENDING.value,
                            format_timestamp(now),
                            format_timestamp(now),
                        )
                    )
                    created += cursor.rowcount
                conn.execute("COMMIT")
            except Exception:
                if conn.in_transaction:
                    conn.execute("ROLLBACK")
                raise
        return created

    def update_task(self, task_id: str, **updates) -> Optional[Task]:
        """
        Update a task with any fields provided (predefined_task_id, scheduled_on,
        status, assigned_to, duration). Returns None if the task does not exist.
        """
        if updates.get("scheduled_on") is not None:
            updates["scheduled_day"] = updates["scheduled_on"].date()
        with self.connect() as conn:
            if "predefined_task_id" in updates:
                row = conn.execute(
                    "SELECT predefined_task_id, schedule_id FROM tasks WHERE id = ?", (task_id,)
                ).fetchone()
                # A scheduled task holds its schedule's slot for the day
                if row and row["schedule_id"] and row["predefined_task_id"] != updates["predefined_task_id"]:
                    raise ValidationError(SCHEDULED_TASK_REASSIGN_MESSAGE)
            try:
                if not self._update(conn, "tasks", task_id, updates):
                    return None
            except sqlite3.IntegrityError as e:
                if "UNIQUE" in str(e):
                    raise ValidationError(SCHEDULE_CONFLICT_MESSAGE) from e
                raise
            conn.commit()
            row = conn.execute(f"{TASK_SELECT} WHERE tasks.id = ?", (task_id,)).fetchone()
            return _row_to_task(row)

    def delete_task(self, task_id: str) -> bool:
        return self._delete("tasks", task_id)

    # Customers and cats

    def list_customers(self, customer_type: Optional[str] = None) -> list[Customer]:
        with self.connect() as conn:
            if customer_type:
                rows = conn.execute(
                    "SELECT * FROM customers WHERE type = ? ORDER BY created_at DESC, rowid DESC",
                    (customer_type,)
                ).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM customers ORDER BY created_at DESC, rowid DESC"
                ).fetchall()
            return [_row_to_customer(row) for row in rows]

    def get_customer(self, customer_id: str) -> Optional[Customer]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM customers WHERE id = ?", (customer_id,)).fetchone()
            return _row_to_customer(row) if row else None

    def create_customer(self, **fields) -> Customer:
        now = utcnow()
        customer_id = _new_id()
        with self.connect() as conn:
            self._insert(conn, "customers", {
                "id": customer_id,
                **fields,
                "created_at": now,
                "updated_at": now,
            })
            conn.commit()
            row = conn.execute("SELECT * FROM customers WHERE id = ?", (customer_id,)).fetchone()
            return _row_to_customer(row)

    def update_customer(self, customer_id: str, **updates) -> Optional[Customer]:
        with self.connect() as conn:
            if not self._update(conn, "customers", customer_id, updates):
                return None
            conn.commit()
            row = conn.execute("SELECT * FROM customers WHERE id = ?", (customer_id,)).fetchone()
            return _row_to_customer(row)

    def delete_customer(self, customer_id: str) -> bool:
        return self._delete("customers", customer_id)

    def list_cats(self) -> list[Cat]:
        with self.connect() as conn:
            rows = conn.execute("SELECT * FROM cats ORDER BY created_at DESC, rowid DESC").fetchall()
            return [_row_to_cat(row) for row in rows]

    def get_cat(self, cat_id: str) -> Optional[Cat]:
        with self.connect() as conn:
            row = conn.execute("SELECT * FROM cats WHERE id = ?", (cat_id,)).fetchone()
            return _row_to_cat(row) if row else None

    def create_cat(self, **fields) -> Cat:
        now = utcnow()
        cat_id = _new_id()
        with self.connect() as conn:
            self._insert(conn, "cats", {
                "id": cat_id,
                **fields,
                "created_at": now,
                "updated_at": now,
            })
            conn.commit()
            row = conn.execute("SELECT * FROM cats WHERE id = ?", (cat_id,)).fetchone()
            return _row_to_cat(row)

    def update_cat(self, cat_id: str, **updates) -> Optional[Cat]:
        with self.connect() as conn:
            if not self._update(conn, "cats", cat_id, updates):
                return None
            conn.commit()
            row = conn.execute("SELECT * FROM cats WHERE id = ?", (cat_id,)).fetchone()
            return _row_to_cat(row)

    def delete_cat(self, cat_id: str) -> bool:
        return self._delete("cats", cat_id)
