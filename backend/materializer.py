"""
Expands recurring predefined-task schedules into concrete tasks for a day.
"""
import logging
from datetime import date
from typing import Union

from database import Database
from dates import day_bounds, parse_calendar_date
from models import Task

logger = logging.getLogger(__name__)


def materialize_and_list_for_date(database: Database, target: Union[str, date]) -> list[Task]:
    """
    Make sure every schedule due on `target` has exactly one task that day,
    then return all tasks scheduled that day, earliest first.

    Raises InvalidDateError if `target` is not a calendar date. Creation is
    all-or-nothing: a storage failure creates no tasks and raises StorageError.
    Calling this again for the same day creates nothing new.
    """
    day = parse_calendar_date(target)
    start, end = day_bounds(day)

    due = [schedule for schedule in database.list_schedules() if schedule.is_due_on(day)]
    already_scheduled = database.scheduled_ids_between(start, end)
    missing = [
        (schedule, schedule.scheduled_on(day))
        for schedule in due
        if schedule.id not in already_scheduled
    ]

    # Concurrent callers may race past the check above; the store's
    # conditional insert still keeps one task per schedule per day.
    if missing:
        created = database.create_scheduled_tasks(missing)
        logger.info(
            "Materialized %d task(s) for %s (%d schedule(s) due)",
            created, day.isoformat(), len(due)
        )

    return database.list_tasks_between(start, end)
