"""
Date and time-of-day helpers.

All timestamps are naive UTC. Values with an offset are converted to UTC,
values without one are taken as UTC already. Storage uses ISO text with
millisecond precision so string order matches time order.
"""
import re
from datetime import date, datetime, time, timezone
from typing import Union

from errors import InvalidDateError, ValidationError

TIME_OF_DAY_PATTERN = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")

END_OF_DAY = time(23, 59, 59, 999000)


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


def to_utc_naive(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


def parse_calendar_date(value: Union[str, date]) -> date:
    """
    Parse a calendar date from YYYY-MM-DD or any ISO date/datetime string.
    For datetimes the date is taken as written, without shifting to UTC.
    Raises InvalidDateError when nothing parses.
    """
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateError()

    text = value.strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.fromisoformat(text).date()
    except ValueError:
        raise InvalidDateError() from None


def parse_timestamp(value: Union[str, datetime, date]) -> datetime:
    """Parse an ISO timestamp (or bare date, meaning midnight) into naive UTC."""
    if isinstance(value, datetime):
        return to_utc_naive(value)
    if isinstance(value, date):
        return datetime.combine(value, time.min)
    if not isinstance(value, str) or not value.strip():
        raise InvalidDateError("Invalid timestamp format")
    try:
        return to_utc_naive(datetime.fromisoformat(value.strip()))
    except ValueError:
        raise InvalidDateError("Invalid timestamp format") from None


def parse_time_of_day(value: str) -> time:
    """Parse an HH:MM 24-hour string."""
    match = TIME_OF_DAY_PATTERN.match(value or "")
    if not match:
        raise ValidationError("Time must be in HH:MM format")
    return time(int(match.group(1)), int(match.group(2)))


def day_bounds(day: date) -> tuple[datetime, datetime]:
    """First and last millisecond of a calendar day."""
    return datetime.combine(day, time.min), datetime.combine(day, END_OF_DAY)


def compose_scheduled_on(day: date, time_of_day: str) -> datetime:
    return datetime.combine(day, parse_time_of_day(time_of_day))


def format_timestamp(value: datetime) -> str:
    return to_utc_naive(value).isoformat(timespec="milliseconds")


def load_timestamp(value: str) -> datetime:
    return datetime.fromisoformat(value)
