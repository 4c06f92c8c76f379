"""
Tests for schedule models - validation and due-on-date predicates.
"""
import pytest
import sys
import os
from datetime import date, datetime

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from pydantic import ValidationError as PydanticValidationError

from models import (
    SCHEDULE_ADAPTER,
    DailySchedule,
    MonthlySchedule,
    PredefinedTaskCreate,
    TaskCreate,
    TaskStatus,
    WeekdaysSchedule,
    WeeklySchedule,
)

# 2025-01-20 is a Monday
MONDAY = date(2025, 1, 20)
SATURDAY = date(2025, 1, 25)


class TestScheduleParsing:
    """Tests for schedule validation."""

    def test_discriminates_on_type(self):
        """The type field picks the schedule class."""
        assert isinstance(SCHEDULE_ADAPTER.validate_python({"type": "DAILY", "time": "09:00"}), DailySchedule)
        assert isinstance(
            SCHEDULE_ADAPTER.validate_python({"type": "WEEKLY", "time": "09:00", "days": ["MON"]}),
            WeeklySchedule
        )
        assert isinstance(
            SCHEDULE_ADAPTER.validate_python({"type": "MONTHLY", "time": "09:00", "dayOfMonth": 15}),
            MonthlySchedule
        )

    def test_unknown_type_rejected(self):
        """Unknown schedule types are rejected."""
        with pytest.raises(PydanticValidationError):
            SCHEDULE_ADAPTER.validate_python({"type": "HOURLY", "time": "09:00"})

    @pytest.mark.parametrize("time", ["24:00", "9:00", "12:61", "noon"])
    def test_bad_time_rejected(self, time):
        """Malformed times are rejected."""
        with pytest.raises(PydanticValidationError):
            SCHEDULE_ADAPTER.validate_python({"type": "DAILY", "time": time})

    def test_weekly_needs_days(self):
        """Weekly schedules need at least one day."""
        with pytest.raises(PydanticValidationError):
            SCHEDULE_ADAPTER.validate_python({"type": "WEEKLY", "time": "09:00", "days": []})

    def test_monthly_day_range(self):
        """Day of month must be 1 to 31."""
        with pytest.raises(PydanticValidationError):
            SCHEDULE_ADAPTER.validate_python({"type": "MONTHLY", "time": "09:00", "dayOfMonth": 32})

    def test_recurring_in_create_payload(self):
        """recurring entries parse into schedules."""
        payload = PredefinedTaskCreate.model_validate({
            "name": "Feed cats",
            "recurring": [{"type": "DAILY", "time": "08:00"}, {"type": "WEEKDAYS", "time": "18:00"}],
        })
        assert [s.type for s in payload.recurring] == ["DAILY", "WEEKDAYS"]


class TestIsDueOn:
    """Tests for which days a schedule is due."""

    def test_daily_always_due(self):
        """Daily is due every day."""
        schedule = DailySchedule(time="09:00")
        assert schedule.is_due_on(MONDAY)
        assert schedule.is_due_on(SATURDAY)

    def test_weekdays(self):
        """Weekdays is due Monday to Friday."""
        schedule = WeekdaysSchedule(time="09:00")
        assert schedule.is_due_on(MONDAY)
        assert not schedule.is_due_on(SATURDAY)

    def test_weekly(self):
        """Weekly is due on its listed days."""
        schedule = WeeklySchedule(time="09:00", days=["MON", "WED"])
        assert schedule.is_due_on(MONDAY)
        assert schedule.is_due_on(date(2025, 1, 22))
        assert not schedule.is_due_on(date(2025, 1, 21))

    def test_monthly(self):
        """Monthly is due on its day of month."""
        schedule = MonthlySchedule(time="09:00", day_of_month=15)
        assert schedule.is_due_on(date(2025, 1, 15))
        assert not schedule.is_due_on(date(2025, 1, 16))

    def test_monthly_skips_short_months(self):
        """Day 31 is skipped in shorter months."""
        schedule = MonthlySchedule(time="09:00", day_of_month=31)
        assert not schedule.is_due_on(date(2025, 2, 28))
        assert schedule.is_due_on(date(2025, 3, 31))

    def test_scheduled_on_combines_day_and_time(self):
        """scheduled_on combines the day and time."""
        schedule = DailySchedule(time="14:30")
        assert schedule.scheduled_on(date(2024, 3, 15)) == datetime(2024, 3, 15, 14, 30)


class TestRuleKey:
    """Tests for schedule rule identity."""

    def test_weekly_days_order_does_not_matter(self):
        """Weekly day order is irrelevant."""
        a = WeeklySchedule(time="09:00", days=["WED", "MON"])
        b = WeeklySchedule(time="09:00", days=["MON", "WED"])
        assert a.rule_key() == b.rule_key()

    def test_id_is_ignored(self):
        """The id does not affect the rule."""
        assert DailySchedule(id="a", time="09:00").rule_key() == DailySchedule(id="b", time="09:00").rule_key()


class TestTaskCreate:
    """Tests for task payloads."""

    def test_defaults_to_pending(self):
        """Status defaults to PENDING."""
        task = TaskCreate.model_validate({"predefinedTaskId": "p1", "scheduledOn": "2024-06-01T09:00:00"})
        assert task.status == TaskStatus.PENDING
        assert task.scheduled_on == datetime(2024, 6, 1, 9, 0)

    def test_legacy_lowercase_status_rejected(self):
        """Lowercase legacy statuses are rejected."""
        with pytest.raises(PydanticValidationError):
            TaskCreate.model_validate({
                "predefinedTaskId": "p1",
                "scheduledOn": "2024-06-01T09:00:00",
                "status": "in_progress",
            })

    def test_duration_must_be_positive(self):
        """Duration must be positive."""
        with pytest.raises(PydanticValidationError):
            TaskCreate.model_validate({
                "predefinedTaskId": "p1",
                "scheduledOn": "2024-06-01T09:00:00",
                "duration": 0,
            })
