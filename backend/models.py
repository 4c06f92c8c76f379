from datetime import date, datetime
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, TypeAdapter, field_validator
from pydantic.alias_generators import to_camel

from dates import TIME_OF_DAY_PATTERN, compose_scheduled_on, parse_calendar_date, parse_timestamp
from errors import InvalidDateError


class CamelModel(BaseModel):
    """Accepts camelCase or snake_case input, dumps camelCase by default."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    def model_dump(self, **kwargs):
        kwargs.setdefault("by_alias", True)
        return super().model_dump(**kwargs)


def _timestamp_or_none(value):
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except InvalidDateError as e:
        raise ValueError(e.message) from e


def _calendar_date_or_none(value):
    if value is None or value == "":
        return None
    try:
        return parse_calendar_date(value)
    except InvalidDateError as e:
        raise ValueError(e.message) from e


Timestamp = Annotated[datetime, BeforeValidator(_timestamp_or_none)]
CalendarDate = Annotated[Optional[date], BeforeValidator(_calendar_date_or_none)]


class TaskStatus(str, Enum):
    PENDING = "PENDING"
    ONGOING = "ONGOING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class Weekday(str, Enum):
    MON = "MON"
    TUE = "TUE"
    WED = "WED"
    THU = "THU"
    FRI = "FRI"
    SAT = "SAT"
    SUN = "SUN"

    @property
    def number(self) -> int:
        # Matches date.weekday(): Monday is 0
        return list(Weekday).index(self)


# Schedules: one class per recurrence type, discriminated on `type`.
# Each carries what it needs to answer is_due_on().

class ScheduleBase(CamelModel):
    id: Optional[str] = None  # assigned by the store
    predefined_task_id: Optional[str] = None
    time: str  # HH:MM, 24-hour

    @field_validator("time")
    @classmethod
    def _check_time(cls, value: str) -> str:
        if not TIME_OF_DAY_PATTERN.match(value):
            raise ValueError("Time must be in HH:MM format")
        return value

    def is_due_on(self, day: date) -> bool:
        raise NotImplementedError

    def scheduled_on(self, day: date) -> datetime:
        """The concrete timestamp this schedule produces on `day`."""
        return compose_scheduled_on(day, self.time)

    def rule_key(self) -> tuple:
        """Identity of the rule itself, ignoring id and owner."""
        return (self.type, self.time, self.rule_days(), self.rule_day_of_month())

    def rule_days(self) -> Optional[str]:
        return None

    def rule_day_of_month(self) -> Optional[int]:
        return None


class DailySchedule(ScheduleBase):
    type: Literal["DAILY"] = "DAILY"

    def is_due_on(self, day: date) -> bool:
        return True


class WeekdaysSchedule(ScheduleBase):
    type: Literal["WEEKDAYS"] = "WEEKDAYS"

    def is_due_on(self, day: date) -> bool:
        return day.weekday() < 5


class WeeklySchedule(ScheduleBase):
    type: Literal["WEEKLY"] = "WEEKLY"
    days: list[Weekday] = Field(min_length=1)

    def is_due_on(self, day: date) -> bool:
        return day.weekday() in {d.number for d in self.days}

    def rule_days(self) -> Optional[str]:
        return ",".join(d.value for d in sorted(set(self.days), key=lambda d: d.number))


class MonthlySchedule(ScheduleBase):
    type: Literal["MONTHLY"] = "MONTHLY"
    day_of_month: int = Field(ge=1, le=31)

    def is_due_on(self, day: date) -> bool:
        # Months without this day are skipped, not clamped
        return day.day == self.day_of_month

    def rule_day_of_month(self) -> Optional[int]:
        return self.day_of_month


Schedule = Annotated[
    Union[DailySchedule, WeekdaysSchedule, WeeklySchedule, MonthlySchedule],
    Field(discriminator="type"),
]
SCHEDULE_ADAPTER = TypeAdapter(Schedule)


class PredefinedTask(CamelModel):
    id: str
    name: str
    description: Optional[str] = None
    schedules: list[Schedule] = []
    created_at: datetime
    updated_at: datetime


class PredefinedTaskCreate(CamelModel):
    name: str = Field(min_length=1)
    description: Optional[str] = None
    recurring: Optional[list[Schedule]] = None


class PredefinedTaskUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    description: Optional[str] = None
    recurring: Optional[list[Schedule]] = None  # replaces the schedule set when given


class Task(CamelModel):
    id: str
    predefined_task_id: Optional[str] = None
    schedule_id: Optional[str] = None  # set for tasks materialized from a schedule
    name: Optional[str] = None  # from the predefined task
    scheduled_on: datetime
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: Optional[str] = None
    duration: Optional[int] = None  # minutes
    created_at: datetime
    updated_at: datetime


class TaskCreate(CamelModel):
    predefined_task_id: str = Field(min_length=1)
    scheduled_on: Timestamp
    status: TaskStatus = TaskStatus.PENDING
    assigned_to: Optional[str] = Field(default=None, min_length=1)
    duration: Optional[int] = Field(default=None, gt=0)


class TaskUpdate(CamelModel):
    predefined_task_id: Optional[str] = Field(default=None, min_length=1)
    scheduled_on: Optional[Timestamp] = None
    status: Optional[TaskStatus] = None
    assigned_to: Optional[str] = Field(default=None, min_length=1)  # explicit null unassigns
    duration: Optional[int] = Field(default=None, gt=0)


class Cat(CamelModel):
    id: str
    name: str
    gender: str
    birthday: Optional[date] = None
    breed: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class CatCreate(CamelModel):
    name: str = Field(min_length=1)
    gender: str = Field(min_length=1)
    birthday: CalendarDate = None
    breed: Optional[str] = None


class CatUpdate(CamelModel):
    name: Optional[str] = Field(default=None, min_length=1)
    gender: Optional[str] = Field(default=None, min_length=1)
    birthday: CalendarDate = None
    breed: Optional[str] = None


class Customer(Cat):
    type: Optional[str] = None


class CustomerCreate(CatCreate):
    type: Optional[str] = None


class CustomerUpdate(CatUpdate):
    type: Optional[str] = None


class CustomerSummary(CamelModel):
    id: str
    name: str
    breed: Optional[str] = None
    type: Optional[str] = None
    gender: str
    birthday: Optional[date] = None


class User(CamelModel):
    id: str
    name: Optional[str] = None
    email: Optional[str] = None
    created_at: datetime


class Session(CamelModel):
    id: str
    token: str
    user_id: str
    expires_at: datetime
    created_at: datetime
