from __future__ import annotations

from datetime import date, datetime
from enum import Enum, IntEnum
from typing import Any, FrozenSet, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel

from .config import DEFAULT_SUBJECT

# Occurrence has a field called ``date``
_Date = date


class Weekday(IntEnum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @property
    def label(self) -> str:
        return self.name.lower()


WORKDAYS: FrozenSet[Weekday] = frozenset({
    Weekday.MONDAY,
    Weekday.TUESDAY,
    Weekday.WEDNESDAY,
    Weekday.THURSDAY,
    Weekday.FRIDAY,
})


class Frequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


class Ordinal(IntEnum):
    FIRST = 1
    SECOND = 2
    THIRD = 3
    FOURTH = 4
    FIFTH = 5
    LAST = -1


class IntentAction(str, Enum):
    BOOK = "book"
    CANCEL = "cancel"
    RESCHEDULE = "reschedule"
    UNRESOLVED = "unresolved"


# ---------------------------------------------------------------------------
#  NLU output
# ---------------------------------------------------------------------------

class RawEntity(BaseModel):
    model_config = ConfigDict(frozen=True)

    category: str
    text: str = ""
    resolution: Optional[Any] = None


class NluResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: str = "Unknown"
    entities: List[RawEntity] = Field(default_factory=list)
    provider: Optional[str] = None
    error: Optional[str] = None


# ---------------------------------------------------------------------------
#  Canonical request
# ---------------------------------------------------------------------------

class CanonicalEntities(BaseModel):
    model_config = ConfigDict(frozen=True)

    intent: str = "Unknown"
    attendees: Tuple[str, ...] = ()
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    subject: str = DEFAULT_SUBJECT
    location: Optional[str] = None
    recurrence_text: Optional[str] = None
    exception_texts: Tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_invariants(self) -> "CanonicalEntities":
        if not self.subject or not self.subject.strip():
            raise ValueError("subject must not be empty")
        if (self.start_time is not None and self.end_time is not None
                and self.end_time <= self.start_time):
            raise ValueError("end_time must be after start_time")
        return self

    @property
    def is_recurring(self) -> bool:
        return bool(self.recurrence_text)


class RecurrenceRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    frequency: Frequency
    interval: int = Field(default=1, ge=1)
    active_weekdays: FrozenSet[Weekday] = frozenset()
    range_start: date
    range_end: date

    def effective_weekdays(self) -> List[Weekday]:
        """Weekdays a WEEKLY rule fires on.

        An empty set means the weekday of ``range_start``, which is what a
        calendar provider does with a weekly rule that has no BYDAY part.
        """
        if self.active_weekdays:
            return sorted(self.active_weekdays)
        return [Weekday(self.range_start.weekday())]


class Occurrence(BaseModel):
    model_config = ConfigDict(frozen=True)

    date: _Date
    weekday: Weekday
    week_of_month: int

    @classmethod
    def on(cls, day: date) -> "Occurrence":
        return cls(date=day,
                   weekday=Weekday(day.weekday()),
                   week_of_month=(day.day - 1) // 7 + 1)


class ExceptionRule(BaseModel):
    model_config = ConfigDict(frozen=True)

    text: str
    ordinal: Optional[Ordinal] = None
    weekday: Optional[Weekday] = None
    on_date: Optional[date] = None

    @property
    def is_resolvable(self) -> bool:
        return (self.ordinal is not None or self.weekday is not None
                or self.on_date is not None)


class EventHandle(BaseModel):
    model_config = ConfigDict(frozen=True)

    event_id: str
    subject: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None


# ---------------------------------------------------------------------------
#  Request / response
# ---------------------------------------------------------------------------

class ScheduleRequest(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    text: str = Field(min_length=1)
    user_id: Optional[str] = None


ErrorType = Literal["validation", "unresolved", "not_found", "provider"]


class ScheduleResponse(BaseModel):
    model_config = ConfigDict(frozen=True,
                              alias_generator=to_camel,
                              populate_by_name=True)

    status: Literal["success", "error"]
    message: str
    error_type: Optional[ErrorType] = None
    event_id: Optional[str] = None
    subject: Optional[str] = None
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    attendees: Optional[List[str]] = None
    location: Optional[str] = None
    recurrence_pattern: Optional[str] = None
    exceptions: Optional[List[str]] = None
    excluded_dates: Optional[List[date]] = None
    entities: Optional[CanonicalEntities] = None

    @property
    def ok(self) -> bool:
        return self.status == "success"

    def to_payload(self) -> dict:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
