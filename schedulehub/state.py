from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import Dict, Iterable, List, Optional, Protocol, Tuple
import itertools
import threading

from .config import DEFAULT_MEETING_MINUTES
from .models import CanonicalEntities, EventHandle, Occurrence, RecurrenceRule
from .utils import _log_debug, now_local


class CalendarError(RuntimeError):
    pass


class CalendarProvider(Protocol):
    def create(self,
               entities: CanonicalEntities,
               user_id: str,
               rule: Optional[RecurrenceRule] = None,
               excluded: Iterable[Occurrence] = ()) -> str:
        ...

    def find(self,
             subject: Optional[str],
             start: Optional[datetime],
             end: Optional[datetime],
             user_id: str) -> List[EventHandle]:
        ...

    def delete(self, event_id: str, user_id: str) -> None:
        ...

    def update(self, event_id: str, entities: CanonicalEntities, user_id: str) -> None:
        ...


def resolve_event_window(entities: CanonicalEntities) -> Tuple[datetime, datetime]:
    """Start/end actually written to a calendar; missing end = start + default length."""
    start = entities.start_time or now_local()
    end = entities.end_time or start + timedelta(minutes=DEFAULT_MEETING_MINUTES)
    return start, end


def subject_matches(candidate: Optional[str], needle: Optional[str]) -> bool:
    if not needle:
        return True
    return needle.lower() in (candidate or "").lower()


class LocalCalendar:
    """Process-local calendar, one bucket of events per user id."""

    def __init__(self) -> None:
        self._events: Dict[str, Dict[str, dict]] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def _bucket(self, user_id: str) -> Dict[str, dict]:
        return self._events.setdefault(user_id, {})

    def create(self,
               entities: CanonicalEntities,
               user_id: str,
               rule: Optional[RecurrenceRule] = None,
               excluded: Iterable[Occurrence] = ()) -> str:
        start, end = resolve_event_window(entities)
        excluded_dates: List[date] = sorted(o.date for o in excluded)
        with self._lock:
            event_id = f"local-{next(self._ids)}"
            self._bucket(user_id)[event_id] = {
                "id": event_id,
                "subject": entities.subject,
                "start": start,
                "end": end,
                "attendees": list(entities.attendees),
                "location": entities.location,
                "rule": rule,
                "excluded_dates": excluded_dates,
            }
        _log_debug(f"[LOCAL CAL] created {event_id} for {user_id}")
        return event_id

    def find(self,
             subject: Optional[str],
             start: Optional[datetime],
             end: Optional[datetime],
             user_id: str) -> List[EventHandle]:
        with self._lock:
            items = list(self._bucket(user_id).values())
        results: List[EventHandle] = []
        for item in items:
            if not subject_matches(item["subject"], subject):
                continue
            if start is not None and end is not None:
                if item["end"] <= start or item["start"] >= end:
                    continue
            results.append(EventHandle(event_id=item["id"],
                                       subject=item["subject"],
                                       start_time=item["start"],
                                       end_time=item["end"]))
        results.sort(key=lambda h: h.start_time or datetime.min)
        return results

    def delete(self, event_id: str, user_id: str) -> None:
        with self._lock:
            removed = self._bucket(user_id).pop(event_id, None)
        if removed is None:
            raise CalendarError(f"Event {event_id} not found")

    def update(self, event_id: str, entities: CanonicalEntities, user_id: str) -> None:
        with self._lock:
            item = self._bucket(user_id).get(event_id)
            if item is None:
                raise CalendarError(f"Event {event_id} not found")
            if entities.start_time is not None:
                duration = item["end"] - item["start"]
                item["start"] = entities.start_time
                item["end"] = entities.end_time or entities.start_time + duration
            elif entities.end_time is not None and entities.end_time > item["start"]:
                item["end"] = entities.end_time
            if entities.attendees:
                item["attendees"] = list(entities.attendees)
            if entities.location:
                item["location"] = entities.location

    def get(self, event_id: str, user_id: str) -> Optional[dict]:
        with self._lock:
            item = self._bucket(user_id).get(event_id)
            return dict(item) if item is not None else None
