from __future__ import annotations

from datetime import date, datetime, timedelta
from typing import List, Optional
import logging

from zoneinfo import ZoneInfo

from .config import (
    MAX_RECURRENCE_OCCURRENCES,
    RECURRENCE_RANGE_MONTHS,
)
from .models import Frequency, Occurrence, RecurrenceRule, Weekday, WORKDAYS
from .utils import add_months, now_local, _month_last_day

logger = logging.getLogger(__name__)

_RRULE_FREQS = {
    Frequency.DAILY: "DAILY",
    Frequency.WEEKLY: "WEEKLY",
    Frequency.MONTHLY: "MONTHLY",
}
_RRULE_INDEX_TO_WEEKDAY = ["MO", "TU", "WE", "TH", "FR", "SA", "SU"]


def _extract_weekdays(text: str) -> List[Weekday]:
    if "weekday" in text:
        return sorted(WORKDAYS)
    return [w for w in Weekday if w.label in text]


def compile_recurrence(recurrence_text: Optional[str],
                       start_time: Optional[datetime] = None,
                       today: Optional[date] = None,
                       range_months: Optional[int] = None) -> RecurrenceRule:
    """
    자유 텍스트 반복 설명 -> RecurrenceRule

    Matching is a case-insensitive substring test against a fixed vocabulary.
    "weekday" wins over everything else and always means Monday-Friday.
    Anything unrecognised falls back to a plain weekly rule.
    """
    text = (recurrence_text or "").strip().lower()

    if "weekday" in text:
        frequency = Frequency.WEEKLY
    elif "daily" in text:
        frequency = Frequency.DAILY
    elif "monthly" in text:
        frequency = Frequency.MONTHLY
    else:
        if "weekly" not in text:
            logger.debug("Unrecognised recurrence text %r, using weekly", text)
        frequency = Frequency.WEEKLY

    weekdays: List[Weekday] = []
    if frequency == Frequency.WEEKLY:
        weekdays = _extract_weekdays(text)

    if start_time is not None:
        range_start = start_time.date()
    else:
        range_start = today or now_local().date()
    months = RECURRENCE_RANGE_MONTHS if range_months is None else range_months
    range_end = add_months(range_start, months)

    return RecurrenceRule(
        frequency=frequency,
        interval=1,
        active_weekdays=frozenset(weekdays),
        range_start=range_start,
        range_end=range_end,
    )


def _collect_recurrence_dates(rule: RecurrenceRule) -> List[date]:
    interval = max(int(rule.interval or 1), 1)
    start_date = rule.range_start
    limit_date = rule.range_end
    results: List[date] = []

    def push_date(d: date) -> bool:
        if d < start_date or d > limit_date:
            return False
        results.append(d)
        return len(results) >= MAX_RECURRENCE_OCCURRENCES

    if rule.frequency == Frequency.DAILY:
        cur = start_date
        while cur <= limit_date:
            if push_date(cur):
                break
            cur += timedelta(days=interval)

    elif rule.frequency == Frequency.WEEKLY:
        weekdays = [int(w) for w in rule.effective_weekdays()]
        base = start_date - timedelta(days=start_date.weekday())
        week_index = 0
        while True:
            week_start = base + timedelta(days=week_index * interval * 7)
            if week_start > limit_date:
                break
            for w in weekdays:
                if push_date(week_start + timedelta(days=w)):
                    return results
            week_index += 1

    elif rule.frequency == Frequency.MONTHLY:
        month_index = 0
        while True:
            first_day = add_months(start_date.replace(day=1),
                                   month_index * interval)
            if first_day > limit_date:
                break
            last_day = _month_last_day(first_day.year, first_day.month)
            occ = first_day.replace(day=min(start_date.day, last_day))
            if push_date(occ):
                break
            month_index += 1

    results.sort()
    return results


def expand_occurrences(rule: RecurrenceRule) -> List[Occurrence]:
    """Every concrete occurrence of ``rule`` between its range bounds (inclusive)."""
    return [Occurrence.on(d) for d in _collect_recurrence_dates(rule)]


def _format_rrule_until(until_date: date,
                        start_time: Optional[datetime],
                        tz_name: str) -> str:
    """Format UNTIL value for RRULE.
    Timed events need UNTIL in UTC with a Z suffix, all-day events use YYYYMMDD."""
    if start_time is None:
        return until_date.strftime("%Y%m%d")
    local_dt = datetime(until_date.year, until_date.month, until_date.day,
                        start_time.hour, start_time.minute, 0,
                        tzinfo=ZoneInfo(tz_name))
    utc_dt = local_dt.astimezone(ZoneInfo("UTC"))
    return utc_dt.strftime("%Y%m%dT%H%M%SZ")


def rule_to_rrule(rule: RecurrenceRule,
                  start_time: Optional[datetime],
                  tz_name: str) -> str:
    parts = [f"FREQ={_RRULE_FREQS[rule.frequency]}"]
    if rule.interval != 1:
        parts.append(f"INTERVAL={rule.interval}")

    if rule.frequency == Frequency.WEEKLY and rule.active_weekdays:
        weekdays = [_RRULE_INDEX_TO_WEEKDAY[int(w)] for w in sorted(rule.active_weekdays)]
        parts.append("BYDAY=" + ",".join(weekdays))

    if rule.frequency == Frequency.MONTHLY and rule.range_start.day > 28:
        # short months fall back to their last day, same as the expansion
        days = ",".join(str(d) for d in range(28, rule.range_start.day + 1))
        parts.append(f"BYMONTHDAY={days}")
        parts.append("BYSETPOS=-1")

    parts.append("UNTIL=" + _format_rrule_until(rule.range_end, start_time, tz_name))
    return ";".join(parts)
