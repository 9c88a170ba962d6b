from __future__ import annotations

from datetime import date, datetime
from typing import Any, Optional
import calendar
import re

from .config import (
    SCHEDULE_DEBUG,
    LOCAL_TZ,
    ISO_DATETIME_RE,
    ISO_DATE_RE,
    DATETIME_FLEX_RE,
)

_OBJECT_ID_RE = re.compile(
    r"^[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$")


class InvalidUserIdError(ValueError):
    pass


def _log_debug(message: str) -> None:
    if SCHEDULE_DEBUG:
        print(message, flush=True)


def now_local() -> datetime:
    """Current wall-clock time in the configured timezone, as a naive datetime."""
    return datetime.now(LOCAL_TZ).replace(tzinfo=None, second=0, microsecond=0)


def normalize_text(text: str) -> str:
    t = (text or "").strip()
    t = re.sub(r"\s+", " ", t)
    return t


def _clean_optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    trimmed = value.strip()
    if not trimmed or trimmed.lower() == "null":
        return None
    return trimmed


def _normalize_datetime_minute(raw: str) -> Optional[str]:
    candidate = raw.strip()
    if not candidate:
        return None
    if ISO_DATETIME_RE.match(candidate):
        return candidate
    if candidate.endswith("Z"):
        candidate = candidate[:-1] + "+00:00"
    match = DATETIME_FLEX_RE.match(candidate)
    if match:
        return f"{match.group(1)}T{match.group(2)}"
    try:
        dt = datetime.fromisoformat(candidate)
    except ValueError:
        return None
    if dt.tzinfo is not None:
        dt = dt.astimezone(LOCAL_TZ)
    return dt.strftime("%Y-%m-%dT%H:%M")


def parse_local_datetime(raw: Any) -> Optional[datetime]:
    """Parse an ISO-ish local date-time string to a naive minute-precision datetime."""
    if not isinstance(raw, str):
        return None
    normalized = _normalize_datetime_minute(raw)
    if not normalized:
        return None
    try:
        return datetime.strptime(normalized, "%Y-%m-%dT%H:%M")
    except ValueError:
        return None


def try_parse_date(value: Any) -> Optional[date]:
    if not isinstance(value, str):
        return None
    cleaned = value.strip()
    if not ISO_DATE_RE.match(cleaned):
        return None
    try:
        return datetime.strptime(cleaned, "%Y-%m-%d").date()
    except ValueError:
        return None


def _month_last_day(year: int, month: int) -> int:
    return calendar.monthrange(year, month)[1]


def add_months(value: date, delta: int) -> date:
    total = (value.year * 12 + (value.month - 1)) + delta
    new_year = total // 12
    new_month = total % 12 + 1
    day = min(value.day, _month_last_day(new_year, new_month))
    return date(new_year, new_month, day)


def validate_user_id(user_id: Optional[str], operation: str = "request") -> str:
    """Accept an email address or a directory object id (GUID)."""
    if not isinstance(user_id, str) or not user_id.strip():
        raise InvalidUserIdError(f"User ID is required for {operation}.")
    trimmed = user_id.strip()
    is_email = "@" in trimmed and len(trimmed) > 3
    if not is_email and not _OBJECT_ID_RE.match(trimmed):
        raise InvalidUserIdError(
            f"Invalid user ID format: '{trimmed}'. "
            "Use an email address (user@domain.com) or an object ID (GUID).")
    return trimmed
