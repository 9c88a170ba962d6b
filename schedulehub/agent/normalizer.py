from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

from ..config import DEFAULT_SUBJECT
from ..models import CanonicalEntities, RawEntity
from ..utils import _clean_optional_str, normalize_text
from .timex import RelativeDatePolicy, resolve_datetime

logger = logging.getLogger(__name__)

UNKNOWN_INTENT = "Unknown"

_ATTENDEE = "attendee"
_DATETIME = "datetime"
_RECURRENCE = "recurrence"
_EXCEPTION = "exception"
_SUBJECT = "subject"
_LOCATION = "location"

CATEGORY_MAP: Dict[str, str] = {
    "personname": _ATTENDEE,
    "attendee": _ATTENDEE,
    "person": _ATTENDEE,
    "datetime": _DATETIME,
    "datetimev2": _DATETIME,
    "time": _DATETIME,
    "date": _DATETIME,
    "recurrence": _RECURRENCE,
    "recurringpattern": _RECURRENCE,
    "exception": _EXCEPTION,
    "subject": _SUBJECT,
    "meetingtitle": _SUBJECT,
    "title": _SUBJECT,
    "location": _LOCATION,
}


def normalize_input_as_text(value: Optional[str]) -> str:
  if not isinstance(value, str):
    return ""
  return normalize_text(value)


def canonical_category(category: Any) -> Optional[str]:
  if not isinstance(category, str):
    return None
  return CATEGORY_MAP.get(category.strip().lower())


def _datetime_expressions(entity: RawEntity) -> Tuple[List[str], Optional[str]]:
  """Pull the timex / date-time strings out of a datetime entity.

  Returns the expressions in order plus the provider's type hint. A
  ``datetimerange`` value yields its start and end.
  """
  resolution = entity.resolution
  if isinstance(resolution, dict):
    values = resolution.get("values")
    if isinstance(values, list) and values:
      first = values[0] if isinstance(values[0], dict) else {}
      type_hint = first.get("type") if isinstance(first.get("type"), str) else None
      if isinstance(type_hint, str) and type_hint.lower().endswith("range"):
        bounds = [first.get("start"), first.get("end")]
        bounds = [b for b in bounds if isinstance(b, str) and b.strip()]
        if bounds:
          return bounds, type_hint
      timex = first.get("timex") or first.get("value")
      if isinstance(timex, str) and timex.strip():
        return [timex], type_hint
    timex = resolution.get("timex")
    if isinstance(timex, str) and timex.strip():
      type_hint = resolution.get("type")
      return [timex], type_hint if isinstance(type_hint, str) else None
  elif isinstance(resolution, str) and resolution.strip():
    return [resolution], None

  if entity.text and entity.text.strip():
    return [entity.text], None
  return [], None


def normalize(intent_label: Optional[str],
              raw_entities: Iterable[RawEntity],
              now: Optional[datetime] = None,
              policy: Optional[RelativeDatePolicy] = None) -> CanonicalEntities:
  """Reduce a provider's entity list to one CanonicalEntities value."""
  intent = _clean_optional_str(intent_label) or UNKNOWN_INTENT

  attendees: List[str] = []
  times: List[datetime] = []
  recurrence_text: Optional[str] = None
  exception_texts: List[str] = []
  subject: Optional[str] = None
  location: Optional[str] = None

  for entity in raw_entities:
    kind = canonical_category(entity.category)
    if kind is None:
      logger.debug("Dropping entity with unknown category %r", entity.category)
      continue

    text = _clean_optional_str(entity.text)

    if kind == _ATTENDEE:
      if text:
        attendees.append(text)
    elif kind == _DATETIME:
      expressions, type_hint = _datetime_expressions(entity)
      for expression in expressions:
        if len(times) >= 2:
          logger.info("Ignoring extra datetime %r; only one start/end pair is supported",
                      expression)
          continue
        times.append(resolve_datetime(expression, type_hint, now=now, policy=policy))
    elif kind == _RECURRENCE:
      if text:
        recurrence_text = text
    elif kind == _EXCEPTION:
      if text:
        exception_texts.append(text)
    elif kind == _SUBJECT:
      if text:
        subject = text
    elif kind == _LOCATION:
      if text:
        location = text

  start_time = times[0] if times else None
  end_time = times[1] if len(times) > 1 else None
  if start_time is not None and end_time is not None and end_time <= start_time:
    logger.warning("Dropping end time %s, not after start time %s", end_time, start_time)
    end_time = None

  return CanonicalEntities(
      intent=intent,
      attendees=tuple(attendees),
      start_time=start_time,
      end_time=end_time,
      subject=subject or DEFAULT_SUBJECT,
      location=location,
      recurrence_text=recurrence_text,
      exception_texts=tuple(exception_texts),
  )
