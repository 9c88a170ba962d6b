from __future__ import annotations

import logging
import re
from datetime import timedelta
from typing import FrozenSet, Iterable, Optional, Set

from ..models import ExceptionRule, Occurrence, Ordinal, RecurrenceRule, Weekday
from ..recurrence import expand_occurrences
from ..utils import try_parse_date

logger = logging.getLogger(__name__)

_ORDINAL_WORDS = {
    "first": Ordinal.FIRST,
    "1st": Ordinal.FIRST,
    "second": Ordinal.SECOND,
    "2nd": Ordinal.SECOND,
    "third": Ordinal.THIRD,
    "3rd": Ordinal.THIRD,
    "fourth": Ordinal.FOURTH,
    "4th": Ordinal.FOURTH,
    "fifth": Ordinal.FIFTH,
    "5th": Ordinal.FIFTH,
    "last": Ordinal.LAST,
}
_ORDINAL_RE = re.compile(r"\b(" + "|".join(_ORDINAL_WORDS) + r")\b")
_WEEKDAY_RE = re.compile("(" + "|".join(w.label for w in Weekday) + ")")
_DATE_IN_TEXT_RE = re.compile(r"\b(\d{4}-\d{2}-\d{2})\b")


def parse_exception(text: str) -> ExceptionRule:
  """
  예외 문구 -> ExceptionRule

  "except the second Tuesday" -> (SECOND, TUESDAY)
  "skip 2024-03-12"           -> on_date
  The earliest ordinal and the earliest weekday name in the text win.
  """
  lowered = (text or "").lower()

  ordinal: Optional[Ordinal] = None
  match = _ORDINAL_RE.search(lowered)
  if match:
    ordinal = _ORDINAL_WORDS[match.group(1)]

  weekday: Optional[Weekday] = None
  match = _WEEKDAY_RE.search(lowered)
  if match:
    weekday = Weekday[match.group(1).upper()]

  on_date = None
  match = _DATE_IN_TEXT_RE.search(lowered)
  if match:
    on_date = try_parse_date(match.group(1))

  return ExceptionRule(text=text or "", ordinal=ordinal, weekday=weekday, on_date=on_date)


def _in_week_position(ordinal: Ordinal, occurrence: Occurrence) -> bool:
  if ordinal == Ordinal.LAST:
    return (occurrence.date + timedelta(days=7)).month != occurrence.date.month
  return occurrence.week_of_month == int(ordinal)


def matches(rule: ExceptionRule, occurrence: Occurrence) -> bool:
  if rule.on_date is not None:
    return occurrence.date == rule.on_date
  if rule.weekday is not None and occurrence.weekday != rule.weekday:
    return False
  if rule.ordinal is not None:
    return _in_week_position(rule.ordinal, occurrence)
  return rule.weekday is not None


def resolve_exceptions(rule: RecurrenceRule,
                       exception_texts: Iterable[str]) -> FrozenSet[Occurrence]:
  """Occurrences of ``rule`` removed by any of the exception phrases."""
  texts = [t for t in exception_texts if t and t.strip()]
  if not texts:
    return frozenset()

  occurrences = expand_occurrences(rule)
  excluded: Set[Occurrence] = set()
  for text in texts:
    parsed = parse_exception(text)
    if not parsed.is_resolvable:
      logger.warning("Could not interpret exception %r, ignoring it", text)
      continue
    hits = [occ for occ in occurrences if matches(parsed, occ)]
    if not hits:
      logger.info("Exception %r matched no occurrence", text)
    excluded.update(hits)
  return frozenset(excluded)
