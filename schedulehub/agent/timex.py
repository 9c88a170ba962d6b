from __future__ import annotations

import logging
import re
from datetime import datetime, time, timedelta
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict

from ..config import RELATIVE_DATE_OFFSET_DAYS
from ..utils import now_local, parse_local_datetime, try_parse_date

logger = logging.getLogger(__name__)

_TIME_OF_DAY_RE = re.compile(r"T(\d{1,2})(?::(\d{2}))?")
# "XXXX-WXX-2T14", "XXXX-XX-XX", "2024-XX-05"
_WILDCARD_TIMEX_RE = re.compile(r"^(?=[^T]*X)[0-9X]{4}-[0-9WX]{2,3}(?:-[0-9X]{1,2})?(?:T.*)?$")
# "T15", "T15:30"
_BARE_TIME_RE = re.compile(r"^T\d{1,2}(?::\d{2})?(?::\d{2})?$")
# "2024-01-02T14"
_DATE_HOUR_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})(T\d{1,2}(?::\d{2})?)$")


class RelativeDatePolicy(BaseModel):
  """Where a relative or unparseable expression lands.

  The default is "tomorrow, same time". ``keep_time`` keeps the current time
  of day when the expression itself does not carry one; otherwise midnight.
  """
  model_config = ConfigDict(frozen=True)

  offset_days: int = RELATIVE_DATE_OFFSET_DAYS
  keep_time: bool = True

  def resolve(self, now: datetime, time_of_day: Optional[time] = None) -> datetime:
    day = (now + timedelta(days=self.offset_days)).date()
    if time_of_day is None:
      time_of_day = now.time() if self.keep_time else time(0, 0)
    return datetime.combine(day, time_of_day)


DEFAULT_POLICY = RelativeDatePolicy()


def _time_of_day(expression: str) -> Optional[time]:
  match = _TIME_OF_DAY_RE.search(expression)
  if not match:
    return None
  hour = int(match.group(1))
  minute = int(match.group(2) or 0)
  if not (0 <= hour <= 23 and 0 <= minute <= 59):
    return None
  return time(hour, minute)


def resolve_datetime(expression: Any,
                     type_hint: Optional[str] = None,
                     now: Optional[datetime] = None,
                     policy: Optional[RelativeDatePolicy] = None) -> datetime:
  """Resolve a timex or date-time string to a naive local datetime.

  Never raises. Anything it cannot read goes through ``policy``.
  """
  now = now or now_local()
  policy = policy or DEFAULT_POLICY
  raw = expression.strip() if isinstance(expression, str) else ""

  if not raw:
    logger.warning("Empty datetime expression (type=%s), using relative-date fallback",
                   type_hint)
    return policy.resolve(now)

  if _WILDCARD_TIMEX_RE.match(raw) or _BARE_TIME_RE.match(raw):
    logger.info("Relative timex %r resolved with the relative-date policy", raw)
    return policy.resolve(now, _time_of_day(raw))

  parsed = parse_local_datetime(raw) or parse_local_datetime(raw.split(".")[0])
  if parsed is not None:
    return parsed

  match = _DATE_HOUR_RE.match(raw)
  if match:
    day = try_parse_date(match.group(1))
    time_of_day = _time_of_day(match.group(2))
    if day is not None and time_of_day is not None:
      return datetime.combine(day, time_of_day)

  day = try_parse_date(raw)
  if day is not None:
    return datetime.combine(day, time(0, 0))

  lowered = raw.lower()
  if "tomorrow" in lowered or "today" in lowered:
    offset = 1 if "tomorrow" in lowered else 0
    time_of_day = _time_of_day(raw) or now.time()
    return datetime.combine((now + timedelta(days=offset)).date(), time_of_day)

  logger.warning("Could not parse datetime %r (type=%s), using relative-date fallback",
                 raw, type_hint)
  return policy.resolve(now)

