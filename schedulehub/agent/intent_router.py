from __future__ import annotations

import logging
import re
from typing import FrozenSet, List, Optional

from ..models import (
    CanonicalEntities,
    EventHandle,
    IntentAction,
    Occurrence,
    RecurrenceRule,
    ScheduleResponse,
)
from ..recurrence import compile_recurrence
from ..state import CalendarProvider
from .exception_resolver import resolve_exceptions

logger = logging.getLogger(__name__)

PROVIDER_ERROR_INTENT = "provider_error"

_INTENT_SYNONYMS = {
    "bookmeeting": IntentAction.BOOK,
    "schedulemeeting": IntentAction.BOOK,
    "cancelmeeting": IntentAction.CANCEL,
    "deletemeeting": IntentAction.CANCEL,
    "reschedulemeeting": IntentAction.RESCHEDULE,
    "updatemeeting": IntentAction.RESCHEDULE,
}
_NON_ALNUM_RE = re.compile(r"[^a-z0-9]")

UNRESOLVED_MESSAGE = (
    "Sorry, I could not understand the request. "
    "Please say whether you want to book, cancel or reschedule a meeting.")
PROVIDER_DOWN_MESSAGE = (
    "Sorry, I could not understand the request because the language service "
    "was unavailable. Please try again.")


def classify_intent(label: Optional[str]) -> IntentAction:
  if not isinstance(label, str):
    return IntentAction.UNRESOLVED
  key = _NON_ALNUM_RE.sub("", label.lower())
  return _INTENT_SYNONYMS.get(key, IntentAction.UNRESOLVED)


def _first_match(matches: List[EventHandle], action: str) -> EventHandle:
  if len(matches) > 1:
    logger.warning("%d events matched for %s, using the first (%s)",
                   len(matches), action, matches[0].event_id)
  return matches[0]


class IntentRouter:
  """Dispatch canonical entities to one calendar mutation."""

  def __init__(self, calendar: CalendarProvider):
    self.calendar = calendar

  def dispatch(self, entities: CanonicalEntities, user_id: str) -> ScheduleResponse:
    action = classify_intent(entities.intent)
    if action == IntentAction.UNRESOLVED:
      logger.info("Unresolved intent %r", entities.intent)
      message = UNRESOLVED_MESSAGE
      if entities.intent == PROVIDER_ERROR_INTENT:
        message = PROVIDER_DOWN_MESSAGE
      return ScheduleResponse(status="error",
                              error_type="unresolved",
                              message=message,
                              entities=entities)

    verb = {
        IntentAction.BOOK: "schedule",
        IntentAction.CANCEL: "cancel",
        IntentAction.RESCHEDULE: "reschedule",
    }[action]
    try:
      if action == IntentAction.BOOK:
        return self._book(entities, user_id)
      if action == IntentAction.CANCEL:
        return self._cancel(entities, user_id)
      return self._reschedule(entities, user_id)
    except Exception as exc:
      logger.exception("Calendar call failed while trying to %s", verb)
      return ScheduleResponse(status="error",
                              error_type="provider",
                              message=f"Failed to {verb} meeting: {exc}",
                              entities=entities)

  def _book(self, entities: CanonicalEntities, user_id: str) -> ScheduleResponse:
    rule: Optional[RecurrenceRule] = None
    excluded: FrozenSet[Occurrence] = frozenset()
    if entities.recurrence_text:
      rule = compile_recurrence(entities.recurrence_text, entities.start_time)
      if entities.exception_texts:
        excluded = resolve_exceptions(rule, entities.exception_texts)
    elif entities.exception_texts:
      logger.info("Ignoring exceptions %r on a non-recurring meeting",
                  list(entities.exception_texts))

    event_id = self.calendar.create(entities, user_id, rule=rule, excluded=excluded)
    return ScheduleResponse(
        status="success",
        message="Meeting scheduled successfully",
        event_id=event_id,
        subject=entities.subject,
        start_time=entities.start_time,
        end_time=entities.end_time,
        attendees=list(entities.attendees),
        location=entities.location,
        recurrence_pattern=entities.recurrence_text,
        exceptions=list(entities.exception_texts) or None,
        excluded_dates=sorted(o.date for o in excluded) or None,
        entities=entities,
    )

  def _cancel(self, entities: CanonicalEntities, user_id: str) -> ScheduleResponse:
    start, end = entities.start_time, entities.end_time
    if start is None or end is None:
      start, end = None, None
    matches = self.calendar.find(entities.subject, start, end, user_id)
    if not matches:
      return ScheduleResponse(status="error",
                              error_type="not_found",
                              message="No matching event found to cancel",
                              entities=entities)

    target = _first_match(matches, "cancel")
    self.calendar.delete(target.event_id, user_id)
    return ScheduleResponse(status="success",
                            message="Meeting cancelled successfully",
                            event_id=target.event_id,
                            subject=target.subject or entities.subject,
                            start_time=target.start_time,
                            end_time=target.end_time,
                            entities=entities)

  def _reschedule(self, entities: CanonicalEntities, user_id: str) -> ScheduleResponse:
    matches = self.calendar.find(entities.subject, None, None, user_id)
    if not matches:
      return ScheduleResponse(status="error",
                              error_type="not_found",
                              message="No matching event found to reschedule",
                              entities=entities)

    target = _first_match(matches, "reschedule")
    self.calendar.update(target.event_id, entities, user_id)
    return ScheduleResponse(status="success",
                            message="Meeting rescheduled successfully",
                            event_id=target.event_id,
                            subject=target.subject or entities.subject,
                            start_time=entities.start_time,
                            end_time=entities.end_time,
                            attendees=list(entities.attendees) or None,
                            location=entities.location,
                            entities=entities)
