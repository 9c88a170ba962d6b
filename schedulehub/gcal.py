from __future__ import annotations

import json
import logging
from datetime import date, datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional, Set
from zoneinfo import ZoneInfo

from google.oauth2.credentials import Credentials
from google.auth.transport.requests import Request as GoogleRequest
from googleapiclient.discovery import build
from googleapiclient.errors import HttpError

from .config import (
    ATTENDEE_EMAIL_DOMAIN,
    DEFAULT_MEETING_MINUTES,
    GCAL_SCOPES,
    GOOGLE_CALENDAR_ID,
    SCHEDULE_TIMEZONE,
)
from .credentials import GOOGLE_TOKEN_SECRET, SecretStore
from .models import CanonicalEntities, EventHandle, Occurrence, RecurrenceRule
from .recurrence import expand_occurrences, rule_to_rrule
from .state import CalendarError, resolve_event_window, subject_matches
from .utils import _log_debug

logger = logging.getLogger(__name__)


def attendee_email(name: str) -> str:
  """'Mary Jones' -> 'mary.jones@<ATTENDEE_EMAIL_DOMAIN>'; addresses pass through."""
  cleaned = (name or "").strip()
  if "@" in cleaned:
    return cleaned
  return f"{cleaned.lower().replace(' ', '.')}@{ATTENDEE_EMAIL_DOMAIN}"


def _build_gcal_attendees(attendees: Iterable[str]) -> Optional[List[Dict[str, str]]]:
  results: List[Dict[str, str]] = []
  for item in attendees:
    if not isinstance(item, str) or not item.strip():
      continue
    results.append({"email": attendee_email(item)})
  return results or None


def _gcal_time(value: datetime, tz_name: str) -> Dict[str, str]:
  aware = value.replace(tzinfo=ZoneInfo(tz_name))
  return {"dateTime": aware.isoformat(), "timeZone": tz_name}


def _convert_gcal_time(obj: Any, tz_name: str) -> Optional[datetime]:
  """Google start/end object -> naive local datetime."""
  if not isinstance(obj, dict):
    return None
  dt_value = obj.get("dateTime")
  if isinstance(dt_value, str):
    try:
      dt = datetime.fromisoformat(dt_value.replace("Z", "+00:00"))
    except ValueError:
      return None
    if dt.tzinfo is not None:
      dt = dt.astimezone(ZoneInfo(tz_name)).replace(tzinfo=None)
    return dt
  date_value = obj.get("date")
  if isinstance(date_value, str):
    try:
      return datetime.strptime(date_value, "%Y-%m-%d")
    except ValueError:
      return None
  return None


def _build_gcal_event_body(entities: CanonicalEntities,
                           tz_name: str,
                           rule: Optional[RecurrenceRule] = None) -> Dict[str, Any]:
  start_dt, end_dt = resolve_event_window(entities)
  if rule is not None:
    # DTSTART counts as an instance, so it has to be the first occurrence
    occurrences = expand_occurrences(rule)
    if occurrences and occurrences[0].date != start_dt.date():
      shift = occurrences[0].date - start_dt.date()
      start_dt, end_dt = start_dt + shift, end_dt + shift
  body: Dict[str, Any] = {
      "summary": entities.subject,
      "start": _gcal_time(start_dt, tz_name),
      "end": _gcal_time(end_dt, tz_name),
  }
  if entities.location:
    body["location"] = entities.location
  attendees_value = _build_gcal_attendees(entities.attendees)
  if attendees_value is not None:
    body["attendees"] = attendees_value
  if rule is not None:
    body["recurrence"] = [f"RRULE:{rule_to_rrule(rule, start_dt, tz_name)}"]
  return body


def _build_gcal_patch_body(entities: CanonicalEntities,
                           tz_name: str,
                           duration: Optional[timedelta] = None) -> Dict[str, Any]:
  body: Dict[str, Any] = {}
  if entities.start_time is not None:
    if duration is None:
      duration = timedelta(minutes=DEFAULT_MEETING_MINUTES)
    end_dt = entities.end_time or entities.start_time + duration
    body["start"] = _gcal_time(entities.start_time, tz_name)
    body["end"] = _gcal_time(end_dt, tz_name)
  elif entities.end_time is not None:
    body["end"] = _gcal_time(entities.end_time, tz_name)
  attendees_value = _build_gcal_attendees(entities.attendees)
  if attendees_value is not None:
    body["attendees"] = attendees_value
  if entities.location:
    body["location"] = entities.location
  return body


class GoogleCalendar:
  """Calendar collaborator backed by Google Calendar v3.

  The OAuth token lives in the secret store as authorized-user JSON and is
  written back after a refresh. ``service`` may be injected (tests).
  """

  def __init__(self,
               secrets: SecretStore,
               calendar_id: Optional[str] = None,
               tz_name: Optional[str] = None,
               service: Any = None):
    self.secrets = secrets
    self.calendar_id = calendar_id or GOOGLE_CALENDAR_ID
    self.tz_name = tz_name or SCHEDULE_TIMEZONE
    self._service = service

  def _get_service(self):
    if self._service is not None:
      return self._service

    token_json = self.secrets.require(GOOGLE_TOKEN_SECRET)
    try:
      token_data = json.loads(token_json)
    except ValueError as exc:
      raise CalendarError("Stored Google OAuth token is not valid JSON.") from exc

    creds = Credentials.from_authorized_user_info(token_data, GCAL_SCOPES)
    if creds.expired and creds.refresh_token:
      creds.refresh(GoogleRequest())
      self.secrets.put(GOOGLE_TOKEN_SECRET, creds.to_json())

    self._service = build("calendar", "v3", credentials=creds)
    return self._service

  def create(self,
             entities: CanonicalEntities,
             user_id: str,
             rule: Optional[RecurrenceRule] = None,
             excluded: Iterable[Occurrence] = ()) -> str:
    service = self._get_service()
    body = _build_gcal_event_body(entities, self.tz_name, rule)
    try:
      created = service.events().insert(calendarId=self.calendar_id,
                                        body=body).execute()
    except HttpError as exc:
      raise CalendarError(f"Google Calendar insert failed: {exc}") from exc

    event_id = created.get("id")
    if not event_id:
      raise CalendarError("Google Calendar did not return an event id.")
    _log_debug(f"[GCAL] created {event_id} for {user_id}")

    excluded_dates = {o.date for o in excluded}
    if rule is not None and excluded_dates:
      try:
        self._delete_instances(service, event_id, rule, excluded_dates)
      except CalendarError:
        logger.exception("Created %s but could not remove its excluded instances", event_id)
    return event_id

  def _delete_instances(self,
                        service,
                        event_id: str,
                        rule: RecurrenceRule,
                        excluded_dates: Set[date]) -> None:
    tz = ZoneInfo(self.tz_name)
    time_min = datetime(rule.range_start.year, rule.range_start.month,
                        rule.range_start.day, tzinfo=tz)
    time_max = datetime(rule.range_end.year, rule.range_end.month,
                        rule.range_end.day, tzinfo=tz) + timedelta(days=1)

    page_token: Optional[str] = None
    doomed: List[str] = []
    try:
      while True:
        response = service.events().instances(calendarId=self.calendar_id,
                                              eventId=event_id,
                                              timeMin=time_min.isoformat(),
                                              timeMax=time_max.isoformat(),
                                              pageToken=page_token).execute()
        for instance in response.get("items", []):
          original = instance.get("originalStartTime") or instance.get("start")
          when = _convert_gcal_time(original, self.tz_name)
          if when is not None and when.date() in excluded_dates and instance.get("id"):
            doomed.append(instance["id"])
        page_token = response.get("nextPageToken")
        if not page_token:
          break

      for instance_id in doomed:
        service.events().delete(calendarId=self.calendar_id,
                                eventId=instance_id).execute()
    except HttpError as exc:
      raise CalendarError(f"Failed to apply exceptions to {event_id}: {exc}") from exc
    _log_debug(f"[GCAL] removed {len(doomed)} excluded instance(s) of {event_id}")

  def find(self,
           subject: Optional[str],
           start: Optional[datetime],
           end: Optional[datetime],
           user_id: str) -> List[EventHandle]:
    service = self._get_service()
    params: Dict[str, Any] = {"calendarId": self.calendar_id}
    if subject:
      params["q"] = subject
    if start is not None and end is not None:
      params["timeMin"] = _gcal_time(start, self.tz_name)["dateTime"]
      params["timeMax"] = _gcal_time(end, self.tz_name)["dateTime"]
      params["singleEvents"] = True
      params["orderBy"] = "startTime"

    items: List[Dict[str, Any]] = []
    page_token: Optional[str] = None
    try:
      while True:
        params["pageToken"] = page_token
        response = service.events().list(**params).execute()
        items.extend(response.get("items", []))
        page_token = response.get("nextPageToken")
        if not page_token:
          break
    except HttpError as exc:
      raise CalendarError(f"Google Calendar search failed: {exc}") from exc

    results: List[EventHandle] = []
    for item in items:
      if item.get("status") == "cancelled" or not item.get("id"):
        continue
      if not subject_matches(item.get("summary"), subject):
        continue
      results.append(EventHandle(event_id=item["id"],
                                 subject=item.get("summary"),
                                 start_time=_convert_gcal_time(item.get("start"), self.tz_name),
                                 end_time=_convert_gcal_time(item.get("end"), self.tz_name)))
    _log_debug(f"[GCAL] find {subject!r} for {user_id}: {len(results)} match(es)")
    return results

  def delete(self, event_id: str, user_id: str) -> None:
    if not event_id:
      raise ValueError("event_id is empty")
    service = self._get_service()
    try:
      service.events().delete(calendarId=self.calendar_id,
                              eventId=event_id).execute()
    except HttpError as exc:
      raise CalendarError(f"Google Calendar delete failed: {exc}") from exc

  def update(self, event_id: str, entities: CanonicalEntities, user_id: str) -> None:
    if not event_id:
      raise ValueError("event_id is empty")
    body = _build_gcal_patch_body(entities, self.tz_name)
    if not body:
      _log_debug(f"[GCAL] nothing to patch on {event_id}")
      return
    service = self._get_service()
    try:
      if entities.start_time is not None and entities.end_time is None:
        duration = self._current_duration(service, event_id)
        body = _build_gcal_patch_body(entities, self.tz_name, duration)
      service.events().patch(calendarId=self.calendar_id,
                             eventId=event_id,
                             body=body).execute()
    except HttpError as exc:
      raise CalendarError(f"Google Calendar update failed: {exc}") from exc

  def _current_duration(self, service, event_id: str) -> Optional[timedelta]:
    """Length of the stored event, so a moved meeting keeps it."""
    current = service.events().get(calendarId=self.calendar_id,
                                   eventId=event_id).execute()
    start_dt = _convert_gcal_time(current.get("start"), self.tz_name)
    end_dt = _convert_gcal_time(current.get("end"), self.tz_name)
    if start_dt is None or end_dt is None or end_dt <= start_dt:
      return None
    return end_dt - start_dt
