"""Tests for intent classification and dispatch to the calendar collaborator."""

from __future__ import annotations

from datetime import date, datetime
from unittest.mock import MagicMock

import pytest

from schedulehub.agent.intent_router import IntentRouter, classify_intent
from schedulehub.models import CanonicalEntities, EventHandle, IntentAction
from schedulehub.state import CalendarError

from conftest import USER_ID


def _entities(intent: str = "BookMeeting", **kwargs) -> CanonicalEntities:
    return CanonicalEntities(intent=intent, **kwargs)


# ---------------------------------------------------------------------------
# classify_intent
# ---------------------------------------------------------------------------


class TestClassifyIntent:
    @pytest.mark.parametrize(
        "label,expected",
        [
            ("BookMeeting", IntentAction.BOOK),
            ("schedule_meeting", IntentAction.BOOK),
            ("Schedule Meeting", IntentAction.BOOK),
            ("CancelMeeting", IntentAction.CANCEL),
            ("delete-meeting", IntentAction.CANCEL),
            ("RescheduleMeeting", IntentAction.RESCHEDULE),
            ("UpdateMeeting", IntentAction.RESCHEDULE),
            ("Unknown", IntentAction.UNRESOLVED),
            ("provider_error", IntentAction.UNRESOLVED),
            ("None", IntentAction.UNRESOLVED),
            ("", IntentAction.UNRESOLVED),
            (None, IntentAction.UNRESOLVED),
        ],
    )
    def test_synonyms(self, label, expected):
        assert classify_intent(label) == expected


# ---------------------------------------------------------------------------
# Unresolved
# ---------------------------------------------------------------------------


class TestUnresolved:
    def test_unknown_intent(self, calendar):
        response = IntentRouter(calendar).dispatch(_entities("Unknown"), USER_ID)
        assert response.status == "error"
        assert response.error_type == "unresolved"
        assert response.message.startswith("Sorry, I could not understand")

    def test_provider_error_mentions_language_service(self, calendar):
        response = IntentRouter(calendar).dispatch(_entities("provider_error"), USER_ID)
        assert response.error_type == "unresolved"
        assert "language service" in response.message

    def test_calendar_untouched(self):
        calendar = MagicMock()
        IntentRouter(calendar).dispatch(_entities("Unknown"), USER_ID)
        calendar.create.assert_not_called()
        calendar.find.assert_not_called()


# ---------------------------------------------------------------------------
# Book
# ---------------------------------------------------------------------------


class TestBook:
    def test_single_meeting(self, calendar):
        entities = _entities(attendees=("Mary",), start_time=datetime(2024, 1, 2, 14, 0))
        response = IntentRouter(calendar).dispatch(entities, USER_ID)

        assert response.ok
        assert response.message == "Meeting scheduled successfully"
        assert response.event_id.startswith("local-")
        assert response.subject == "Meeting"
        assert response.attendees == ["Mary"]
        assert response.start_time == datetime(2024, 1, 2, 14, 0)
        assert response.recurrence_pattern is None
        assert response.excluded_dates is None

        stored = calendar.get(response.event_id, USER_ID)
        assert stored["end"] == datetime(2024, 1, 2, 15, 0)

    def test_recurring_with_exception(self, calendar):
        entities = _entities(
            start_time=datetime(2024, 1, 1, 10, 0),
            recurrence_text="every weekday",
            exception_texts=("every second Tuesday",),
        )
        response = IntentRouter(calendar).dispatch(entities, USER_ID)

        expected = [
            date(2024, 1, 9),
            date(2024, 2, 13),
            date(2024, 3, 12),
            date(2024, 4, 9),
            date(2024, 5, 14),
            date(2024, 6, 11),
        ]
        assert response.ok
        assert response.recurrence_pattern == "every weekday"
        assert response.exceptions == ["every second Tuesday"]
        assert response.excluded_dates == expected

        stored = calendar.get(response.event_id, USER_ID)
        assert stored["excluded_dates"] == expected
        assert stored["rule"].range_end == date(2024, 7, 1)

    def test_exceptions_without_recurrence_are_ignored(self):
        calendar = MagicMock()
        calendar.create.return_value = "evt-1"
        entities = _entities(start_time=datetime(2024, 1, 2, 14, 0), exception_texts=("second Tuesday",))
        response = IntentRouter(calendar).dispatch(entities, USER_ID)

        assert response.ok
        kwargs = calendar.create.call_args.kwargs
        assert kwargs["rule"] is None
        assert kwargs["excluded"] == frozenset()

    def test_calendar_failure(self):
        calendar = MagicMock()
        calendar.create.side_effect = CalendarError("boom")
        response = IntentRouter(calendar).dispatch(_entities(), USER_ID)

        assert response.status == "error"
        assert response.error_type == "provider"
        assert response.message == "Failed to schedule meeting: boom"


# ---------------------------------------------------------------------------
# Cancel
# ---------------------------------------------------------------------------


class TestCancel:
    def test_no_match(self, calendar):
        response = IntentRouter(calendar).dispatch(_entities("CancelMeeting", subject="Standup"), USER_ID)
        assert response.status == "error"
        assert response.error_type == "not_found"
        assert response.message == "No matching event found to cancel"

    def test_cancel_existing(self, calendar):
        router = IntentRouter(calendar)
        booked = router.dispatch(
            _entities(subject="Team Standup", start_time=datetime(2024, 1, 2, 9, 0)), USER_ID
        )
        response = router.dispatch(_entities("CancelMeeting", subject="standup"), USER_ID)

        assert response.ok
        assert response.message == "Meeting cancelled successfully"
        assert response.event_id == booked.event_id
        assert calendar.get(booked.event_id, USER_ID) is None

    def test_window_used_only_when_both_ends_present(self):
        calendar = MagicMock()
        calendar.find.return_value = []
        router = IntentRouter(calendar)

        router.dispatch(_entities("CancelMeeting", start_time=datetime(2024, 1, 2, 9, 0)), USER_ID)
        calendar.find.assert_called_with("Meeting", None, None, USER_ID)

        start, end = datetime(2024, 1, 2, 9, 0), datetime(2024, 1, 2, 10, 0)
        router.dispatch(_entities("CancelMeeting", start_time=start, end_time=end), USER_ID)
        calendar.find.assert_called_with("Meeting", start, end, USER_ID)

    def test_first_match_wins(self, caplog):
        calendar = MagicMock()
        calendar.find.return_value = [EventHandle(event_id="a"), EventHandle(event_id="b")]
        with caplog.at_level("WARNING", logger="schedulehub.agent.intent_router"):
            response = IntentRouter(calendar).dispatch(_entities("CancelMeeting"), USER_ID)

        calendar.delete.assert_called_once_with("a", USER_ID)
        assert response.event_id == "a"
        assert "2 events matched" in caplog.text

    def test_delete_failure(self):
        calendar = MagicMock()
        calendar.find.return_value = [EventHandle(event_id="a")]
        calendar.delete.side_effect = RuntimeError("gone")
        response = IntentRouter(calendar).dispatch(_entities("CancelMeeting"), USER_ID)
        assert response.error_type == "provider"
        assert response.message == "Failed to cancel meeting: gone"


# ---------------------------------------------------------------------------
# Reschedule
# ---------------------------------------------------------------------------


class TestReschedule:
    def test_no_match(self, calendar):
        response = IntentRouter(calendar).dispatch(_entities("RescheduleMeeting"), USER_ID)
        assert response.error_type == "not_found"
        assert response.message == "No matching event found to reschedule"

    def test_reschedule_existing(self, calendar):
        router = IntentRouter(calendar)
        booked = router.dispatch(
            _entities(subject="Budget review", start_time=datetime(2024, 1, 2, 9, 0)), USER_ID
        )
        new_start = datetime(2024, 1, 3, 11, 0)
        response = router.dispatch(
            _entities(
                "RescheduleMeeting",
                subject="budget",
                start_time=new_start,
                location="Room 2",
            ),
            USER_ID,
        )

        assert response.ok
        assert response.message == "Meeting rescheduled successfully"
        assert response.event_id == booked.event_id
        stored = calendar.get(booked.event_id, USER_ID)
        assert stored["start"] == new_start
        assert stored["end"] == datetime(2024, 1, 3, 12, 0)
        assert stored["location"] == "Room 2"

    def test_reschedule_ignores_time_window_when_searching(self):
        calendar = MagicMock()
        calendar.find.return_value = []
        entities = _entities(
            "RescheduleMeeting",
            start_time=datetime(2024, 1, 3, 11, 0),
            end_time=datetime(2024, 1, 3, 12, 0),
        )
        IntentRouter(calendar).dispatch(entities, USER_ID)
        calendar.find.assert_called_once_with("Meeting", None, None, USER_ID)
