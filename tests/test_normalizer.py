"""Tests for entity normalization.

Covers:
- category synonyms and case-insensitive matching
- resolution shapes (values list, timex dict, plain string, text)
- subject / location defaults and the literal "null" string
- first-two-datetimes rule and non-increasing end time
- idempotence
"""

from __future__ import annotations

from datetime import datetime

import pytest

from schedulehub.agent.normalizer import canonical_category, normalize
from schedulehub.models import RawEntity

from conftest import FIXED_NOW


def _dt(category: str, timex: str, type_hint: str = "datetime") -> RawEntity:
    return RawEntity(
        category=category,
        text=timex,
        resolution={"values": [{"timex": timex, "type": type_hint}]},
    )


# ---------------------------------------------------------------------------
# Categories
# ---------------------------------------------------------------------------


class TestCategories:
    @pytest.mark.parametrize(
        "category,expected",
        [
            ("personName", "attendee"),
            (" Attendee ", "attendee"),
            ("PERSON", "attendee"),
            ("datetimeV2", "datetime"),
            ("time", "datetime"),
            ("RecurringPattern", "recurrence"),
            ("MeetingTitle", "subject"),
            ("title", "subject"),
            ("Location", "location"),
            ("exception", "exception"),
            ("DateTime.Range", None),
            ("color", None),
        ],
    )
    def test_canonical_category(self, category, expected):
        assert canonical_category(category) == expected

    def test_unknown_categories_are_dropped(self):
        result = normalize("BookMeeting", [RawEntity(category="color", text="blue")], now=FIXED_NOW)
        assert result.attendees == ()
        assert result.location is None


# ---------------------------------------------------------------------------
# Book meeting scenario
# ---------------------------------------------------------------------------


class TestBookScenario:
    def test_mary_at_two_tomorrow(self):
        entities = [
            RawEntity(category="personName", text="Mary"),
            _dt("datetimeV2", "2024-01-02T14:00"),
        ]
        result = normalize("BookMeeting", entities, now=FIXED_NOW)

        assert result.intent == "BookMeeting"
        assert result.attendees == ("Mary",)
        assert result.start_time == datetime(2024, 1, 2, 14, 0)
        assert result.end_time is None
        assert result.subject == "Meeting"
        assert result.recurrence_text is None
        assert result.exception_texts == ()

    def test_full_recurring_request(self):
        entities = [
            RawEntity(category="attendee", text="  Mary "),
            RawEntity(category="attendee", text="bob@contoso.com"),
            _dt("datetime", "2024-01-02T14:00"),
            _dt("datetime", "2024-01-02T15:00"),
            RawEntity(category="subject", text="Standup"),
            RawEntity(category="location", text="Room 4"),
            RawEntity(category="recurrence", text="every weekday"),
            RawEntity(category="exception", text="second Tuesday"),
            RawEntity(category="exception", text="last Friday"),
        ]
        result = normalize("BookMeeting", entities, now=FIXED_NOW)

        assert result.attendees == ("Mary", "bob@contoso.com")
        assert result.start_time == datetime(2024, 1, 2, 14, 0)
        assert result.end_time == datetime(2024, 1, 2, 15, 0)
        assert result.subject == "Standup"
        assert result.location == "Room 4"
        assert result.recurrence_text == "every weekday"
        assert result.exception_texts == ("second Tuesday", "last Friday")
        assert result.is_recurring


# ---------------------------------------------------------------------------
# Resolution shapes
# ---------------------------------------------------------------------------


class TestResolutionShapes:
    def test_datetimerange_yields_start_and_end(self):
        entity = RawEntity(
            category="datetimeV2",
            text="2 to 3pm tomorrow",
            resolution={
                "values": [
                    {
                        "type": "datetimerange",
                        "start": "2024-01-02 14:00:00",
                        "end": "2024-01-02 15:00:00",
                    }
                ]
            },
        )
        result = normalize("BookMeeting", [entity], now=FIXED_NOW)
        assert result.start_time == datetime(2024, 1, 2, 14, 0)
        assert result.end_time == datetime(2024, 1, 2, 15, 0)

    def test_timex_dict(self):
        entity = RawEntity(category="time", text="2pm", resolution={"timex": "2024-01-02T14:00"})
        result = normalize("BookMeeting", [entity], now=FIXED_NOW)
        assert result.start_time == datetime(2024, 1, 2, 14, 0)

    def test_plain_string_resolution(self):
        entity = RawEntity(category="datetime", text="2pm", resolution="2024-01-02T14:00")
        result = normalize("BookMeeting", [entity], now=FIXED_NOW)
        assert result.start_time == datetime(2024, 1, 2, 14, 0)

    def test_text_used_without_resolution(self):
        entity = RawEntity(category="date", text="2024-01-05")
        result = normalize("BookMeeting", [entity], now=FIXED_NOW)
        assert result.start_time == datetime(2024, 1, 5, 0, 0)

    def test_relative_timex_uses_policy(self):
        result = normalize("BookMeeting", [_dt("datetimeV2", "XXXX-XX-XXT14:00")], now=FIXED_NOW)
        assert result.start_time == datetime(2024, 1, 2, 14, 0)


# ---------------------------------------------------------------------------
# Defaults and the "null" literal
# ---------------------------------------------------------------------------


class TestDefaults:
    @pytest.mark.parametrize("subject", [None, "", "   ", "null", "NULL"])
    def test_subject_default(self, subject):
        entities = [] if subject is None else [RawEntity(category="subject", text=subject)]
        assert normalize("BookMeeting", entities, now=FIXED_NOW).subject == "Meeting"

    def test_null_literals_are_absent(self):
        entities = [
            RawEntity(category="location", text="null"),
            RawEntity(category="recurrence", text="Null"),
            RawEntity(category="exception", text="null"),
            RawEntity(category="personName", text="null"),
        ]
        result = normalize("BookMeeting", entities, now=FIXED_NOW)
        assert result.location is None
        assert result.recurrence_text is None
        assert result.exception_texts == ()
        assert result.attendees == ()

    @pytest.mark.parametrize("intent", [None, "", "  ", "null"])
    def test_missing_intent_is_unknown(self, intent):
        assert normalize(intent, [], now=FIXED_NOW).intent == "Unknown"

    def test_last_recurrence_wins(self):
        entities = [
            RawEntity(category="recurrence", text="daily"),
            RawEntity(category="recurringPattern", text="weekly on Monday"),
        ]
        assert normalize("BookMeeting", entities, now=FIXED_NOW).recurrence_text == "weekly on Monday"


# ---------------------------------------------------------------------------
# Datetime ordering
# ---------------------------------------------------------------------------


class TestDatetimeOrdering:
    def test_only_first_two_datetimes_are_used(self, caplog):
        entities = [
            _dt("datetime", "2024-01-02T14:00"),
            _dt("datetime", "2024-01-02T15:00"),
            _dt("datetime", "2024-01-02T16:00"),
        ]
        with caplog.at_level("INFO", logger="schedulehub.agent.normalizer"):
            result = normalize("BookMeeting", entities, now=FIXED_NOW)
        assert result.start_time == datetime(2024, 1, 2, 14, 0)
        assert result.end_time == datetime(2024, 1, 2, 15, 0)
        assert "Ignoring extra datetime" in caplog.text

    def test_end_not_after_start_is_dropped(self):
        entities = [
            _dt("datetime", "2024-01-02T15:00"),
            _dt("datetime", "2024-01-02T14:00"),
        ]
        result = normalize("BookMeeting", entities, now=FIXED_NOW)
        assert result.start_time == datetime(2024, 1, 2, 15, 0)
        assert result.end_time is None


# ---------------------------------------------------------------------------
# Idempotence
# ---------------------------------------------------------------------------


class TestIdempotence:
    def test_same_input_same_output(self):
        entities = [
            RawEntity(category="personName", text="Mary"),
            _dt("datetimeV2", "XXXX-WXX-2T14"),
            RawEntity(category="recurrence", text="weekly"),
        ]
        first = normalize("BookMeeting", entities, now=FIXED_NOW)
        second = normalize("BookMeeting", entities, now=FIXED_NOW)
        assert first == second
