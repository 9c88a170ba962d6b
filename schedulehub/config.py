from __future__ import annotations

import os
import pathlib
import re
from zoneinfo import ZoneInfo

BASE_DIR = pathlib.Path(__file__).resolve().parent.parent

SCHEDULE_TIMEZONE = os.getenv("SCHEDULE_TIMEZONE", "UTC").strip() or "UTC"
LOCAL_TZ = ZoneInfo(SCHEDULE_TIMEZONE)
SCHEDULE_DEBUG = os.getenv("SCHEDULE_DEBUG", "0") == "1"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

ISO_DATETIME_RE = re.compile(r"^\d{4}-\d{2}-\d{2}T\d{2}:\d{2}$")
ISO_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
DATETIME_FLEX_RE = re.compile(r"^(\d{4}-\d{2}-\d{2})[ T](\d{2}:\d{2})(?::\d{2})?$")

# -------------------------
# 해석 기본값
# -------------------------
DEFAULT_SUBJECT = "Meeting"
DEFAULT_MEETING_MINUTES = int(os.getenv("DEFAULT_MEETING_MINUTES", "60"))
# "XXXX-..." 같은 상대 날짜를 며칠 뒤로 볼지 (기본: 내일 같은 시각)
RELATIVE_DATE_OFFSET_DAYS = int(os.getenv("RELATIVE_DATE_OFFSET_DAYS", "1"))
RECURRENCE_RANGE_MONTHS = int(os.getenv("RECURRENCE_RANGE_MONTHS", "6"))
MAX_RECURRENCE_OCCURRENCES = int(os.getenv("MAX_RECURRENCE_OCCURRENCES", "400"))

# -------------------------
# NLU 설정
# -------------------------
NLU_PROVIDER = os.getenv("NLU_PROVIDER", "openai").strip().lower() or "openai"
NLU_TIMEOUT_SECONDS = float(os.getenv("NLU_TIMEOUT_SECONDS", "15"))
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini").strip()
OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL", "").strip() or None
CLU_ENDPOINT = os.getenv("CLU_ENDPOINT", "").rstrip("/")
CLU_PROJECT_NAME = os.getenv("CLU_PROJECT_NAME", "")
CLU_DEPLOYMENT_NAME = os.getenv("CLU_DEPLOYMENT_NAME", "")
CLU_API_VERSION = os.getenv("CLU_API_VERSION", "2022-05-01")
LUIS_ENDPOINT = os.getenv("LUIS_ENDPOINT", "").rstrip("/")
LUIS_APP_ID = os.getenv("LUIS_APP_ID", "")

# -------------------------
# Google Calendar 설정
# -------------------------
ENABLE_GCAL = os.getenv("ENABLE_GCAL", "0") == "1"
GOOGLE_CALENDAR_ID = os.getenv("GOOGLE_CALENDAR_ID", "primary")
GCAL_SCOPES = [
    "https://www.googleapis.com/auth/calendar.events",
]
ATTENDEE_EMAIL_DOMAIN = os.getenv("ATTENDEE_EMAIL_DOMAIN", "example.com").strip()

# -------------------------
# 비밀값 / 사용자
# -------------------------
SECRETS_DIR = os.getenv("SECRETS_DIR", "").strip()
DEFAULT_USER_ID = os.getenv("DEFAULT_USER_ID", "").strip() or None
API_BASE = os.getenv("API_BASE", "/api")
