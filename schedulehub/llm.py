from __future__ import annotations

from typing import Optional

from openai import AsyncOpenAI

from .config import NLU_TIMEOUT_SECONDS, OPENAI_BASE_URL
from .credentials import OPENAI_API_KEY_SECRET, SecretStore, build_secret_store

async_client: Optional[AsyncOpenAI] = None


def get_async_client(secrets: Optional[SecretStore] = None) -> AsyncOpenAI:
  global async_client
  if async_client is None:
    store = secrets or build_secret_store()
    api_key = store.require(OPENAI_API_KEY_SECRET)
    async_client = AsyncOpenAI(api_key=api_key,
                               base_url=OPENAI_BASE_URL,
                               timeout=NLU_TIMEOUT_SECONDS)
  return async_client


def reset_async_client() -> None:
  global async_client
  async_client = None


# -------------------------
# LLM 프롬프트
# -------------------------
EXTRACTION_SYSTEM_PROMPT_TEMPLATE = """You extract meeting requests into JSON. Return exactly one JSON object. No explanations.
Reference:
- Current local time: {NOW}
- Timezone: {TIMEZONE}

Output schema:
{{
  "intent": "BookMeeting" | "CancelMeeting" | "RescheduleMeeting" | "Unknown",
  "attendees": [string],
  "startDateTime": "YYYY-MM-DDTHH:MM" | null,
  "endDateTime": "YYYY-MM-DDTHH:MM" | null,
  "subject": string | null,
  "location": string | null,
  "recurrencePattern": string | null,
  "exceptions": [string]
}}

Rules:
1. attendees: people names or email addresses exactly as written.
2. startDateTime / endDateTime: resolve relative expressions ("tomorrow 2pm") against the current local time.
3. recurrencePattern: the recurrence phrase as written ("weekly", "every weekday", "monthly").
4. exceptions: one entry per excluded occurrence ("second Tuesday", "2024-03-12").
5. Use null (not the string "null") when a value is absent.
"""
