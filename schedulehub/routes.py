from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from fastapi.responses import JSONResponse

from .agent.nlu import build_nlu_provider
from .agent.orchestrator import ScheduleService
from .config import API_BASE, ENABLE_GCAL, NLU_PROVIDER
from .credentials import SecretStore, build_secret_store
from .gcal import GoogleCalendar
from .models import ScheduleRequest
from .state import CalendarProvider, LocalCalendar

router = APIRouter()
logger = logging.getLogger(__name__)

_service: Optional[ScheduleService] = None


def build_calendar(secrets: SecretStore) -> CalendarProvider:
  if ENABLE_GCAL:
    return GoogleCalendar(secrets)
  logger.info("Google Calendar disabled, using the in-memory calendar")
  return LocalCalendar()


def get_schedule_service() -> ScheduleService:
  global _service
  if _service is None:
    secrets = build_secret_store()
    _service = ScheduleService(build_nlu_provider(secrets=secrets),
                               build_calendar(secrets))
  return _service


@router.get(f"{API_BASE}/health")
async def health():
  return {
      "status": "ok",
      "nluProvider": NLU_PROVIDER,
      "calendar": "google" if ENABLE_GCAL else "local",
  }


@router.post(f"{API_BASE}/schedule")
async def schedule(body: ScheduleRequest,
                   service: ScheduleService = Depends(get_schedule_service)):
  result = await service.process(body.text, body.user_id)
  if result.error_type == "validation":
    raise HTTPException(status_code=400, detail=result.message)
  return JSONResponse(result.to_payload())
