from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable, Optional

from ..config import DEFAULT_USER_ID
from ..models import ScheduleResponse
from ..state import CalendarProvider
from ..utils import InvalidUserIdError, _log_debug, now_local, validate_user_id
from .intent_router import IntentRouter
from .nlu import NluProvider
from .normalizer import normalize, normalize_input_as_text
from .timex import RelativeDatePolicy

logger = logging.getLogger(__name__)


class ScheduleService:
  """text -> NLU -> normalize -> route -> calendar, one request at a time."""

  def __init__(self,
               nlu: NluProvider,
               calendar: CalendarProvider,
               policy: Optional[RelativeDatePolicy] = None,
               clock: Callable[[], datetime] = now_local,
               default_user_id: Optional[str] = DEFAULT_USER_ID):
    self.nlu = nlu
    self.calendar = calendar
    self.router = IntentRouter(calendar)
    self.policy = policy
    self.clock = clock
    self.default_user_id = default_user_id

  async def process(self, text: str, user_id: Optional[str] = None) -> ScheduleResponse:
    try:
      resolved_user = validate_user_id(user_id or self.default_user_id, "scheduling")
    except InvalidUserIdError as exc:
      logger.info("Rejected request: %s", exc)
      return ScheduleResponse(status="error", error_type="validation", message=str(exc))

    cleaned = normalize_input_as_text(text)
    if not cleaned:
      return ScheduleResponse(status="error",
                              error_type="validation",
                              message="Request text is empty.")

    try:
      nlu_result = await self.nlu.extract(cleaned)
      _log_debug(f"[SCHEDULE] nlu={nlu_result.model_dump()}")
      if nlu_result.error:
        logger.warning("NLU provider %s failed: %s", nlu_result.provider, nlu_result.error)

      entities = normalize(nlu_result.intent,
                           nlu_result.entities,
                           now=self.clock(),
                           policy=self.policy)
      return await asyncio.to_thread(self.router.dispatch, entities, resolved_user)
    except Exception as exc:
      logger.exception("Failed to process scheduling request")
      return ScheduleResponse(status="error",
                              error_type="provider",
                              message=f"Failed to process request: {exc}")
