from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Protocol

import requests

from ..config import (
    CLU_API_VERSION,
    CLU_DEPLOYMENT_NAME,
    CLU_ENDPOINT,
    CLU_PROJECT_NAME,
    LUIS_APP_ID,
    LUIS_ENDPOINT,
    NLU_PROVIDER,
    NLU_TIMEOUT_SECONDS,
    OPENAI_MODEL,
    SCHEDULE_TIMEZONE,
)
from ..credentials import (
    CLU_API_KEY_SECRET,
    LUIS_API_KEY_SECRET,
    SecretStore,
    build_secret_store,
)
from ..llm import EXTRACTION_SYSTEM_PROMPT_TEMPLATE, get_async_client
from ..models import NluResult
from ..utils import _log_debug, now_local
from .intent_router import PROVIDER_ERROR_INTENT
from .llm_provider import run_structured_completion
from .schemas import CluResponse, LuisResponse, MeetingExtraction

logger = logging.getLogger(__name__)


class NluProvider(Protocol):
  name: str

  async def extract(self, text: str) -> NluResult:
    ...


def _provider_error(provider: str, reason: Any) -> NluResult:
  return NluResult(intent=PROVIDER_ERROR_INTENT, provider=provider, error=str(reason))


class OpenAINluProvider:
  name = "openai"

  def __init__(self,
               secrets: Optional[SecretStore] = None,
               model: Optional[str] = None,
               client: Any = None,
               clock: Callable[[], datetime] = now_local):
    self.secrets = secrets
    self.model = model or OPENAI_MODEL
    self.client = client
    self.clock = clock

  async def extract(self, text: str) -> NluResult:
    system_prompt = EXTRACTION_SYSTEM_PROMPT_TEMPLATE.format(
        NOW=self.clock().strftime("%Y-%m-%dT%H:%M"),
        TIMEZONE=SCHEDULE_TIMEZONE,
    )
    try:
      client = self.client or get_async_client(self.secrets)
      parsed, raw_output = await run_structured_completion(
          model=self.model,
          system_prompt=system_prompt,
          user_payload={"request": text},
          response_model=MeetingExtraction,
          client=client,
      )
    except Exception as exc:
      logger.exception("OpenAI extraction failed")
      return _provider_error(self.name, exc)

    if parsed is None:
      logger.warning("OpenAI returned output that is not a meeting extraction: %r",
                     raw_output[:200])
      return _provider_error(self.name, "unparseable model output")
    return NluResult(intent=parsed.intent or "Unknown",
                     entities=parsed.to_raw_entities(),
                     provider=self.name)


class CluNluProvider:
  """Azure Conversational Language Understanding (analyze-conversations)."""
  name = "clu"

  def __init__(self,
               secrets: SecretStore,
               endpoint: Optional[str] = None,
               project_name: Optional[str] = None,
               deployment_name: Optional[str] = None,
               api_version: Optional[str] = None,
               http: Any = None):
    self.secrets = secrets
    self.endpoint = (endpoint or CLU_ENDPOINT).rstrip("/")
    self.project_name = project_name or CLU_PROJECT_NAME
    self.deployment_name = deployment_name or CLU_DEPLOYMENT_NAME
    self.api_version = api_version or CLU_API_VERSION
    self.http = http or requests

  def _request_body(self, text: str) -> Dict[str, Any]:
    return {
        "kind": "Conversation",
        "analysisInput": {
            "conversationItem": {
                "id": "1",
                "participantId": "user",
                "text": text,
            }
        },
        "parameters": {
            "projectName": self.project_name,
            "deploymentName": self.deployment_name,
            "stringIndexType": "TextElement_V8",
        },
    }

  def _call(self, text: str) -> Dict[str, Any]:
    if not self.endpoint:
      raise RuntimeError("CLU_ENDPOINT is not set")
    response = self.http.post(
        f"{self.endpoint}/language/:analyze-conversations",
        params={"api-version": self.api_version},
        headers={"Ocp-Apim-Subscription-Key": self.secrets.require(CLU_API_KEY_SECRET)},
        json=self._request_body(text),
        timeout=NLU_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return response.json()

  async def extract(self, text: str) -> NluResult:
    try:
      payload = await asyncio.to_thread(self._call, text)
      _log_debug(f"[CLU RAW] {payload}")
      parsed = CluResponse.model_validate(payload)
    except Exception as exc:
      logger.exception("CLU request failed")
      return _provider_error(self.name, exc)
    return NluResult(intent=parsed.result.prediction.top_intent or "Unknown",
                     entities=parsed.to_raw_entities(),
                     provider=self.name)


class LuisNluProvider:
  """LUIS v3 prediction endpoint."""
  name = "luis"

  def __init__(self,
               secrets: SecretStore,
               endpoint: Optional[str] = None,
               app_id: Optional[str] = None,
               slot: str = "production",
               http: Any = None):
    self.secrets = secrets
    self.endpoint = (endpoint or LUIS_ENDPOINT).rstrip("/")
    self.app_id = app_id or LUIS_APP_ID
    self.slot = slot
    self.http = http or requests

  def _call(self, text: str) -> Dict[str, Any]:
    if not self.endpoint or not self.app_id:
      raise RuntimeError("LUIS_ENDPOINT / LUIS_APP_ID are not set")
    response = self.http.get(
        f"{self.endpoint}/luis/prediction/v3.0/apps/{self.app_id}/slots/{self.slot}/predict",
        params={"query": text, "show-all-intents": "false"},
        headers={"Ocp-Apim-Subscription-Key": self.secrets.require(LUIS_API_KEY_SECRET)},
        timeout=NLU_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return response.json()

  async def extract(self, text: str) -> NluResult:
    try:
      payload = await asyncio.to_thread(self._call, text)
      _log_debug(f"[LUIS RAW] {payload}")
      parsed = LuisResponse.model_validate(payload)
    except Exception as exc:
      logger.exception("LUIS request failed")
      return _provider_error(self.name, exc)
    return NluResult(intent=parsed.prediction.top_intent or "Unknown",
                     entities=parsed.prediction.to_raw_entities(),
                     provider=self.name)


def build_nlu_provider(provider_name: Optional[str] = None,
                       secrets: Optional[SecretStore] = None) -> NluProvider:
  name = (provider_name or NLU_PROVIDER).strip().lower()
  store = secrets or build_secret_store()
  if name == "clu":
    return CluNluProvider(store)
  if name == "luis":
    return LuisNluProvider(store)
  if name != "openai":
    raise ValueError(f"Unknown NLU provider: {name!r}")
  return OpenAINluProvider(store)
