from __future__ import annotations

import json
import re
from typing import Any, Dict, List, Optional, Tuple, Type, TypeVar

from pydantic import BaseModel

from ..llm import get_async_client
from ..utils import _log_debug

T = TypeVar("T", bound=BaseModel)


def _print_raw_output(*, kind: str, model: str, raw_output: str) -> None:
  _log_debug(f"[NLU LLM RAW] kind={kind} model={model}")
  _log_debug(raw_output if raw_output else "(empty)")
  _log_debug("[NLU LLM RAW END]")


def _extract_message_text(content: Any) -> str:
  if isinstance(content, str):
    return content.strip()
  if isinstance(content, list):
    chunks = []
    for item in content:
      if isinstance(item, dict):
        text_val = item.get("text")
        if isinstance(text_val, str) and text_val.strip():
          chunks.append(text_val.strip())
      elif isinstance(item, str) and item.strip():
        chunks.append(item.strip())
    return " ".join(chunks).strip()
  return ""


def _clean_json_text(text: str) -> str:
  cleaned = (text or "").strip()
  if cleaned.startswith("```"):
    cleaned = re.sub(r"^```[a-zA-Z0-9_-]*\s*", "", cleaned).strip()
    cleaned = re.sub(r"\s*```$", "", cleaned).strip()
  return cleaned


def _validate_structured_response(response_model: Type[T],
                                  raw_output: str) -> Optional[T]:
  """Best-effort parse of model output: raw, fence-stripped, then the outermost {...}."""
  if not raw_output:
    return None
  candidates = [raw_output, _clean_json_text(raw_output)]
  cleaned = candidates[-1]
  if cleaned:
    left = cleaned.find("{")
    right = cleaned.rfind("}")
    if left != -1 and right != -1 and right > left:
      candidates.append(cleaned[left:right + 1])
  seen = set()
  for candidate in candidates:
    text = (candidate or "").strip()
    if not text or text in seen:
      continue
    seen.add(text)
    try:
      return response_model.model_validate_json(text)
    except ValueError:
      continue
  return None


def _compose_openai_messages(system_prompt: str,
                             user_content: str) -> List[Dict[str, str]]:
  instruction = system_prompt
  # JSON mode requires the word "json" somewhere in the system prompt
  if "json" not in instruction.lower():
    instruction += "\n\nResponse must be a valid JSON object."
  return [
      {
          "role": "system",
          "content": instruction,
      },
      {
          "role": "user",
          "content": user_content,
      },
  ]


async def run_structured_completion(
    *,
    model: str,
    system_prompt: str,
    user_payload: Dict[str, Any],
    response_model: Type[T],
    client: Any = None,
) -> Tuple[Optional[T], str]:
  """One JSON-mode chat completion, parsed into ``response_model``.

  Transport errors propagate; a reply that does not validate comes back as
  ``(None, raw_output)``.
  """
  client = client or get_async_client()
  user_content = json.dumps(user_payload, ensure_ascii=False)
  completion = await client.chat.completions.create(
      model=model,
      messages=_compose_openai_messages(system_prompt, user_content),
      response_format={"type": "json_object"},
  )
  raw_output = _extract_message_text(completion.choices[0].message.content)
  _print_raw_output(kind="structured", model=model, raw_output=raw_output)
  return _validate_structured_response(response_model, raw_output), raw_output
