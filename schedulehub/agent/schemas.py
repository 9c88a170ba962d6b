from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models import RawEntity


def _as_str_list(value: Any) -> List[str]:
  if value is None:
    return []
  if isinstance(value, str):
    return [value]
  if isinstance(value, list):
    return [str(v) for v in value if v is not None]
  return [str(value)]


# ---------------------------------------------------------------------------
#  OpenAI extraction output
# ---------------------------------------------------------------------------

class MeetingExtraction(BaseModel):
  """JSON object returned by the chat-completions extractor."""
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  intent: Optional[str] = None
  attendees: List[str] = Field(default_factory=list)
  start_date_time: Optional[str] = Field(default=None, alias="startDateTime")
  end_date_time: Optional[str] = Field(default=None, alias="endDateTime")
  subject: Optional[str] = None
  location: Optional[str] = None
  recurrence_pattern: Optional[str] = Field(default=None, alias="recurrencePattern")
  exceptions: List[str] = Field(default_factory=list)

  @field_validator("attendees", "exceptions", mode="before")
  @classmethod
  def _coerce_list(cls, value: Any) -> List[str]:
    return _as_str_list(value)

  def to_raw_entities(self) -> List[RawEntity]:
    entities: List[RawEntity] = []
    for name in self.attendees:
      entities.append(RawEntity(category="attendee", text=name))
    for value in (self.start_date_time, self.end_date_time):
      if value:
        entities.append(RawEntity(category="datetime", text=value, resolution=value))
    if self.subject:
      entities.append(RawEntity(category="subject", text=self.subject))
    if self.location:
      entities.append(RawEntity(category="location", text=self.location))
    if self.recurrence_pattern:
      entities.append(RawEntity(category="recurrence", text=self.recurrence_pattern))
    for text in self.exceptions:
      entities.append(RawEntity(category="exception", text=text))
    return entities


# ---------------------------------------------------------------------------
#  Azure CLU (analyze-conversations)
# ---------------------------------------------------------------------------

class CluResolution(BaseModel):
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  resolution_kind: Optional[str] = Field(default=None, alias="resolutionKind")
  date_time_sub_kind: Optional[str] = Field(default=None, alias="dateTimeSubKind")
  timex: Optional[str] = None
  value: Optional[str] = None
  begin: Optional[str] = None
  end: Optional[str] = None

  def to_resolution(self) -> Dict[str, Any]:
    sub_kind = (self.date_time_sub_kind or "").lower()
    if self.begin or self.end or sub_kind.endswith("range"):
      return {"values": [{"type": sub_kind or "datetimerange",
                          "timex": self.timex,
                          "start": self.begin,
                          "end": self.end}]}
    return {"timex": self.timex or self.value, "type": sub_kind or None}


class CluEntity(BaseModel):
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  category: str
  text: str = ""
  resolutions: List[CluResolution] = Field(default_factory=list)
  extra_information: List[Dict[str, Any]] = Field(default_factory=list,
                                                  alias="extraInformation")

  def to_raw_entity(self) -> RawEntity:
    resolution: Optional[Any] = None
    if self.resolutions:
      resolution = self.resolutions[0].to_resolution()
    else:
      for info in self.extra_information:
        key = info.get("key") or info.get("value")
        if isinstance(key, str) and key.strip():
          resolution = key
          break
    return RawEntity(category=self.category, text=self.text, resolution=resolution)


class CluPrediction(BaseModel):
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  top_intent: Optional[str] = Field(default=None, alias="topIntent")
  entities: List[CluEntity] = Field(default_factory=list)


class CluResult(BaseModel):
  model_config = ConfigDict(extra="ignore")

  query: Optional[str] = None
  prediction: CluPrediction


class CluResponse(BaseModel):
  model_config = ConfigDict(extra="ignore")

  kind: Optional[str] = None
  result: CluResult

  def to_raw_entities(self) -> List[RawEntity]:
    return [e.to_raw_entity() for e in self.result.prediction.entities]


# ---------------------------------------------------------------------------
#  LUIS v3 prediction
# ---------------------------------------------------------------------------

def _luis_resolution(item: Dict[str, Any]) -> Optional[Dict[str, Any]]:
  """datetimeV2 item -> {"values": [{timex, type, value|start|end}]}"""
  values = item.get("values")
  if not isinstance(values, list) or not values:
    return None
  first = values[0] if isinstance(values[0], dict) else {}
  resolved = first.get("resolution")
  concrete = resolved[0] if isinstance(resolved, list) and resolved and isinstance(resolved[0], dict) else {}
  return {"values": [{
      "timex": first.get("timex"),
      "type": item.get("type"),
      "value": concrete.get("value"),
      "start": concrete.get("start"),
      "end": concrete.get("end"),
  }]}


class LuisPrediction(BaseModel):
  model_config = ConfigDict(extra="ignore", populate_by_name=True)

  top_intent: Optional[str] = Field(default=None, alias="topIntent")
  entities: Dict[str, Any] = Field(default_factory=dict)

  def to_raw_entities(self) -> List[RawEntity]:
    instances = self.entities.get("$instance")
    instances = instances if isinstance(instances, dict) else {}
    results: List[RawEntity] = []
    for category, items in self.entities.items():
      if category.startswith("$") or not isinstance(items, list):
        continue
      meta = instances.get(category)
      meta = meta if isinstance(meta, list) else []
      for index, item in enumerate(items):
        text = ""
        if index < len(meta) and isinstance(meta[index], dict):
          text = str(meta[index].get("text") or "")
        if isinstance(item, dict):
          resolution = _luis_resolution(item)
          text = text or str(item.get("text") or "")
          results.append(RawEntity(category=category, text=text, resolution=resolution))
        elif isinstance(item, list):
          # list entities resolve to canonical forms
          canonical = str(item[0]) if item else ""
          results.append(RawEntity(category=category, text=text or canonical))
        elif item is not None:
          results.append(RawEntity(category=category, text=text or str(item)))
    return results


class LuisResponse(BaseModel):
  model_config = ConfigDict(extra="ignore")

  query: Optional[str] = None
  prediction: LuisPrediction
