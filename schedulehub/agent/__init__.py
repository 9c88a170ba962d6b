"""
NLU 일정 요청 파이프라인
"""

from .intent_router import IntentRouter, classify_intent
from .normalizer import normalize
from .orchestrator import ScheduleService

__all__ = [
    "IntentRouter",
    "ScheduleService",
    "classify_intent",
    "normalize",
]
