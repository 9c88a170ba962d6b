"""Shared fixtures for the scheduling pipeline tests."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

import pytest

from schedulehub.llm import reset_async_client
from schedulehub.models import NluResult, RawEntity
from schedulehub.state import LocalCalendar

# Monday 2024-01-01 09:00 local
FIXED_NOW = datetime(2024, 1, 1, 9, 0)
USER_ID = "mary@contoso.com"


class FakeNlu:
    """NLU collaborator that replays a canned result and records its inputs."""

    name = "fake"

    def __init__(self, result: Optional[NluResult] = None):
        self.result = result or NluResult()
        self.calls: List[str] = []

    async def extract(self, text: str) -> NluResult:
        self.calls.append(text)
        return self.result


def nlu_result(intent: str, *entities: RawEntity) -> NluResult:
    return NluResult(intent=intent, entities=list(entities), provider="fake")


@pytest.fixture
def fixed_now() -> datetime:
    return FIXED_NOW


@pytest.fixture
def calendar() -> LocalCalendar:
    return LocalCalendar()


@pytest.fixture(autouse=True)
def _fresh_openai_client():
    reset_async_client()
    yield
    reset_async_client()
