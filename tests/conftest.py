"""
Shared fixtures for the CV refiner test suite.

Provides a scripted language model so no test ever reaches a real model
endpoint, and a controllable clock for session expiry tests.
"""

import os

# IMPORTANT: Set environment variables BEFORE any imports from refiner_service
# so that RefinerSettings is configured correctly when first loaded.
os.environ["ENVIRONMENT"] = "development"
os.environ["LLM_PROVIDER"] = "ollama"
os.environ["OLLAMA_BASE_URL"] = "http://ollama.test:11434"
os.environ["JOB_FETCH_USE_BROWSER"] = "false"
os.environ["CORS_ORIGINS"] = "http://localhost:3000"
os.environ["DEBUG_MODE"] = "false"

from datetime import datetime, timedelta, timezone
from typing import List, Tuple, Union

import pytest

from refiner.common.llm_client import LanguageModelClient


class ScriptedLLM(LanguageModelClient):
    """
    Language model that answers from a queue of scripted replies.

    Queued exceptions are raised instead of returned. Every call is recorded
    as a (system_prompt, user_prompt) pair.
    """

    model = "scripted"

    def __init__(self, *replies: Union[str, BaseException]):
        self.replies: List[Union[str, BaseException]] = list(replies)
        self.calls: List[Tuple[str, str]] = []
        self.closed = False

    def queue(self, *replies: Union[str, BaseException]) -> None:
        self.replies.extend(replies)

    @property
    def call_count(self) -> int:
        return len(self.calls)

    async def generate(self, system_prompt: str, user_prompt: str) -> str:
        self.calls.append((system_prompt, user_prompt))
        if not self.replies:
            raise AssertionError("ScriptedLLM called with no reply queued")
        reply = self.replies.pop(0)
        if isinstance(reply, BaseException):
            raise reply
        return reply

    async def aclose(self) -> None:
        self.closed = True


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime = datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc)):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def llm():
    """Scripted language model with an empty reply queue."""
    return ScriptedLLM()


@pytest.fixture
def clock():
    """Fake clock starting at 2024-01-01 12:00 UTC."""
    return FakeClock()
