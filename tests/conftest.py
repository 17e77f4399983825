"""Shared fakes for the pipeline, service and API tests."""
from __future__ import annotations

import os
from typing import Callable, Dict, Iterable, List, Optional

import pytest

# Keep test output plain and quiet before narrator configures logging
os.environ.setdefault("NARRATOR_NO_COLOR", "1")

from narrator.tts.client import SpeechModelClient  # noqa: E402
from narrator.tts.errors import GenerationError  # noqa: E402


def fake_pcm(text: str) -> bytes:
    """Deterministic stand-in audio: the chunk text, bracketed."""
    return f"<{text}>".encode("utf-8")


class FakeSpeechClient(SpeechModelClient):
    """
    In-process speech model.

    Args:
        failures: text -> exceptions raised (in order) before that text succeeds.
        always_fail: texts that never succeed.
        audio: text -> PCM bytes for successful calls.
    """

    name = "fake"

    def __init__(
        self,
        failures: Optional[Dict[str, List[Exception]]] = None,
        always_fail: Iterable[str] = (),
        audio: Optional[Callable[[str], bytes]] = None,
    ):
        self.calls: List[str] = []
        self._failures = {k: list(v) for k, v in (failures or {}).items()}
        self._always_fail = set(always_fail)
        self._audio = audio or fake_pcm

    async def synthesize(self, text: str) -> bytes:
        self.calls.append(text)
        if text in self._always_fail:
            raise GenerationError(f"boom: {text}")
        pending = self._failures.get(text)
        if pending:
            raise pending.pop(0)
        return self._audio(text)


class SleepRecorder:
    """Awaitable sleep replacement that records requested delays."""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


class FakeClock:
    """Manually advanced clock for TTL and window tests."""

    def __init__(self, start: float = 1_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def fake_client() -> FakeSpeechClient:
    return FakeSpeechClient()


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture(autouse=True)
def _reset_service_singleton():
    """Each test gets a fresh SpeechService singleton."""
    from narrator.services.speech_service import reset_service

    reset_service()
    yield
    reset_service()
