"""Shared pytest fixtures for testing."""

import os
import random
import tempfile
from typing import Any, Dict, List

import pytest

# Keep test runs from writing into ./logs or starting the live broadcast loop.
os.environ.setdefault("METRICS_LOG_PATH", os.path.join(tempfile.mkdtemp(), "metrics.jsonl"))
os.environ.setdefault("BROADCAST_ENABLED", "false")
os.environ.setdefault("EDENAI_API_KEY", "test-key")


class FakeBackend:
    """Inference backend double: returns canned responses or raises."""

    def __init__(self, face: Any = None, stt: Any = None, text: Any = None):
        self.face = face
        self.stt = stt
        self.text = text
        self.calls: List[str] = []

    async def _answer(self, name: str, value: Any) -> Any:
        self.calls.append(name)
        if isinstance(value, BaseException):
            raise value
        return value

    async def face_emotion(self, image):
        return await self._answer("face", self.face)

    async def speech_to_text(self, audio, language):
        self.language = language
        return await self._answer("stt", self.stt)

    async def text_emotion(self, text):
        self.transcript = text
        return await self._answer("text", self.text)


class FakeTransport:
    """SignalTransport double recording every emitted event."""

    def __init__(self, connection_id: str, alive: bool = True, fail: bool = False):
        self.connection_id = connection_id
        self.alive = alive
        self.fail = fail
        self.sent: List[Dict[str, Any]] = []

    def is_alive(self) -> bool:
        return self.alive

    async def send(self, event: str, payload: dict) -> None:
        if self.fail:
            raise ConnectionResetError("peer went away")
        self.sent.append({"event": event, "payload": payload})


@pytest.fixture
def fake_backend():
    return FakeBackend


@pytest.fixture
def make_transport():
    return FakeTransport


@pytest.fixture
def rng():
    return random.Random(1234)
