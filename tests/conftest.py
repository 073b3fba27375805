"""Pytest configuration, fakes and fixtures."""
from __future__ import annotations

import asyncio
from datetime import date
from typing import Any, Dict, List, Optional

import pytest

from tool_chat.config import ChatConfig
from tool_chat.llm_client import PassComplete, TextDelta
from tool_chat.models import Chunk, ChunkType, ToolInvocation
from tool_chat.store import InMemoryConversationStore

STALL = object()


def pytest_configure(config):
    """Ensure asyncio_mode is auto so async tests run without markers."""
    if hasattr(config.option, "asyncio_mode") and config.option.asyncio_mode is None:
        config.option.asyncio_mode = "auto"


# ---------------------------------------------------------------------------
# Scripted model backend
# ---------------------------------------------------------------------------

def text_pass(*deltas: str) -> List[Any]:
    return [TextDelta(d) for d in deltas] + [PassComplete(text="".join(deltas), finish_reason="stop")]


def tool_pass(*invocations: ToolInvocation, text: str = "") -> List[Any]:
    events: List[Any] = [TextDelta(text)] if text else []
    events.append(PassComplete(text=text, invocations=list(invocations), finish_reason="tool_calls"))
    return events


class ScriptedClient:
    """Fake model client replaying one script per pass; the last script repeats."""

    def __init__(self, *passes: Any) -> None:
        self.passes = list(passes)
        self.requests: List[List[Dict[str, Any]]] = []
        self.tools: List[List[Dict[str, Any]]] = []

    async def stream_pass(self, messages, tools, *, model_kwargs=None):
        self.requests.append([dict(m) for m in messages])
        self.tools.append(tools)
        script = self.passes[min(len(self.requests), len(self.passes)) - 1]
        if isinstance(script, Exception):
            raise script
        for event in script:
            if event is STALL:
                await asyncio.sleep(3600)
            yield event


class ChunkCollector:
    def __init__(self) -> None:
        self.chunks: List[Chunk] = []

    async def __call__(self, chunk: Chunk) -> None:
        self.chunks.append(chunk)

    @property
    def types(self) -> List[ChunkType]:
        return [chunk.type for chunk in self.chunks]

    def of_type(self, chunk_type: ChunkType) -> List[Chunk]:
        return [chunk for chunk in self.chunks if chunk.type is chunk_type]


# ---------------------------------------------------------------------------
# Stores
# ---------------------------------------------------------------------------

class RecordingStore(InMemoryConversationStore):
    def __init__(self) -> None:
        super().__init__()
        self.saves: List[Any] = []

    async def save_conversation(self, conversation) -> None:
        self.saves.append(conversation)
        await super().save_conversation(conversation)


class FailingStore(InMemoryConversationStore):
    def __init__(self, fail_on: str = "save") -> None:
        super().__init__()
        self.fail_on = fail_on

    async def save_conversation(self, conversation) -> None:
        if self.fail_on == "save":
            raise ConnectionError("store unavailable")
        await super().save_conversation(conversation)

    async def delete_conversation_by_id(self, conversation_id: str) -> None:
        if self.fail_on == "delete":
            raise ConnectionError("store unavailable")
        await super().delete_conversation_by_id(conversation_id)


class HangingStore(InMemoryConversationStore):
    """Store whose reads never complete."""

    async def get_conversation_by_id(self, conversation_id: str):
        await asyncio.sleep(3600)


class FakeResponse:
    def __init__(self, payload: Dict[str, Any]) -> None:
        self._payload = payload

    def raise_for_status(self) -> None:
        return None

    def json(self) -> Dict[str, Any]:
        return self._payload


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def chat_config() -> ChatConfig:
    return ChatConfig(max_passes=5, pass_timeout=2.0, tool_timeout=1.0)


@pytest.fixture
def store() -> RecordingStore:
    return RecordingStore()


@pytest.fixture
def today() -> date:
    return date(2024, 5, 17)


@pytest.fixture
def paris_weather(monkeypatch) -> List[Dict[str, Any]]:
    """Stub the Open-Meteo endpoints; returns the recorded calls."""
    calls: List[Dict[str, Any]] = []

    def fake_get(url: str, params: Optional[Dict[str, Any]] = None, timeout: Optional[float] = None):
        calls.append({"url": url, "params": params, "timeout": timeout})
        if "geocoding" in url:
            return FakeResponse({"results": [{"name": "Paris", "latitude": 48.85, "longitude": 2.35}]})
        return FakeResponse({"current": {"temperature_2m": 18.5}})

    monkeypatch.setattr("tool_chat.tools.requests.get", fake_get)
    return calls
