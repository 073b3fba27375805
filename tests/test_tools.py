from __future__ import annotations

import asyncio

import pytest
import requests
from pydantic import BaseModel

from tool_chat.config import ToolConfig
from tool_chat.errors import ToolNotFoundError
from tool_chat.models import ToolInvocation
from tool_chat.tools import ToolDeclaration, ToolRegistry, default_registry


class EchoParams(BaseModel):
    text: str
    times: int = 1


async def echo(params: EchoParams):
    return {"echo": params.text * params.times}


async def explode(params: EchoParams):
    raise RuntimeError("kaboom")


async def dawdle(params: EchoParams):
    await asyncio.sleep(5)
    return {"never": True}


async def remote_timeout(params: EchoParams):
    raise requests.Timeout("read timed out")


def _registry(*extra: ToolDeclaration) -> ToolRegistry:
    return ToolRegistry([ToolDeclaration("echo", "Echo text back", EchoParams, echo), *extra])


def test_register_rejects_duplicate_names():
    registry = _registry()
    with pytest.raises(ValueError):
        registry.register(ToolDeclaration("echo", "again", EchoParams, echo))


def test_resolve_unknown_tool_raises():
    with pytest.raises(ToolNotFoundError):
        _registry().resolve("missing")


def test_to_wire_exposes_json_schema():
    (wire,) = _registry().to_wire()
    assert wire["type"] == "function"
    assert wire["function"]["name"] == "echo"
    assert wire["function"]["description"] == "Echo text back"
    params = wire["function"]["parameters"]
    assert params["type"] == "object"
    assert params["required"] == ["text"]
    assert set(params["properties"]) == {"text", "times"}


async def test_execute_validates_and_runs():
    result = await _registry().execute(ToolInvocation("c1", "echo", {"text": "ab", "times": 2}))
    assert result.ok
    assert result.call_id == "c1"
    assert result.result == {"echo": "abab"}


@pytest.mark.parametrize("arguments", [{"times": 2}, {"text": "a", "times": "many"}, "not-json", ["text"]])
async def test_invalid_arguments_become_failure_result(arguments):
    result = await _registry().execute(ToolInvocation("c1", "echo", arguments))
    assert not result.ok
    assert "Invalid arguments for echo" in result.error
    assert result.payload() == {"error": result.error}


async def test_unknown_tool_becomes_failure_result():
    result = await _registry().execute(ToolInvocation("c9", "missing", {}))
    assert not result.ok
    assert "missing" in result.error


async def test_executor_exception_becomes_failure_result():
    registry = _registry(ToolDeclaration("explode", "Always fails", EchoParams, explode))
    result = await registry.execute(ToolInvocation("c2", "explode", {"text": "x"}))
    assert not result.ok
    assert "kaboom" in result.error


async def test_declared_timeout_becomes_failure_result():
    registry = _registry(ToolDeclaration("dawdle", "Too slow", EchoParams, dawdle, timeout=0.01))
    result = await registry.execute(ToolInvocation("c3", "dawdle", {"text": "x"}))
    assert not result.ok
    assert "timed out" in result.error


async def test_executor_network_timeout_becomes_failure_result():
    registry = _registry(ToolDeclaration("remote", "Remote call", EchoParams, remote_timeout))
    result = await registry.execute(ToolInvocation("c4", "remote", {"text": "x"}))
    assert result.error == "Tool remote timed out"


# ---------------------------------------------------------------------------
# Built-in tools
# ---------------------------------------------------------------------------

async def test_general_knowledge_tool():
    result = await default_registry().execute(
        ToolInvocation("k1", "getGeneralKnowledge", {"question": "Who wrote Hamlet?"})
    )
    assert result.result == {"answer": "Here's some information on: Who wrote Hamlet?"}


async def test_weather_tool_queries_requested_city(paris_weather):
    registry = default_registry(ToolConfig(request_timeout=3.0))
    result = await registry.execute(ToolInvocation("w1", "getWeather", {"city": "Paris"}))

    assert result.result == {"weather": "Current temperature in Paris: 18.5°C"}
    geocode, forecast = paris_weather
    assert geocode["params"]["name"] == "Paris"
    assert forecast["params"]["latitude"] == 48.85
    assert forecast["params"]["longitude"] == 2.35
    assert all(call["timeout"] == 3.0 for call in paris_weather)


async def test_weather_tool_unknown_city_is_failure(monkeypatch):
    from conftest import FakeResponse

    monkeypatch.setattr("tool_chat.tools.requests.get", lambda url, params=None, timeout=None: FakeResponse({}))
    result = await default_registry().execute(ToolInvocation("w2", "getWeather", {"city": "Atlantis"}))
    assert not result.ok
    assert "No location found for 'Atlantis'" in result.error


async def test_weather_tool_requires_city():
    result = await default_registry().execute(ToolInvocation("w3", "getWeather", {"city": ""}))
    assert not result.ok
    assert result.error.startswith("Invalid arguments for getWeather")
