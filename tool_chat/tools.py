"""Tool declarations exposed to the model and their execution boundary."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Type

import pydantic
import requests
from fastapi.concurrency import run_in_threadpool
from pydantic import BaseModel, Field

from .config import ToolConfig
from .errors import ToolExecutionError, ToolNotFoundError
from .models import ToolInvocation, ToolResult

logger = logging.getLogger(__name__)

ToolExecutor = Callable[[BaseModel], Awaitable[Any]]


@dataclass(frozen=True)
class ToolDeclaration:
    name: str
    description: str
    parameters: Type[BaseModel]
    executor: ToolExecutor
    timeout: Optional[float] = None

    def to_wire(self) -> Dict[str, Any]:
        """Serialise the declaration in the function-calling format of the backend."""
        schema = self.parameters.model_json_schema()
        schema.pop("title", None)
        return {
            "type": "function",
            "function": {"name": self.name, "description": self.description, "parameters": schema},
        }


class ToolRegistry:
    """Set of callable tools, keyed by unique name."""

    def __init__(self, declarations: Iterable[ToolDeclaration] = ()) -> None:
        self._tools: Dict[str, ToolDeclaration] = {}
        for declaration in declarations:
            self.register(declaration)

    def register(self, declaration: ToolDeclaration) -> None:
        if declaration.name in self._tools:
            raise ValueError(f"Tool '{declaration.name}' is already registered")
        self._tools[declaration.name] = declaration

    def resolve(self, name: str) -> ToolDeclaration:
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(name) from None

    def to_wire(self) -> List[Dict[str, Any]]:
        return [declaration.to_wire() for declaration in self._tools.values()]

    def __len__(self) -> int:
        return len(self._tools)

    async def execute(self, invocation: ToolInvocation) -> ToolResult:
        """Validate the raw arguments and run the executor.

        Every failure (unknown tool, invalid arguments, executor error or
        timeout) is returned as a failed ``ToolResult`` so it can be fed back
        to the model. Only cancellation propagates.
        """
        call_id, name = invocation.call_id, invocation.tool_name
        try:
            declaration = self.resolve(name)
        except ToolNotFoundError as exc:
            logger.warning("Model requested unknown tool %s (call %s)", name, call_id)
            return ToolResult(call_id, name, error=str(exc))

        arguments = invocation.arguments if invocation.arguments is not None else {}
        try:
            params = declaration.parameters.model_validate(arguments)
        except pydantic.ValidationError as exc:
            logger.info("Rejected arguments for tool %s (call %s): %s", name, call_id, exc)
            return ToolResult(call_id, name, error=f"Invalid arguments for {name}: {_summarise(exc)}")

        try:
            if declaration.timeout is not None:
                value = await asyncio.wait_for(declaration.executor(params), declaration.timeout)
            else:
                value = await declaration.executor(params)
        except (asyncio.TimeoutError, requests.Timeout):
            logger.warning("Tool %s timed out (call %s)", name, call_id)
            return ToolResult(call_id, name, error=f"Tool {name} timed out")
        except Exception as exc:
            logger.exception("Tool %s failed (call %s)", name, call_id)
            return ToolResult(call_id, name, error=f"Tool {name} failed: {exc}")

        logger.debug("Tool %s completed (call %s)", name, call_id)
        return ToolResult(call_id, name, result=value)


def _summarise(exc: pydantic.ValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ())) or "arguments"
        parts.append(f"{location}: {error.get('msg')}")
    return "; ".join(parts)


# ---------- Built-in tools ----------
class GeneralKnowledgeParams(BaseModel):
    question: str = Field(..., description="The question the user wants to ask")


class WeatherParams(BaseModel):
    city: str = Field(..., min_length=1, description="City name")


async def get_general_knowledge(params: GeneralKnowledgeParams) -> Dict[str, str]:
    return {"answer": f"Here's some information on: {params.question}"}


def make_weather_executor(config: ToolConfig) -> ToolExecutor:
    """Build the weather executor bound to the configured Open-Meteo endpoints."""

    def _fetch(city: str) -> Dict[str, str]:
        geo = requests.get(
            config.geocoding_endpoint,
            params={"name": city, "count": 1},
            timeout=config.request_timeout,
        )
        geo.raise_for_status()
        matches = geo.json().get("results") or []
        if not matches:
            raise ToolExecutionError(f"No location found for '{city}'")
        location = matches[0]

        forecast = requests.get(
            config.forecast_endpoint,
            params={
                "latitude": location["latitude"],
                "longitude": location["longitude"],
                "current": "temperature_2m",
                "timezone": "auto",
            },
            timeout=config.request_timeout,
        )
        forecast.raise_for_status()
        temperature = forecast.json()["current"]["temperature_2m"]
        return {"weather": f"Current temperature in {city}: {temperature}°C"}

    async def get_weather(params: WeatherParams) -> Dict[str, str]:
        return await run_in_threadpool(_fetch, params.city)

    return get_weather


def default_registry(config: Optional[ToolConfig] = None) -> ToolRegistry:
    config = config or ToolConfig()
    return ToolRegistry(
        [
            ToolDeclaration(
                name="getGeneralKnowledge",
                description="Answer general knowledge questions",
                parameters=GeneralKnowledgeParams,
                executor=get_general_knowledge,
            ),
            ToolDeclaration(
                name="getWeather",
                description="Get the current weather for a location",
                parameters=WeatherParams,
                executor=make_weather_executor(config),
            ),
        ]
    )
