"""Client wrapper for streaming chat-completions requests with tool calling."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Union

import httpx

from .config import ChatLLMConfig
from .errors import GenerationTimeoutError, LLMError
from .models import Message, Role, ToolInvocation

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TextDelta:
    text: str


@dataclass
class PassComplete:
    """Summary emitted once the backend finishes a pass."""

    text: str = ""
    invocations: List[ToolInvocation] = field(default_factory=list)
    finish_reason: Optional[str] = None
    usage: Dict[str, Any] = field(default_factory=dict)


PassEvent = Union[TextDelta, PassComplete]


class ModelClient(Protocol):
    def stream_pass(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        *,
        model_kwargs: Optional[Dict[str, object]] = None,
    ) -> AsyncIterator[PassEvent]: ...


def to_wire_messages(system_prompt: str, messages: Sequence[Message]) -> List[Dict[str, Any]]:
    """Translate canonical history into chat-completions messages.

    A tool message becomes the assistant ``tool_calls`` entry (merged into the
    preceding assistant text when there is one) followed by one ``tool``
    message per result.
    """
    wire: List[Dict[str, Any]] = [{"role": "system", "content": system_prompt}]
    for message in messages:
        if message.role is not Role.TOOL:
            wire.append({"role": message.role.value, "content": message.content})
            continue

        if message.tool_invocations:
            calls = [
                {
                    "id": inv.call_id,
                    "type": "function",
                    "function": {"name": inv.tool_name, "arguments": _encode_arguments(inv.arguments)},
                }
                for inv in message.tool_invocations
            ]
            previous = wire[-1]
            if previous["role"] == "assistant" and "tool_calls" not in previous:
                previous["tool_calls"] = calls
            else:
                wire.append({"role": "assistant", "content": "", "tool_calls": calls})

        for result in message.tool_results:
            wire.append(
                {
                    "role": "tool",
                    "tool_call_id": result.call_id,
                    "name": result.tool_name,
                    "content": json.dumps(result.payload(), ensure_ascii=False, default=str),
                }
            )
    return wire


def _encode_arguments(arguments: Any) -> str:
    if isinstance(arguments, str):
        return arguments
    return json.dumps(arguments, ensure_ascii=False)


def _decode_arguments(raw: str) -> Any:
    if not raw.strip():
        return {}
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        logger.debug("Tool arguments are not valid JSON: %s", raw)
        return raw


class ChatLLMClient:
    """Thin async wrapper around a chat-completions endpoint with streaming support."""

    def __init__(self, config: ChatLLMConfig, *, client: Optional[httpx.AsyncClient] = None) -> None:
        self.config = config
        self._client = client

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            headers = {"Content-Type": "application/json"}
            if self.config.api_key:
                headers["Authorization"] = f"Bearer {self.config.api_key}"
            self._client = httpx.AsyncClient(timeout=self.config.request_timeout, headers=headers)
        return self._client

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    async def stream_pass(
        self,
        messages: List[Dict[str, Any]],
        tools: List[Dict[str, Any]],
        *,
        model_kwargs: Optional[Dict[str, object]] = None,
    ) -> AsyncIterator[PassEvent]:
        """Yield text deltas as they arrive, then one ``PassComplete``."""
        payload: Dict[str, object] = {
            "model": self.config.model,
            "messages": messages,
            "stream": True,
        }
        if tools:
            payload["tools"] = tools
            payload["tool_choice"] = "auto"
        if model_kwargs:
            payload.update(model_kwargs)

        logger.info(
            "Streaming chat completion to %s using model %s (%d message(s), %d tool(s))",
            self.config.endpoint,
            self.config.model,
            len(messages),
            len(tools),
        )
        text_parts: List[str] = []
        calls: Dict[int, Dict[str, str]] = {}
        finish_reason: Optional[str] = None
        usage: Dict[str, Any] = {}

        try:
            async with self.client.stream("POST", self.config.endpoint, json=payload) as response:
                if response.status_code != 200:
                    body = (await response.aread()).decode("utf-8", errors="replace")[:500]
                    raise LLMError(f"Model backend returned {response.status_code}: {body}")

                async for raw_line in response.aiter_lines():
                    line = raw_line.strip()
                    if line.startswith("data:"):
                        line = line[5:].strip()
                    if not line:
                        continue
                    if line == "[DONE]":
                        break

                    try:
                        chunk = json.loads(line)
                    except json.JSONDecodeError:
                        logger.debug("Skipping non-JSON stream line: %s", line)
                        continue

                    if chunk.get("usage"):
                        usage = chunk["usage"]
                    choices = chunk.get("choices") or []
                    if not choices:
                        continue
                    choice = choices[0]
                    delta = choice.get("delta") or {}

                    content = delta.get("content")
                    if content:
                        text_parts.append(content)
                        yield TextDelta(content)

                    for tc in delta.get("tool_calls") or []:
                        entry = calls.setdefault(tc.get("index", 0), {"id": "", "name": "", "arguments": ""})
                        if tc.get("id"):
                            entry["id"] = tc["id"]
                        function = tc.get("function") or {}
                        if function.get("name"):
                            entry["name"] = function["name"]
                        if function.get("arguments"):
                            entry["arguments"] += function["arguments"]

                    if choice.get("finish_reason"):
                        finish_reason = choice["finish_reason"]
        except httpx.TimeoutException as exc:
            raise GenerationTimeoutError(f"Model backend timed out: {exc}") from exc
        except httpx.HTTPError as exc:
            raise LLMError(f"Model backend unavailable: {exc}") from exc

        invocations = [
            ToolInvocation(call_id=entry["id"], tool_name=entry["name"], arguments=_decode_arguments(entry["arguments"]))
            for _, entry in sorted(calls.items())
        ]
        logger.debug("Pass finished (reason=%s, tool_calls=%d)", finish_reason, len(invocations))
        yield PassComplete(
            text="".join(text_parts),
            invocations=invocations,
            finish_reason=finish_reason,
            usage=usage,
        )
