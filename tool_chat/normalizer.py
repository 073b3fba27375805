"""Conversion of caller-supplied histories into canonical messages."""

from __future__ import annotations

from typing import Any, Iterable, List, Mapping

from .errors import ValidationError
from .models import Message, Role, ToolInvocation, ToolResult


def normalize(raw_messages: Iterable[Any]) -> List[Message]:
    """Return the canonical history, dropping messages with no content.

    Assistant messages in the UI shape (``toolInvocations`` entries that carry
    their ``result``) are split into the assistant text and a tool message
    holding the finished invocations. Order is preserved.
    """
    messages: List[Message] = []
    for index, raw in enumerate(raw_messages):
        for message in _convert(raw, index):
            if not message.is_empty():
                messages.append(message)
    return messages


def _convert(raw: Any, index: int) -> List[Message]:
    if isinstance(raw, Message):
        return [raw]
    if not isinstance(raw, Mapping):
        raise ValidationError(f"messages[{index}] must be an object")

    try:
        role = Role(raw.get("role"))
    except ValueError as exc:
        raise ValidationError(f"messages[{index}] has unknown role {raw.get('role')!r}") from exc

    content = _text_content(raw.get("content"), index)
    invocations = raw.get("toolInvocations") or []
    results = raw.get("toolResults") or []
    if not isinstance(invocations, list) or not isinstance(results, list):
        raise ValidationError(f"messages[{index}] tool data must be lists")

    if role is Role.ASSISTANT and invocations and not results:
        return _split_ui_assistant(content, invocations, index)

    try:
        message = Message(
            role=role,
            content=content,
            tool_invocations=tuple(ToolInvocation.from_dict(item) for item in invocations),
            tool_results=tuple(ToolResult.from_dict(item) for item in results),
        )
    except (AttributeError, TypeError) as exc:
        raise ValidationError(f"messages[{index}] has malformed tool data") from exc
    _check_pairing(message, index)
    return [message]


def _check_pairing(message: Message, index: int) -> None:
    """Every tool result must answer an invocation carried by the same message."""
    invoked = {invocation.call_id for invocation in message.tool_invocations}
    answered = {result.call_id for result in message.tool_results}
    orphans = answered - invoked
    if orphans:
        raise ValidationError(f"messages[{index}] has tool results without invocations: {sorted(orphans)}")
    if message.role is Role.TOOL and invoked - answered:
        raise ValidationError(f"messages[{index}] has tool invocations without results: {sorted(invoked - answered)}")


def _split_ui_assistant(content: str, invocations: List[Any], index: int) -> List[Message]:
    finished_calls = []
    finished_results = []
    for item in invocations:
        if not isinstance(item, Mapping):
            raise ValidationError(f"messages[{index}] has malformed tool data")
        if "result" not in item:
            continue
        invocation = ToolInvocation.from_dict(item)
        finished_calls.append(invocation)
        finished_results.append(ToolResult(invocation.call_id, invocation.tool_name, result=item["result"]))

    converted = [Message(Role.ASSISTANT, content)]
    if finished_calls:
        converted.append(
            Message(Role.TOOL, "", tool_invocations=tuple(finished_calls), tool_results=tuple(finished_results))
        )
    return converted


def _text_content(content: Any, index: int) -> str:
    if content is None:
        return ""
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, Mapping) and part.get("type") == "text":
                parts.append(str(part.get("text") or ""))
            elif isinstance(part, str):
                parts.append(part)
        return "".join(parts)
    raise ValidationError(f"messages[{index}].content must be text")
