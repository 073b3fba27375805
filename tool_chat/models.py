"""Message, tool and chunk types shared by the chat pipeline."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"
    SYSTEM = "system"
    TOOL = "tool"


@dataclass(frozen=True)
class ToolInvocation:
    """A tool call requested by the model, with arguments not yet validated."""

    call_id: str
    tool_name: str
    arguments: Any = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"toolCallId": self.call_id, "toolName": self.tool_name, "args": self.arguments}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolInvocation":
        return cls(
            call_id=str(data.get("toolCallId") or data.get("call_id") or ""),
            tool_name=str(data.get("toolName") or data.get("tool_name") or ""),
            arguments=data.get("args", data.get("arguments", {})),
        )


@dataclass(frozen=True)
class ToolResult:
    """Outcome of one tool invocation; ``error`` is set when the tool failed."""

    call_id: str
    tool_name: str
    result: Any = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def payload(self) -> Any:
        """Value handed back to the model and to the caller."""
        if self.ok:
            return self.result
        return {"error": self.error}

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"toolCallId": self.call_id, "toolName": self.tool_name, "result": self.result}
        if self.error is not None:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolResult":
        error = data.get("error")
        return cls(
            call_id=str(data.get("toolCallId") or data.get("call_id") or ""),
            tool_name=str(data.get("toolName") or data.get("tool_name") or ""),
            result=data.get("result"),
            error=str(error) if error is not None else None,
        )


@dataclass(frozen=True)
class Message:
    role: Role
    content: str = ""
    tool_invocations: Tuple[ToolInvocation, ...] = ()
    tool_results: Tuple[ToolResult, ...] = ()

    def is_empty(self) -> bool:
        """True when the message carries neither text nor tool data."""
        return not self.content.strip() and not self.tool_invocations and not self.tool_results

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"role": self.role.value, "content": self.content}
        if self.tool_invocations:
            data["toolInvocations"] = [inv.to_dict() for inv in self.tool_invocations]
        if self.tool_results:
            data["toolResults"] = [res.to_dict() for res in self.tool_results]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        return cls(
            role=Role(data["role"]),
            content=str(data.get("content") or ""),
            tool_invocations=tuple(ToolInvocation.from_dict(d) for d in data.get("toolInvocations") or ()),
            tool_results=tuple(ToolResult.from_dict(d) for d in data.get("toolResults") or ()),
        )


@dataclass
class Conversation:
    id: str
    owner_id: str
    messages: List[Message] = field(default_factory=list)
    created_at: float = field(default_factory=time.time)
    updated_at: float = field(default_factory=time.time)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "messages": [msg.to_dict() for msg in self.messages],
            "created_at": self.created_at,
            "updated_at": self.updated_at,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Conversation":
        return cls(
            id=data["id"],
            owner_id=data["owner_id"],
            messages=[Message.from_dict(m) for m in data.get("messages", [])],
            created_at=float(data.get("created_at", time.time())),
            updated_at=float(data.get("updated_at", time.time())),
        )


class ChunkType(str, Enum):
    TEXT = "0"
    TOOL_CALL = "9"
    TOOL_RESULT = "a"
    ERROR = "3"
    STEP_FINISH = "e"
    FINISH = "d"

    @property
    def is_terminal(self) -> bool:
        return self in (ChunkType.FINISH, ChunkType.ERROR)


@dataclass(frozen=True)
class Chunk:
    """One ordered unit of streamed output."""

    type: ChunkType
    data: Any = None

    @property
    def is_terminal(self) -> bool:
        return self.type.is_terminal

    def encode(self) -> str:
        """Render the chunk as one ``<code>:<json>`` line of the data stream."""
        return f"{self.type.value}:{json.dumps(self.data, ensure_ascii=False, default=str)}\n"

    @classmethod
    def text(cls, delta: str) -> "Chunk":
        return cls(ChunkType.TEXT, delta)

    @classmethod
    def tool_call(cls, invocation: ToolInvocation) -> "Chunk":
        return cls(ChunkType.TOOL_CALL, invocation.to_dict())

    @classmethod
    def tool_result(cls, result: ToolResult) -> "Chunk":
        return cls(ChunkType.TOOL_RESULT, {"toolCallId": result.call_id, "result": result.payload()})

    @classmethod
    def step_finish(cls, reason: str) -> "Chunk":
        return cls(ChunkType.STEP_FINISH, {"finishReason": reason, "isContinued": False})

    @classmethod
    def finish(cls, reason: str = "stop") -> "Chunk":
        return cls(ChunkType.FINISH, {"finishReason": reason})

    @classmethod
    def error(cls, message: str) -> "Chunk":
        return cls(ChunkType.ERROR, message)
