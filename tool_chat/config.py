"""Configuration objects for the tool chat service."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from datetime import date
from typing import Dict, Optional


@dataclass
class ChatLLMConfig:
    """LLM connection details."""

    endpoint: str = "http://localhost:8000/v1/chat/completions"
    model: str = "qwen2.5-instruct"
    request_timeout: int = 60
    api_key: Optional[str] = field(default_factory=lambda: os.getenv("TOOL_CHAT_LLM_API_KEY"))


@dataclass
class ToolConfig:
    """Endpoints and limits used by the built-in tools."""

    geocoding_endpoint: str = "https://geocoding-api.open-meteo.com/v1/search"
    forecast_endpoint: str = "https://api.open-meteo.com/v1/forecast"
    request_timeout: float = 10.0


@dataclass
class ChatConfig:
    """Runtime controls for a chat turn."""

    llm: ChatLLMConfig = field(default_factory=ChatLLMConfig)
    tools: ToolConfig = field(default_factory=ToolConfig)
    max_passes: int = 5
    pass_timeout: float = 120.0
    tool_timeout: float = 30.0
    persist_timeout: float = 10.0
    system_prompt: str = (
        "- You are a ChatGPT-like AI assistant.\n"
        "- Answer questions accurately and provide useful information.\n"
        "- Engage in meaningful conversations and assist with coding, learning, or daily tasks.\n"
        "- Keep responses concise but informative.\n"
        "- Remember previous messages within the same chat session.\n"
        "- Today's date is {today}."
    )
    model_kwargs: Dict[str, object] = field(default_factory=dict)

    def render_system_prompt(self, today: Optional[date] = None) -> str:
        today = today or date.today()
        return self.system_prompt.format(today=today.isoformat())
