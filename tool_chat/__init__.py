"""Streaming chat with model-invoked tools.

This package forwards a caller's message history to a chat-completions
capable LLM, streams the reply back chunk by chunk, lets the model call the
registered tools between generation passes, and stores the finished
conversation for its owner. The primary entry points are
``tool_chat.api.create_app`` for running the HTTP service and
``tool_chat.service.ChatService`` for embedding the chat engine directly
into Python code.
"""

from .config import ChatConfig, ChatLLMConfig, ToolConfig
from .service import ChatService

__all__ = ["ChatConfig", "ChatLLMConfig", "ChatService", "ToolConfig"]
