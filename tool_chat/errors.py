"""Exception types raised across the tool chat service."""

from __future__ import annotations


class ToolChatError(Exception):
    """Base class for service errors."""


class ValidationError(ToolChatError):
    """A caller-supplied request or message history is malformed."""


class ToolNotFoundError(ToolChatError, KeyError):
    """The model asked for a tool that is not registered."""

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self.name = name

    def __str__(self) -> str:
        return f"Unknown tool '{self.name}'"


class ToolExecutionError(ToolChatError):
    """A tool executor could not produce a result."""


class GenerationError(ToolChatError):
    """A turn could not be generated; ends the stream with an error marker."""


class LLMError(GenerationError):
    """The model backend failed or returned an unusable response."""


class GenerationTimeoutError(GenerationError):
    """A generation pass exceeded its time budget."""


class ToolLoopError(GenerationError):
    """The model kept requesting tools beyond the configured number of passes."""


class PersistError(ToolChatError):
    """A finished conversation could not be written to the store."""
