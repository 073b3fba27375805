"""High level chat engine: one streamed, tool-augmented turn per request."""

from __future__ import annotations

import logging
from typing import Any, AsyncIterator, Iterable, Optional

from .access import AccessController, AccessDecision
from .config import ChatConfig
from .errors import ValidationError
from .llm_client import ChatLLMClient, ModelClient
from .normalizer import normalize
from .orchestrator import GenerationOrchestrator, TurnObserver
from .persistence import PersistenceGate
from .store import ConversationStore, InMemoryConversationStore
from .streaming import StreamMultiplexer
from .tools import ToolRegistry, default_registry

logger = logging.getLogger(__name__)


class ChatService:
    """Core chat engine used by both the API and direct Python consumers."""

    def __init__(
        self,
        config: Optional[ChatConfig] = None,
        *,
        store: Optional[ConversationStore] = None,
        registry: Optional[ToolRegistry] = None,
        client: Optional[ModelClient] = None,
        observer: Optional[TurnObserver] = None,
    ) -> None:
        self.config = config or ChatConfig()
        self.client = client or ChatLLMClient(self.config.llm)
        self.registry = registry if registry is not None else default_registry(self.config.tools)
        self.store = store if store is not None else InMemoryConversationStore()
        self.observer = observer
        self.persistence = PersistenceGate(self.store, timeout=self.config.persist_timeout)
        self.access = AccessController(self.store)

    def stream_chat(
        self,
        conversation_id: str,
        raw_messages: Iterable[Any],
        owner_id: Optional[str],
    ) -> AsyncIterator[str]:
        """Validate the request and return the encoded chunk stream of the turn.

        Validation problems raise ``ValidationError`` before any generation
        starts; everything after that is reported inside the stream.
        """
        if not conversation_id or not conversation_id.strip():
            raise ValidationError("id is required")
        history = normalize(raw_messages)
        if not history:
            raise ValidationError("messages must contain at least one non-empty message")

        logger.info(
            "Streaming chat for conversation %s (%d message(s), %d tool(s))",
            conversation_id,
            len(history),
            len(self.registry),
        )
        orchestrator = GenerationOrchestrator(
            self.client,
            self.registry,
            self.config,
            persistence=self.persistence,
            observer=self.observer,
        )
        return StreamMultiplexer(orchestrator).stream(conversation_id, history, owner_id)

    async def delete_chat(self, conversation_id: str, requester_id: str) -> AccessDecision:
        return await self.access.delete(conversation_id, requester_id)

    async def aclose(self) -> None:
        close = getattr(self.client, "aclose", None)
        if close is not None:
            await close()
