"""Best-effort storage of finished turns."""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Optional, Sequence

from .errors import PersistError
from .models import Conversation, Message
from .store import ConversationStore

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PersistResult:
    ok: bool
    error: Optional[PersistError] = None


class PersistenceGate:
    """Writes the full history of a finished turn; never raises.

    Failures are logged and returned to the caller, which is expected to
    discard them: the turn has already been streamed and retrying would
    duplicate visible output.
    """

    def __init__(self, store: ConversationStore, timeout: Optional[float] = 10.0) -> None:
        self.store = store
        self.timeout = timeout

    async def persist(
        self, conversation_id: str, history: Sequence[Message], owner_id: Optional[str]
    ) -> PersistResult:
        if not owner_id:
            logger.warning("Skipping persistence of conversation %s: no owner identity", conversation_id)
            return PersistResult(False, PersistError("no owner identity"))

        try:
            await asyncio.wait_for(self._write(conversation_id, history, owner_id), self.timeout)
        except asyncio.TimeoutError:
            logger.error("Timed out saving chat history for conversation %s after %ss", conversation_id, self.timeout)
            return PersistResult(False, PersistError(f"store did not respond within {self.timeout}s"))
        except Exception as exc:
            logger.exception("Failed to save chat history for conversation %s", conversation_id)
            error = exc if isinstance(exc, PersistError) else PersistError(str(exc))
            return PersistResult(False, error)

        logger.info("Saved conversation %s (%d message(s))", conversation_id, len(history))
        return PersistResult(True)

    async def _write(self, conversation_id: str, history: Sequence[Message], owner_id: str) -> None:
        existing = await self.store.get_conversation_by_id(conversation_id)
        if existing is not None and existing.owner_id != owner_id:
            raise PersistError(f"conversation {conversation_id} belongs to another user")

        now = time.time()
        conversation = Conversation(
            id=conversation_id,
            owner_id=owner_id,
            messages=list(history),
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        await self.store.save_conversation(conversation)
