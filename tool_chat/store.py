"""Conversation stores used by the chat and deletion endpoints.

Two backends are provided: an in-memory store suitable for tests and single
process deployments, and a JSON-file store that keeps one document per
conversation under a root directory. Both expose the same async interface so
the request pipeline never blocks the event loop on store access.
"""

from __future__ import annotations

import copy
import json
import logging
import os
import re
import tempfile
from pathlib import Path
from typing import Dict, Optional, Protocol

from fastapi.concurrency import run_in_threadpool

from .models import Conversation

logger = logging.getLogger(__name__)

_SAFE_ID = re.compile(r"^[A-Za-z0-9_.:-]{1,128}$")


class ConversationNotFoundError(KeyError):
    """Raised when deleting a conversation that does not exist."""


class ConversationStore(Protocol):
    async def get_conversation_by_id(self, conversation_id: str) -> Optional[Conversation]: ...

    async def save_conversation(self, conversation: Conversation) -> None: ...

    async def delete_conversation_by_id(self, conversation_id: str) -> None: ...


class InMemoryConversationStore:
    """Process-local store; returned conversations are copies."""

    def __init__(self) -> None:
        self._conversations: Dict[str, Conversation] = {}

    async def get_conversation_by_id(self, conversation_id: str) -> Optional[Conversation]:
        conversation = self._conversations.get(conversation_id)
        return copy.deepcopy(conversation) if conversation else None

    async def save_conversation(self, conversation: Conversation) -> None:
        self._conversations[conversation.id] = copy.deepcopy(conversation)
        logger.debug("Stored conversation %s (%d message(s))", conversation.id, len(conversation.messages))

    async def delete_conversation_by_id(self, conversation_id: str) -> None:
        if self._conversations.pop(conversation_id, None) is None:
            raise ConversationNotFoundError(conversation_id)

    def __len__(self) -> int:
        return len(self._conversations)


class JsonConversationStore:
    """Persist each conversation as ``<root>/<id>.json``."""

    def __init__(self, root: str) -> None:
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        logger.info("JSON conversation store initialised at %s", self.root)

    @staticmethod
    def _valid_id(conversation_id: str) -> bool:
        return bool(_SAFE_ID.match(conversation_id)) and conversation_id not in (".", "..")

    def _path(self, conversation_id: str) -> Path:
        if not self._valid_id(conversation_id):
            raise ValueError(f"Invalid conversation id {conversation_id!r}")
        return self.root / f"{conversation_id}.json"

    def _read(self, conversation_id: str) -> Optional[Conversation]:
        # Ids that could never have been written cannot exist.
        if not self._valid_id(conversation_id):
            return None
        path = self._path(conversation_id)
        if not path.exists():
            return None
        with path.open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object")
        return Conversation.from_dict(data)

    def _write(self, conversation: Conversation) -> None:
        path = self._path(conversation.id)
        fd, tmp_name = tempfile.mkstemp(dir=self.root, prefix=".tmp-", suffix=".json")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(conversation.to_dict(), f, ensure_ascii=False, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.debug("Wrote conversation %s to %s", conversation.id, path)

    def _delete(self, conversation_id: str) -> None:
        path = self._path(conversation_id)
        try:
            path.unlink()
        except FileNotFoundError:
            raise ConversationNotFoundError(conversation_id) from None

    async def get_conversation_by_id(self, conversation_id: str) -> Optional[Conversation]:
        return await run_in_threadpool(self._read, conversation_id)

    async def save_conversation(self, conversation: Conversation) -> None:
        await run_in_threadpool(self._write, conversation)

    async def delete_conversation_by_id(self, conversation_id: str) -> None:
        await run_in_threadpool(self._delete, conversation_id)


def build_store(store_dir: Optional[str] = None) -> ConversationStore:
    """Return a JSON store when a directory is given, otherwise an in-memory one."""
    if store_dir:
        return JsonConversationStore(store_dir)
    logger.info("No store directory configured; conversations are kept in memory")
    return InMemoryConversationStore()
