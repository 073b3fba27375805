"""Ownership checks for conversation deletion."""

from __future__ import annotations

import logging
from enum import Enum

from .store import ConversationNotFoundError, ConversationStore

logger = logging.getLogger(__name__)


class AccessDecision(str, Enum):
    AUTHORIZED = "authorized"
    FORBIDDEN = "forbidden"
    NOT_FOUND = "not_found"


class AccessController:
    def __init__(self, store: ConversationStore) -> None:
        self.store = store

    async def authorize_delete(self, conversation_id: str, requester_id: str) -> AccessDecision:
        conversation = await self.store.get_conversation_by_id(conversation_id)
        if conversation is None:
            return AccessDecision.NOT_FOUND
        if conversation.owner_id != requester_id:
            logger.warning("User %s may not delete conversation %s", requester_id, conversation_id)
            return AccessDecision.FORBIDDEN
        return AccessDecision.AUTHORIZED

    async def delete(self, conversation_id: str, requester_id: str) -> AccessDecision:
        """Delete the conversation when the requester owns it.

        Store errors other than a missing conversation propagate.
        """
        decision = await self.authorize_delete(conversation_id, requester_id)
        if decision is not AccessDecision.AUTHORIZED:
            return decision
        try:
            await self.store.delete_conversation_by_id(conversation_id)
        except ConversationNotFoundError:
            return AccessDecision.NOT_FOUND
        logger.info("Deleted conversation %s for user %s", conversation_id, requester_id)
        return decision
