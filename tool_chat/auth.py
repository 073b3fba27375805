"""Session lookup for incoming requests."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional, Protocol

from fastapi import Request

logger = logging.getLogger(__name__)

TOKENS_ENV_VAR = "TOOL_CHAT_TOKENS"


@dataclass(frozen=True)
class Session:
    user_id: Optional[str]


class SessionProvider(Protocol):
    async def authenticate(self, request: Request) -> Optional[Session]: ...


class BearerTokenSessionProvider:
    """Resolve ``Authorization: Bearer <token>`` against a static token table."""

    def __init__(self, tokens: Mapping[str, str]) -> None:
        self._tokens: Dict[str, str] = dict(tokens)

    async def authenticate(self, request: Request) -> Optional[Session]:
        header = request.headers.get("authorization", "")
        scheme, _, token = header.partition(" ")
        if scheme.lower() != "bearer" or not token.strip():
            return None
        user_id = self._tokens.get(token.strip())
        if user_id is None:
            logger.info("Rejected unknown bearer token")
            return None
        return Session(user_id=user_id)


def load_tokens(path: Optional[str] = None) -> Dict[str, str]:
    """Load the token table from a JSON file or ``TOOL_CHAT_TOKENS``.

    The file holds an object mapping tokens to user ids; the environment
    variable uses ``token=user`` pairs separated by commas.
    """
    tokens: Dict[str, str] = {}
    if path:
        with Path(path).open("r", encoding="utf-8") as f:
            data = json.load(f)
        if not isinstance(data, dict):
            raise ValueError(f"{path} must contain a JSON object of token -> user id")
        tokens.update({str(k): str(v) for k, v in data.items()})

    for pair in os.getenv(TOKENS_ENV_VAR, "").split(","):
        token, sep, user_id = pair.partition("=")
        if sep and token.strip() and user_id.strip():
            tokens[token.strip()] = user_id.strip()

    if not tokens:
        logger.warning("No API tokens configured; every request will be rejected as unauthorized")
    return tokens
