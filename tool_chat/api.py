"""FastAPI entry point for the tool chat service."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

import pydantic
from fastapi import FastAPI, Query, Request
from fastapi.responses import PlainTextResponse, StreamingResponse
from pydantic import BaseModel, Field, field_validator

from .access import AccessDecision
from .auth import BearerTokenSessionProvider, SessionProvider, load_tokens
from .config import ChatConfig
from .errors import ValidationError
from .service import ChatService
from .store import build_store
from .utils import setup_logging

logger = logging.getLogger(__name__)

DATA_STREAM_HEADERS = {"X-Vercel-AI-Data-Stream": "v1"}


class ChatRequest(BaseModel):
    id: str = Field(..., description="Conversation identifier chosen by the caller.")
    messages: List[Dict[str, Any]] = Field(..., description="Full message history, oldest first.")

    @field_validator("id")
    @classmethod
    def _not_empty(cls, value: str) -> str:
        if not value or not value.strip():
            raise ValueError("field must not be empty")
        return value


def create_app(
    chat_config: Optional[ChatConfig] = None,
    *,
    service: Optional[ChatService] = None,
    session_provider: Optional[SessionProvider] = None,
    store_dir: Optional[str] = None,
    tokens_file: Optional[str] = None,
    log_dir: Optional[str] = None,
) -> FastAPI:
    if log_dir:
        setup_logging(log_dir, logging.INFO)

    service = service or ChatService(chat_config, store=build_store(store_dir))
    session_provider = session_provider or BearerTokenSessionProvider(load_tokens(tokens_file))

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        yield
        await app.state.service.aclose()

    app = FastAPI(title="Tool Chat", version="0.1.0", lifespan=lifespan)
    app.state.service = service
    app.state.session_provider = session_provider

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.post("/api/chat")
    async def chat(request: Request):
        session = await app.state.session_provider.authenticate(request)
        if session is None:
            return PlainTextResponse("Unauthorized", status_code=401)

        try:
            body = ChatRequest.model_validate(await request.json())
        except (ValueError, pydantic.ValidationError) as exc:
            logger.info("Rejected malformed chat request: %s", exc)
            return PlainTextResponse("Invalid request body", status_code=400)

        try:
            stream = app.state.service.stream_chat(body.id, body.messages, session.user_id)
        except ValidationError as exc:
            return PlainTextResponse(str(exc), status_code=400)
        except Exception:
            logger.exception("Chat request failed (id=%s)", body.id)
            return PlainTextResponse("Chat request failed", status_code=500)

        return StreamingResponse(stream, media_type="text/plain; charset=utf-8", headers=DATA_STREAM_HEADERS)

    @app.delete("/api/chat")
    async def delete_chat(request: Request, conversation_id: Optional[str] = Query(None, alias="id")):
        if not conversation_id:
            return PlainTextResponse("Not Found", status_code=404)

        session = await app.state.session_provider.authenticate(request)
        if session is None or not session.user_id:
            return PlainTextResponse("Unauthorized", status_code=401)

        try:
            decision = await app.state.service.delete_chat(conversation_id, session.user_id)
        except Exception:
            logger.exception("Failed to delete conversation %s", conversation_id)
            return PlainTextResponse("An error occurred while processing your request", status_code=500)

        if decision is AccessDecision.NOT_FOUND:
            return PlainTextResponse("Not Found", status_code=404)
        if decision is AccessDecision.FORBIDDEN:
            return PlainTextResponse("Unauthorized", status_code=401)
        return PlainTextResponse("Chat deleted", status_code=200)

    return app
