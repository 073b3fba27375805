from __future__ import annotations

import json

import pytest
from starlette.requests import Request

from tool_chat.auth import BearerTokenSessionProvider, Session, load_tokens


def _request(authorization=None) -> Request:
    headers = [] if authorization is None else [(b"authorization", authorization.encode("latin-1"))]
    return Request({"type": "http", "method": "POST", "path": "/api/chat", "headers": headers})


@pytest.mark.parametrize("header", [None, "", "Basic abc", "Bearer ", "Bearer unknown"])
async def test_missing_or_unknown_credentials_yield_no_session(header):
    provider = BearerTokenSessionProvider({"t1": "alice"})
    assert await provider.authenticate(_request(header)) is None


async def test_known_token_yields_session():
    provider = BearerTokenSessionProvider({"t1": "alice"})
    assert await provider.authenticate(_request("bearer t1")) == Session(user_id="alice")


def test_load_tokens_merges_file_and_environment(tmp_path, monkeypatch):
    path = tmp_path / "tokens.json"
    path.write_text(json.dumps({"file-token": "alice"}), encoding="utf-8")
    monkeypatch.setenv("TOOL_CHAT_TOKENS", "env-token=bob, broken, =nobody")

    assert load_tokens(str(path)) == {"file-token": "alice", "env-token": "bob"}


def test_load_tokens_rejects_non_object_file(tmp_path, monkeypatch):
    monkeypatch.delenv("TOOL_CHAT_TOKENS", raising=False)
    path = tmp_path / "tokens.json"
    path.write_text("[]", encoding="utf-8")
    with pytest.raises(ValueError):
        load_tokens(str(path))


def test_load_tokens_empty_without_sources(monkeypatch):
    monkeypatch.delenv("TOOL_CHAT_TOKENS", raising=False)
    assert load_tokens() == {}
