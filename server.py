"""Run the tool chat FastAPI server."""

from __future__ import annotations

import argparse
import logging
from typing import Optional

import uvicorn

from tool_chat import ChatConfig, ChatLLMConfig, ToolConfig
from tool_chat.api import create_app

logger = logging.getLogger(__name__)


# ---------- CLI ----------
def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the streaming chat server with tool calling.")
    parser.add_argument("--host", default="0.0.0.0", help="Host interface to bind.")
    parser.add_argument("--port", type=int, default=8010, help="Port to bind.")
    parser.add_argument("--log_dir", default="./logs", help="Directory for application logs.")
    parser.add_argument("--llm_endpoint", default="http://localhost:8000/v1/chat/completions", help="LLM endpoint.")
    parser.add_argument("--llm_model", default="qwen2.5-instruct", help="Model name for completions.")
    parser.add_argument("--request_timeout", type=int, default=60, help="Timeout for LLM calls (seconds).")
    parser.add_argument("--max_passes", type=int, default=5, help="Max generation passes per turn.")
    parser.add_argument("--pass_timeout", type=float, default=120.0, help="Timeout for one generation pass (seconds).")
    parser.add_argument("--tool_timeout", type=float, default=30.0, help="Timeout for one tool call (seconds).")
    parser.add_argument("--persist_timeout", type=float, default=10.0, help="Timeout for saving a finished turn (seconds).")
    parser.add_argument("--tool_request_timeout", type=float, default=10.0, help="HTTP timeout used by tools (seconds).")
    parser.add_argument("--store_dir", help="Directory for conversation JSON files (in-memory when omitted).")
    parser.add_argument("--tokens_file", help="JSON file mapping bearer tokens to user ids.")
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> ChatConfig:
    if args.max_passes < 1:
        raise SystemExit("--max_passes must be at least 1")
    return ChatConfig(
        llm=ChatLLMConfig(
            endpoint=args.llm_endpoint,
            model=args.llm_model,
            request_timeout=args.request_timeout,
        ),
        tools=ToolConfig(request_timeout=args.tool_request_timeout),
        max_passes=args.max_passes,
        pass_timeout=args.pass_timeout,
        tool_timeout=args.tool_timeout,
        persist_timeout=args.persist_timeout,
    )


def main(argv: Optional[list[str]] = None) -> None:
    args = parse_args(argv)
    app = create_app(
        build_config(args),
        store_dir=args.store_dir,
        tokens_file=args.tokens_file,
        log_dir=args.log_dir,
    )
    logger.info("Starting tool chat server on %s:%d", args.host, args.port)
    uvicorn.run(app, host=args.host, port=args.port)


if __name__ == "__main__":
    main()
