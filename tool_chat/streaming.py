"""Expose a running turn as one ordered stream of encoded chunks."""

from __future__ import annotations

import asyncio
import logging
from typing import AsyncIterator, Optional, Sequence, Set

from .models import Chunk, Message
from .orchestrator import GenerationOrchestrator, OrchestratorState

logger = logging.getLogger(__name__)

STREAM_ERROR_MESSAGE = "An error occurred while generating the response"

# Finished turns keep running after a disconnect so persistence can complete.
_detached_tasks: Set["asyncio.Task[None]"] = set()


class StreamMultiplexer:
    """Forward chunks from a background orchestrator task to the caller.

    The caller sees a single append-only stream across all generation passes
    that ends with exactly one terminal chunk (finish or error).
    """

    def __init__(self, orchestrator: GenerationOrchestrator) -> None:
        self.orchestrator = orchestrator

    async def stream(
        self, conversation_id: str, history: Sequence[Message], owner_id: Optional[str]
    ) -> AsyncIterator[str]:
        queue: "asyncio.Queue[Optional[Chunk]]" = asyncio.Queue()

        async def emit(chunk: Chunk) -> None:
            queue.put_nowait(chunk)

        async def drive() -> None:
            try:
                await self.orchestrator.run(conversation_id, history, owner_id, emit)
            except asyncio.CancelledError:
                logger.info("Turn for conversation %s cancelled", conversation_id)
                raise
            except Exception:
                logger.exception("Turn for conversation %s crashed", conversation_id)
            finally:
                queue.put_nowait(None)

        task = asyncio.create_task(drive())
        terminated = False
        try:
            while True:
                chunk = await queue.get()
                if chunk is None:
                    break
                if terminated:
                    logger.warning("Dropping %s chunk emitted after the terminal marker", chunk.type.name)
                    continue
                terminated = chunk.is_terminal
                yield chunk.encode()

            if not terminated:
                yield Chunk.error(STREAM_ERROR_MESSAGE).encode()
        finally:
            self._release(task, conversation_id)

    def _release(self, task: "asyncio.Task[None]", conversation_id: str) -> None:
        if task.done():
            return
        if self.orchestrator.state is OrchestratorState.FINISHED:
            logger.debug("Caller left conversation %s after finish; letting persistence complete", conversation_id)
            _detached_tasks.add(task)
            task.add_done_callback(_detached_tasks.discard)
            return
        logger.info("Caller disconnected from conversation %s; cancelling turn", conversation_id)
        task.cancel()
