"""Turn orchestration: generation passes interleaved with tool execution.

A turn starts from the normalised history and runs one or more generation
passes. Text produced by a pass is emitted as it arrives. When a pass ends
with tool invocations, all of them are executed (concurrently), their results
are appended to the history as a single tool message in invocation order, and
the model is invoked again. The turn finishes on the first pass that requests
no tools, or fails on a backend error, a pass timeout, or when the model keeps
asking for tools after ``ChatConfig.max_passes`` passes.

Only a finished turn is handed to the :class:`PersistenceGate`.
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import uuid
from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Protocol, Sequence, Set

from .config import ChatConfig
from .errors import GenerationError, GenerationTimeoutError, LLMError, ToolLoopError
from .llm_client import ModelClient, PassComplete, TextDelta, to_wire_messages
from .models import Chunk, Message, Role, ToolInvocation, ToolResult
from .persistence import PersistenceGate, PersistResult
from .tools import ToolRegistry

logger = logging.getLogger(__name__)

Emit = Callable[[Chunk], Awaitable[None]]


class OrchestratorState(str, Enum):
    IDLE = "idle"
    GENERATING = "generating"
    AWAITING_TOOLS = "awaiting_tools"
    FINISHED = "finished"
    FAILED = "failed"


class TurnObserver(Protocol):
    def on_pass_start(self, conversation_id: str, pass_number: int) -> None: ...

    def on_tool_result(self, conversation_id: str, result: ToolResult) -> None: ...

    def on_finish(self, conversation_id: str, generated: Sequence[Message]) -> None: ...

    def on_failure(self, conversation_id: str, error: GenerationError) -> None: ...


class LoggingObserver:
    """Default observer; reports turn progress through the module logger."""

    def on_pass_start(self, conversation_id: str, pass_number: int) -> None:
        logger.info("Conversation %s: starting generation pass %d", conversation_id, pass_number)

    def on_tool_result(self, conversation_id: str, result: ToolResult) -> None:
        if result.ok:
            logger.info("Conversation %s: tool %s (%s) succeeded", conversation_id, result.tool_name, result.call_id)
        else:
            logger.warning(
                "Conversation %s: tool %s (%s) failed: %s",
                conversation_id,
                result.tool_name,
                result.call_id,
                result.error,
            )

    def on_finish(self, conversation_id: str, generated: Sequence[Message]) -> None:
        logger.info("Conversation %s: turn finished with %d new message(s)", conversation_id, len(generated))

    def on_failure(self, conversation_id: str, error: GenerationError) -> None:
        logger.error("Conversation %s: turn failed: %s", conversation_id, error)


@dataclass
class TurnOutcome:
    state: OrchestratorState
    generated: List[Message] = field(default_factory=list)
    error: Optional[GenerationError] = None
    persisted: Optional[PersistResult] = None
    usage: Dict[str, int] = field(default_factory=dict)


class GenerationOrchestrator:
    """Runs a single turn. Create one instance per request."""

    def __init__(
        self,
        client: ModelClient,
        registry: ToolRegistry,
        config: Optional[ChatConfig] = None,
        *,
        persistence: Optional[PersistenceGate] = None,
        observer: Optional[TurnObserver] = None,
        today: Optional[date] = None,
    ) -> None:
        self.client = client
        self.registry = registry
        self.config = config or ChatConfig()
        self.persistence = persistence
        self.observer = observer or LoggingObserver()
        self.today = today
        self.state = OrchestratorState.IDLE
        self.passes = 0

    async def run(
        self,
        conversation_id: str,
        history: Sequence[Message],
        owner_id: Optional[str],
        emit: Emit,
    ) -> TurnOutcome:
        if self.state is not OrchestratorState.IDLE:
            raise RuntimeError("GenerationOrchestrator instances run a single turn")

        system_prompt = self.config.render_system_prompt(self.today)
        tools = self.registry.to_wire()
        generated: List[Message] = []
        seen_ids: Set[str] = set()
        usage: Dict[str, int] = {}

        try:
            while True:
                self._transition(OrchestratorState.GENERATING)
                self.passes += 1
                self.observer.on_pass_start(conversation_id, self.passes)
                wire = to_wire_messages(system_prompt, [*history, *generated])
                completed = await self._run_pass(wire, tools, emit)
                _add_usage(usage, completed.usage)

                if completed.text:
                    generated.append(Message(Role.ASSISTANT, completed.text))
                if not completed.invocations:
                    await emit(Chunk.step_finish(completed.finish_reason or "stop"))
                    break
                if self.passes >= self.config.max_passes:
                    raise ToolLoopError(
                        f"Tool loop: model still requested tools after {self.passes} generation passes"
                    )

                self._transition(OrchestratorState.AWAITING_TOOLS)
                invocations = self._assign_call_ids(completed.invocations, seen_ids)
                results = await self._resolve_tools(conversation_id, invocations, emit)
                generated.append(Message(Role.TOOL, "", tuple(invocations), tuple(results)))
                await emit(Chunk.step_finish("tool-calls"))
        except GenerationError as exc:
            outcome = await self._fail(conversation_id, exc, generated, emit)
            outcome.usage = usage
            return outcome

        self._transition(OrchestratorState.FINISHED)
        await emit(Chunk.finish("stop"))
        self.observer.on_finish(conversation_id, generated)
        if usage:
            logger.info("Conversation %s: token usage over %d pass(es): %s", conversation_id, self.passes, usage)

        outcome = TurnOutcome(OrchestratorState.FINISHED, generated, usage=usage)
        if self.persistence is not None:
            outcome.persisted = await self.persistence.persist(conversation_id, [*history, *generated], owner_id)
            if not outcome.persisted.ok:
                logger.warning("Conversation %s was streamed but not saved: %s", conversation_id, outcome.persisted.error)
        return outcome

    async def _run_pass(self, wire: List[dict], tools: List[dict], emit: Emit) -> PassComplete:
        timeout = self.config.pass_timeout
        try:
            return await asyncio.wait_for(self._consume_pass(wire, tools, emit), timeout)
        except asyncio.TimeoutError as exc:
            raise GenerationTimeoutError(f"Generation pass exceeded {timeout:g}s") from exc
        except GenerationError:
            raise
        except Exception as exc:
            logger.exception("Model backend raised during generation pass")
            raise LLMError(f"Model backend failed: {exc}") from exc

    async def _consume_pass(self, wire: List[dict], tools: List[dict], emit: Emit) -> PassComplete:
        completed: Optional[PassComplete] = None
        async for event in self.client.stream_pass(wire, tools, model_kwargs=self.config.model_kwargs):
            if isinstance(event, TextDelta):
                if event.text:
                    await emit(Chunk.text(event.text))
            elif isinstance(event, PassComplete):
                completed = event
        if completed is None:
            raise LLMError("Model stream ended before the pass completed")
        return completed

    def _assign_call_ids(self, invocations: Sequence[ToolInvocation], seen: Set[str]) -> List[ToolInvocation]:
        """Give every invocation a correlation id that is unique within the turn."""
        assigned = []
        for invocation in invocations:
            if not invocation.call_id or invocation.call_id in seen:
                invocation = dataclasses.replace(invocation, call_id=f"call_{uuid.uuid4().hex}")
            seen.add(invocation.call_id)
            assigned.append(invocation)
        return assigned

    async def _resolve_tools(
        self, conversation_id: str, invocations: Sequence[ToolInvocation], emit: Emit
    ) -> List[ToolResult]:
        for invocation in invocations:
            await emit(Chunk.tool_call(invocation))
        # gather keeps invocation order regardless of completion order
        results = await asyncio.gather(
            *(self._execute_tool(conversation_id, invocation, emit) for invocation in invocations)
        )
        return list(results)

    async def _execute_tool(self, conversation_id: str, invocation: ToolInvocation, emit: Emit) -> ToolResult:
        timeout = self.config.tool_timeout
        try:
            result = await asyncio.wait_for(self.registry.execute(invocation), timeout)
        except asyncio.TimeoutError:
            result = ToolResult(
                invocation.call_id,
                invocation.tool_name,
                error=f"Tool {invocation.tool_name} timed out after {timeout:g}s",
            )
        self.observer.on_tool_result(conversation_id, result)
        await emit(Chunk.tool_result(result))
        return result

    async def _fail(
        self, conversation_id: str, error: GenerationError, generated: List[Message], emit: Emit
    ) -> TurnOutcome:
        self._transition(OrchestratorState.FAILED)
        self.observer.on_failure(conversation_id, error)
        await emit(Chunk.error(str(error)))
        return TurnOutcome(OrchestratorState.FAILED, generated, error=error)

    def _transition(self, state: OrchestratorState) -> None:
        logger.debug("Orchestrator %s -> %s", self.state.value, state.value)
        self.state = state


def _add_usage(totals: Dict[str, int], usage: Mapping[str, Any]) -> None:
    """Sum the integer counters reported for one pass into ``totals``."""
    for key, value in usage.items():
        if isinstance(value, int) and not isinstance(value, bool):
            totals[key] = totals.get(key, 0) + value
