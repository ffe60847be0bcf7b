"""Bounded generate / execute-tools loop driving one chat request."""

import asyncio
import json
import logging
from dataclasses import dataclass, field

from llm.base import (
    BaseLLMProvider, ConversationMessage, TextDelta, ToolCallRequest, ToolCallResult,
    ToolResultPlaceholder, Usage,
)
from tools.registry import ActorContext, ToolRegistry
from .events import TextEvent, ToolCallEvent, ToolResultEvent
from .stream_writer import StreamWriter

logger = logging.getLogger(__name__)

DEFAULT_MAX_ITERATIONS = 5


@dataclass(frozen=True)
class AgentConfig:
    model_id: str
    temperature: float = 0.5
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    max_tokens: int = 4096
    system_prompt: str | None = None
    parallel_tools: bool = False


@dataclass
class AgentSession:
    """Working state of one request; discarded once the transcript is persisted."""
    conversation: list[ConversationMessage]
    iteration_count: int = 0
    accumulated_text: str = ""
    input_tokens: int = 0
    output_tokens: int = 0
    tool_calls: list[dict] = field(default_factory=list)
    cap_reached: bool = False


class AgentLoop:
    """Alternates model generation with tool execution until the model stops calling tools.

    Never persists anything; the caller owns the transcript.
    """

    def __init__(self, gateway: BaseLLMProvider, registry: ToolRegistry, config: AgentConfig):
        self.gateway = gateway
        self.registry = registry
        self.config = config

    async def run(self, session: AgentSession, writer: StreamWriter, actor: ActorContext) -> str:
        tools = self.registry.schemas() or None

        while session.iteration_count < self.config.max_iterations:
            if not writer.is_open:
                logger.info("Stream closed before generation; stopping agent loop")
                return session.accumulated_text

            session.iteration_count += 1
            text, calls = await self._generate(session, writer, tools)
            if not calls:
                return session.accumulated_text

            results = await self._execute(calls, session, writer, actor)

            # every call from this turn is answered before the next generation
            session.conversation.append(ConversationMessage(role="assistant", content=text, tool_calls=calls))
            for result in results:
                session.conversation.append(ConversationMessage(
                    role="tool",
                    content=json.dumps(result.output, default=str),
                    tool_call_id=result.call_id,
                    tool_name=result.tool_name,
                ))

        session.cap_reached = True
        logger.warning(f"Agent loop hit the iteration cap ({self.config.max_iterations})")
        return session.accumulated_text

    async def _generate(
        self, session: AgentSession, writer: StreamWriter, tools: list[dict] | None,
    ) -> tuple[str, list[ToolCallRequest]]:
        text_parts: list[str] = []
        calls: list[ToolCallRequest] = []

        async for event in self.gateway.chat_stream(
            session.conversation,
            system_prompt=self.config.system_prompt,
            tools=tools,
            temperature=self.config.temperature,
        ):
            if isinstance(event, TextDelta):
                if not event.text:
                    continue
                text_parts.append(event.text)
                session.accumulated_text += event.text
                await writer.emit(TextEvent(event.text))
            elif isinstance(event, ToolCallRequest):
                calls.append(event)
                await writer.emit(ToolCallEvent(event))
            elif isinstance(event, Usage):
                session.input_tokens += event.input_tokens
                session.output_tokens += event.output_tokens
            elif isinstance(event, ToolResultPlaceholder):
                logger.debug(f"Provider-side result for {event.tool_name} ({event.call_id})")
            else:
                raise TypeError(f"Unexpected generation event: {event!r}")

        return "".join(text_parts), calls

    async def _execute(
        self,
        calls: list[ToolCallRequest],
        session: AgentSession,
        writer: StreamWriter,
        actor: ActorContext,
    ) -> list[ToolCallResult]:
        """Run the turn's tool calls and report each result in the order the calls were issued.

        Tools already running when the loop is cancelled are allowed to
        finish, and their results are still reported before the
        cancellation propagates.
        """
        if self.config.parallel_tools and len(calls) > 1:
            batches = [calls]
        else:
            batches = [[call] for call in calls]

        results: list[ToolCallResult] = []
        reported = 0
        try:
            for batch in batches:
                pending = [asyncio.ensure_future(self.registry.execute(call, actor)) for call in batch]
                try:
                    done = await _finish_even_if_cancelled(pending)
                except asyncio.CancelledError:
                    self._record(session, batch, [future.result() for future in pending], results)
                    raise
                self._record(session, batch, done, results)
                while reported < len(results):
                    await writer.emit(ToolResultEvent(results[reported]))
                    reported += 1
        except asyncio.CancelledError:
            for result in results[reported:]:
                await writer.emit(ToolResultEvent(result))
            raise
        return results

    @staticmethod
    def _record(
        session: AgentSession,
        calls: list[ToolCallRequest],
        outcomes: list[ToolCallResult],
        results: list[ToolCallResult],
    ):
        for call, result in zip(calls, outcomes):
            results.append(result)
            session.tool_calls.append({
                "toolCallId": call.call_id,
                "toolName": call.tool_name,
                "input": call.input,
                "output": result.output,
            })


async def _finish_even_if_cancelled(pending: list[asyncio.Future]) -> list:
    """Await tool executions; on cancellation let them complete before propagating."""
    try:
        return list(await asyncio.shield(asyncio.gather(*pending)))
    except asyncio.CancelledError:
        await asyncio.wait(pending)
        raise
