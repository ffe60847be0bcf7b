"""Runs one chat request end to end: lock, agent loop, terminal records, transcript."""

import asyncio
import logging
import time
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Callable

from sqlalchemy.orm import Session as DBSession

from auth import TokenData
from chat_store import ChatStore
from database import SessionLocal
from document_store import DocumentStore
from errors import ModelError, PersistenceError
from llm.base import ConversationMessage
from tools.registry import ActorContext
from .events import MetaEvent
from .loop import AgentLoop, AgentSession
from .stream_writer import EventChannel, StreamWriter

logger = logging.getLogger(__name__)

DISCONNECTED = "client disconnected"


class ChatLocks:
    """One asyncio.Lock per chat id, dropped once nobody holds or waits on it."""

    def __init__(self):
        self._locks: dict[int, asyncio.Lock] = {}
        self._users: dict[int, int] = defaultdict(int)

    def __contains__(self, chat_id: int) -> bool:
        return chat_id in self._locks

    @asynccontextmanager
    async def hold(self, chat_id: int):
        lock = self._locks.setdefault(chat_id, asyncio.Lock())
        self._users[chat_id] += 1
        try:
            async with lock:
                yield
        finally:
            self._users[chat_id] -= 1
            if self._users[chat_id] <= 0:
                self._users.pop(chat_id, None)
                self._locks.pop(chat_id, None)


chat_locks = ChatLocks()


@dataclass
class ChatTurn:
    chat_id: int
    actor: TokenData
    messages: list[ConversationMessage]
    user_message: str | None = None


async def run_chat_session(
    turn: ChatTurn,
    loop: AgentLoop,
    writer: StreamWriter,
    timeout: float,
    persist_partial: bool = True,
    session_factory: Callable[[], DBSession] = SessionLocal,
    locks: ChatLocks = chat_locks,
) -> AgentSession:
    """Drive the agent loop for one request and record the outcome.

    The stream always ends with a done record unless the client went away.
    The transcript is written after the done record, so a persistence
    failure is logged but never surfaces on the stream.
    """
    session = AgentSession(conversation=list(turn.messages))
    start_time = time.time()
    db = session_factory()
    store = ChatStore(db)

    try:
        async with locks.hold(turn.chat_id):
            error = await _drive(turn, loop, writer, session, store, timeout)
            if error is None or persist_partial:
                _persist_transcript(store, turn.chat_id, loop, session, start_time, error)
    except asyncio.CancelledError:
        # not re-raised: a disconnect ends the task normally and returns the partial session
        writer.close_transport()
        logger.info(f"Client disconnected from chat {turn.chat_id} after {session.iteration_count} iteration(s)")
        if persist_partial:
            _persist_transcript(store, turn.chat_id, loop, session, start_time, DISCONNECTED)
    finally:
        db.close()

    logger.info(
        f"Chat {turn.chat_id} finished: {session.iteration_count} iteration(s), "
        f"{len(session.tool_calls)} tool call(s), {writer.emitted} record(s)"
    )
    return session


async def _drive(
    turn: ChatTurn,
    loop: AgentLoop,
    writer: StreamWriter,
    session: AgentSession,
    store: ChatStore,
    timeout: float,
) -> str | None:
    """Run the loop and write the terminal records. Returns the error message, if any."""
    actor = ActorContext(
        user_id=turn.actor.user_id,
        username=turn.actor.username,
        documents=DocumentStore(store.db),
    )
    try:
        if turn.user_message is not None:
            store.append_message(turn.chat_id, "user", turn.user_message)
        await writer.emit(MetaEvent(turn.chat_id))
        await asyncio.wait_for(loop.run(session, writer, actor), timeout=timeout)
    except ModelError as e:
        logger.error(f"Model error in chat {turn.chat_id}: {e}")
        message = str(e)
    except asyncio.TimeoutError:
        logger.warning(f"Chat {turn.chat_id} exceeded the {timeout:g}s deadline")
        message = f"Response timed out after {timeout:g} seconds"
    except PersistenceError as e:
        logger.error(f"Could not record message for chat {turn.chat_id}: {e}")
        message = "Failed to save message"
    except Exception as e:
        logger.exception(f"Unexpected error in chat {turn.chat_id}")
        message = f"Internal error: {e}"
    else:
        if session.cap_reached:
            await writer.emit(MetaEvent(turn.chat_id, {
                "iterationCapReached": True,
                "iterations": session.iteration_count,
            }))
        await writer.finish()
        return None

    await writer.fail(message)
    return message


def _persist_transcript(
    store: ChatStore,
    chat_id: int,
    loop: AgentLoop,
    session: AgentSession,
    start_time: float,
    error: str | None,
):
    if not session.accumulated_text:
        return

    metadata = {
        "model": loop.config.model_id,
        "provider": getattr(loop.gateway, "provider_name", None),
        "latency_ms": int((time.time() - start_time) * 1000),
        "iterations": session.iteration_count,
        "input_tokens": session.input_tokens,
        "output_tokens": session.output_tokens,
    }
    if error:
        metadata["error"] = error

    try:
        store.append_message(
            chat_id,
            "assistant",
            session.accumulated_text,
            tool_calls=session.tool_calls or None,
            metadata=metadata,
        )
        store.touch_conversation(chat_id, session.input_tokens, session.output_tokens)
    except PersistenceError as e:
        logger.exception(f"Failed to persist transcript for chat {chat_id}: {e}")


def _log_task_outcome(task: asyncio.Task):
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Chat task ended with an unhandled error: {exc!r}")


class ChatStream:
    """Couples a running chat task with the channel its records flow through."""

    def __init__(self, queue_size: int = 64):
        self.channel = EventChannel(queue_size)
        self.writer = StreamWriter(self.channel)
        self.task: asyncio.Task | None = None

    def start(self, coro) -> "ChatStream":
        self.task = asyncio.create_task(coro)
        self.task.add_done_callback(_log_task_outcome)
        return self

    def disconnect(self):
        self.writer.close_transport()
        if self.task is not None and not self.task.done():
            self.task.cancel()

    async def records(self):
        """Yield SSE records until the done record; a consumer that stops early cancels the task."""
        try:
            async for record in self.channel:
                yield record
        finally:
            if not self.writer.finished:
                self.disconnect()
