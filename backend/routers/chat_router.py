import logging
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Request
from sqlalchemy.orm import Session as DBSession
from sse_starlette.sse import EventSourceResponse

import config
from agent.loop import AgentLoop
from agent.runner import ChatStream, ChatTurn, run_chat_session
from auth import get_current_user, TokenData
from chat_store import ChatStore
from database import get_db, SessionLocal
from errors import ConversationAuthorizationError, PersistenceError
from llm.base import ConversationMessage
from rate_limiter import chat_rate_limit
from schemas import ChatRequest

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/chat", tags=["chat"])


def get_agent_loop(request: Request) -> AgentLoop:
    return request.app.state.agent_loop


def get_session_factory() -> Callable[[], DBSession]:
    return SessionLocal


@router.post("")
@chat_rate_limit()
async def chat(
    request: Request,
    body: ChatRequest,
    current_user: TokenData = Depends(get_current_user),
    db: DBSession = Depends(get_db),
    agent_loop: AgentLoop = Depends(get_agent_loop),
    session_factory: Callable[[], DBSession] = Depends(get_session_factory),
):
    """Streaming chat endpoint using SSE."""
    if not body.messages:
        raise HTTPException(status_code=400, detail="At least one message is required")

    latest = body.messages[-1]
    store = ChatStore(db)
    try:
        store.ensure_actor(current_user.user_id, current_user.username)
        chat_id = store.resolve_or_create_conversation(current_user.user_id, body.chat_id, latest.content)
    except ConversationAuthorizationError:
        raise HTTPException(status_code=404, detail="Chat not found or unauthorized")
    except PersistenceError as e:
        logger.error(f"Could not open chat for user {current_user.user_id}: {e}")
        raise HTTPException(status_code=500, detail="Failed to open chat")

    turn = ChatTurn(
        chat_id=chat_id,
        actor=current_user,
        messages=[ConversationMessage(role=m.role, content=m.content) for m in body.messages],
        user_message=latest.content if latest.role == "user" else None,
    )

    stream = ChatStream(config.STREAM_QUEUE_SIZE)
    stream.start(run_chat_session(
        turn,
        agent_loop,
        stream.writer,
        timeout=config.CHAT_TIMEOUT_SECONDS,
        persist_partial=config.PERSIST_PARTIAL_TRANSCRIPT,
        session_factory=session_factory,
    ))
    logger.info(f"Streaming chat {chat_id} for user {current_user.user_id}")

    return EventSourceResponse(stream.records(), headers={"X-Chat-Id": str(chat_id)})
