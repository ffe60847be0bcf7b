import json

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from auth import get_current_user, TokenData
from chat_store import ChatStore
from database import get_db
from errors import ConversationAuthorizationError
from models import Chat, ChatMessage
from schemas import (
    ChatResponse, ChatListResponse, ChatRename,
    MessageResponse, MessageListResponse,
)

router = APIRouter(prefix="/api/chats", tags=["chats"])


def _chat_to_response(chat: Chat) -> ChatResponse:
    return ChatResponse(
        id=str(chat.id),
        title=chat.title,
        total_input_tokens=chat.total_input_tokens or 0,
        total_output_tokens=chat.total_output_tokens or 0,
        created_at=chat.created_at,
        updated_at=chat.updated_at,
    )


def _message_to_response(msg: ChatMessage) -> MessageResponse:
    return MessageResponse(
        id=str(msg.id),
        chat_id=str(msg.chat_id),
        role=msg.role,
        content=msg.content,
        tool_calls=json.loads(msg.tool_calls_json) if msg.tool_calls_json else None,
        metadata=json.loads(msg.metadata_json) if msg.metadata_json else None,
        created_at=msg.created_at,
    )


def _owned_chat(store: ChatStore, user: TokenData, chat_id: int) -> Chat:
    try:
        return store.get_conversation(user.user_id, chat_id)
    except ConversationAuthorizationError:
        raise HTTPException(status_code=404, detail="Chat not found or unauthorized")


@router.get("", response_model=ChatListResponse)
async def list_chats(
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    chats = ChatStore(db).list_conversations(current_user.user_id)
    return ChatListResponse(chats=[_chat_to_response(c) for c in chats])


@router.get("/{chat_id}", response_model=ChatResponse)
async def get_chat(
    chat_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return _chat_to_response(_owned_chat(ChatStore(db), current_user, chat_id))


@router.get("/{chat_id}/messages", response_model=MessageListResponse)
async def get_chat_messages(
    chat_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    store = ChatStore(db)
    chat = _owned_chat(store, current_user, chat_id)
    return MessageListResponse(messages=[_message_to_response(m) for m in store.list_messages(chat.id)])


@router.patch("/{chat_id}", response_model=ChatResponse)
async def rename_chat(
    chat_id: int,
    data: ChatRename,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        chat = ChatStore(db).rename_conversation(current_user.user_id, chat_id, data.title)
    except ConversationAuthorizationError:
        raise HTTPException(status_code=404, detail="Chat not found or unauthorized")
    return _chat_to_response(chat)


@router.delete("/{chat_id}")
async def delete_chat(
    chat_id: int,
    current_user: TokenData = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    try:
        ChatStore(db).delete_conversation(current_user.user_id, chat_id)
    except ConversationAuthorizationError:
        raise HTTPException(status_code=404, detail="Chat not found or unauthorized")
    return {"message": "Chat deleted"}
