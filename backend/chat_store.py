"""Relational persistence for actors, chats and chat messages."""

import json
import logging
from datetime import datetime, timezone

from sqlalchemy.orm import Session

from database import commit_or_rollback
from errors import ConversationAuthorizationError
from models import User, Chat, ChatMessage

logger = logging.getLogger(__name__)

TITLE_LENGTH = 50


class ChatStore:
    """Persistence adapter used by the chat pipeline.

    Every write commits immediately. SQLAlchemy failures on the write path
    are rolled back and re-raised as PersistenceError.
    """

    def __init__(self, db: Session):
        self.db = db

    def _commit(self, action: str):
        commit_or_rollback(self.db, action)

    def ensure_actor(self, actor_id: str, display_name: str) -> User:
        user = self.db.query(User).filter(User.id == actor_id).first()
        if user is None:
            user = User(id=actor_id, name=display_name)
            self.db.add(user)
        elif user.name != display_name:
            user.name = display_name
        self._commit("upsert user")
        return user

    def resolve_or_create_conversation(self, actor_id: str, chat_id: int | None, first_message: str) -> int:
        """Return the id of the actor's chat, creating one titled after the first message when none is given."""
        if chat_id is not None:
            chat = self.db.query(Chat).filter(Chat.id == int(chat_id)).first()
            if not chat or chat.user_id != actor_id:
                raise ConversationAuthorizationError(chat_id)
            return chat.id

        chat = Chat(user_id=actor_id, title=(first_message or "")[:TITLE_LENGTH] or None)
        self.db.add(chat)
        self._commit("create chat")
        self.db.refresh(chat)
        logger.info(f"Created chat {chat.id} for user {actor_id}")
        return chat.id

    def append_message(
        self,
        chat_id: int,
        role: str,
        content: str,
        tool_calls: list[dict] | None = None,
        metadata: dict | None = None,
    ) -> ChatMessage:
        message = ChatMessage(
            chat_id=chat_id,
            role=role,
            content=content,
            tool_calls_json=json.dumps(tool_calls) if tool_calls else None,
            metadata_json=json.dumps(metadata) if metadata else None,
        )
        self.db.add(message)
        self._commit("insert message")
        self.db.refresh(message)
        return message

    def touch_conversation(self, chat_id: int, input_tokens: int = 0, output_tokens: int = 0):
        chat = self.db.query(Chat).filter(Chat.id == chat_id).first()
        if chat is None:
            return
        chat.updated_at = datetime.now(timezone.utc)
        chat.total_input_tokens = (chat.total_input_tokens or 0) + input_tokens
        chat.total_output_tokens = (chat.total_output_tokens or 0) + output_tokens
        self._commit("update chat timestamp")

    # History helpers used by the chats router

    def list_conversations(self, actor_id: str) -> list[Chat]:
        return (
            self.db.query(Chat)
            .filter(Chat.user_id == actor_id)
            .order_by(Chat.updated_at.desc(), Chat.id.desc())
            .all()
        )

    def get_conversation(self, actor_id: str, chat_id: int) -> Chat:
        chat = self.db.query(Chat).filter(Chat.id == chat_id).first()
        if not chat or chat.user_id != actor_id:
            raise ConversationAuthorizationError(chat_id)
        return chat

    def list_messages(self, chat_id: int) -> list[ChatMessage]:
        return (
            self.db.query(ChatMessage)
            .filter(ChatMessage.chat_id == chat_id)
            .order_by(ChatMessage.created_at.asc(), ChatMessage.id.asc())
            .all()
        )

    def rename_conversation(self, actor_id: str, chat_id: int, title: str) -> Chat:
        chat = self.get_conversation(actor_id, chat_id)
        chat.title = title
        chat.updated_at = datetime.now(timezone.utc)
        self._commit("rename chat")
        self.db.refresh(chat)
        return chat

    def delete_conversation(self, actor_id: str, chat_id: int):
        chat = self.get_conversation(actor_id, chat_id)
        self.db.query(ChatMessage).filter(ChatMessage.chat_id == chat.id).delete()
        self.db.delete(chat)
        self._commit("delete chat")
