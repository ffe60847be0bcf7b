from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Text
from sqlalchemy.sql import func
from database import Base


class User(Base):
    """An actor, keyed by the subject of their bearer token."""
    __tablename__ = "users"

    id              = Column(String, primary_key=True, index=True)
    name            = Column(String, nullable=False)
    created_at      = Column(DateTime(timezone=True), server_default=func.now())


class Chat(Base):
    """A conversation thread owned by one user."""
    __tablename__ = "chats"

    id                  = Column(Integer, primary_key=True, index=True)
    user_id             = Column(String, ForeignKey("users.id"), index=True, nullable=False)
    title               = Column(String, nullable=True)
    total_input_tokens  = Column(Integer, default=0, nullable=False)
    total_output_tokens = Column(Integer, default=0, nullable=False)
    created_at          = Column(DateTime(timezone=True), server_default=func.now())
    updated_at          = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())


class ChatMessage(Base):
    """A single persisted message in a chat."""
    __tablename__ = "chat_messages"

    id              = Column(Integer, primary_key=True, index=True)
    chat_id         = Column(Integer, ForeignKey("chats.id"), index=True, nullable=False)
    role            = Column(String, nullable=False)       # user | assistant | system
    content         = Column(Text, nullable=True)
    tool_calls_json = Column(Text, nullable=True)          # JSON: [{toolCallId, toolName, input, output}]
    metadata_json   = Column(Text, nullable=True)          # JSON: {model, latency_ms, input_tokens, ...}
    created_at      = Column(DateTime(timezone=True), server_default=func.now())


class Document(Base):
    """A user-owned text document."""
    __tablename__ = "documents"

    id              = Column(Integer, primary_key=True, index=True)
    user_id         = Column(String, ForeignKey("users.id"), index=True, nullable=False)
    title           = Column(String, nullable=False)
    content         = Column(Text, nullable=False, default="")
    created_at      = Column(DateTime(timezone=True), server_default=func.now())
    updated_at      = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
