from pydantic import BaseModel, Field
from typing import Literal, Optional
from datetime import datetime


# ============================================================================
# Chat Schemas
# ============================================================================

class ChatMessageIn(BaseModel):
    role        : Literal["system", "user", "assistant"]
    content     : str = ""

class ChatRequest(BaseModel):
    messages    : list[ChatMessageIn]
    chat_id     : Optional[int] = Field(None, alias="chatId")

    class Config:
        populate_by_name = True


# ============================================================================
# Chat History Schemas
# ============================================================================

class ChatResponse(BaseModel):
    id: str
    title: Optional[str] = None
    total_input_tokens: int = 0
    total_output_tokens: int = 0
    created_at: datetime
    updated_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class ChatListResponse(BaseModel):
    chats: list[ChatResponse]

class ChatRename(BaseModel):
    title: str = Field(..., min_length=1, max_length=200)

class MessageResponse(BaseModel):
    id: str
    chat_id: str
    role: str
    content: Optional[str] = None
    tool_calls: Optional[list[dict]] = None
    metadata: Optional[dict] = None
    created_at: datetime

    class Config:
        from_attributes = True

class MessageListResponse(BaseModel):
    messages: list[MessageResponse]


# ============================================================================
# Document Schemas
# ============================================================================

class DocumentCreate(BaseModel):
    title: str = Field(..., min_length=1)
    content: str = ""

class DocumentUpdate(BaseModel):
    title: str = Field(..., min_length=1)
    content: str

class DocumentContentUpdate(BaseModel):
    content: str

class DocumentTitleUpdate(BaseModel):
    title: str = Field(..., min_length=1)

class DocumentResponse(BaseModel):
    id: int
    title: str
    content: str
    createdAt: Optional[str] = None
    updatedAt: Optional[str] = None

class DocumentListResponse(BaseModel):
    documents: list[DocumentResponse]
