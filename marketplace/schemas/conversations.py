# marketplace/schemas/conversations.py

from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field

from .services import Pagination


class ConversationCreate(BaseModel):
    recipient_id: int
    service_id: Optional[int] = None
    booking_id: Optional[int] = None


class MessageCreate(BaseModel):
    content: str = Field(..., min_length=1, max_length=1000)
    content_type: Literal["text", "image", "document", "location"] = "text"


class MessageRead(BaseModel):
    id: int
    conversation_id: int
    sender_id: int
    recipient_id: int
    content: str
    content_type: str
    is_read: bool
    status: str
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}


class ParticipantRead(BaseModel):
    user_id: int
    name: Optional[str] = None


class LastMessage(BaseModel):
    content: str
    sender_id: Optional[int] = None
    created_at: datetime


class ConversationRead(BaseModel):
    id: int
    participants: list[ParticipantRead]
    service_id: Optional[int] = None
    service_name: Optional[str] = None
    booking_id: Optional[int] = None
    last_message: Optional[LastMessage] = None
    last_message_at: datetime
    # Recomputed on every request, never served from cache
    unread_count: int = 0


class ConversationList(BaseModel):
    conversations: list[ConversationRead]
    pagination: Pagination


class MessageList(BaseModel):
    messages: list[MessageRead]
    pagination: Pagination


class UnreadCount(BaseModel):
    unread_count: int
