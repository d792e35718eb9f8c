# marketplace/routers/messages.py
"""
Messaging API.

Conversation lists are cached per user; unread counts in the response are
always fresh.
"""

from fastapi import APIRouter, Depends, Query, Response, status

from ..dependencies import get_conversations, get_current_user
from ..models.entities import Users
from ..schemas.conversations import (
    ConversationCreate,
    ConversationList,
    ConversationRead,
    MessageCreate,
    MessageList,
    MessageRead,
    UnreadCount,
)
from ..services.messaging import ConversationService, conversation_summary

router = APIRouter(prefix="/messages", tags=["messages"])


@router.get("/conversations", response_model=ConversationList)
def list_conversations(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    user: Users = Depends(get_current_user),
    conversations: ConversationService = Depends(get_conversations),
):
    return conversations.list_conversations(user.id, page, limit)


@router.post("/conversations", response_model=ConversationRead)
def create_conversation(
    data: ConversationCreate,
    response: Response,
    user: Users = Depends(get_current_user),
    conversations: ConversationService = Depends(get_conversations),
):
    """Returns 201 for a new conversation, 200 when an existing one is reused."""
    conversation, created = conversations.create_conversation(
        user.id, data.recipient_id, data.service_id, data.booking_id
    )
    if created:
        response.status_code = status.HTTP_201_CREATED
    return conversation_summary(conversation)


@router.get("/conversations/{conversation_id}/messages", response_model=MessageList)
def get_messages(
    conversation_id: int,
    page: int = Query(1, ge=1),
    limit: int = Query(50, ge=1, le=100),
    user: Users = Depends(get_current_user),
    conversations: ConversationService = Depends(get_conversations),
):
    items, total = conversations.get_messages(user.id, conversation_id, page, limit)
    return MessageList(
        messages=[MessageRead.model_validate(m) for m in items],
        pagination={"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    )


@router.post(
    "/conversations/{conversation_id}/messages",
    response_model=MessageRead,
    status_code=status.HTTP_201_CREATED,
)
def send_message(
    conversation_id: int,
    data: MessageCreate,
    user: Users = Depends(get_current_user),
    conversations: ConversationService = Depends(get_conversations),
):
    message = conversations.send_message(user.id, conversation_id, data.content, data.content_type)
    return MessageRead.model_validate(message)


@router.put("/conversations/{conversation_id}/read", response_model=UnreadCount)
def mark_as_read(
    conversation_id: int,
    user: Users = Depends(get_current_user),
    conversations: ConversationService = Depends(get_conversations),
):
    participant = conversations.mark_as_read(user.id, conversation_id)
    return UnreadCount(unread_count=participant.unread_count)


@router.get("/unread-count", response_model=UnreadCount)
def unread_count(
    user: Users = Depends(get_current_user),
    conversations: ConversationService = Depends(get_conversations),
):
    return UnreadCount(unread_count=conversations.unread_total(user.id))
