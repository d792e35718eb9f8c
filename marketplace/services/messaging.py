"""
Conversations and messages.

Conversation summaries are served through the read-through cache per user
(conversations:list:user:<id>:...). The cached summary never carries an
unread count; unread counts are recomputed from read state on every request
and merged into the response.

Realtime events go to each participant's personal room (user_<id>):
  newMessage          - on send
  conversationUpdated - on create, send and mark-as-read
"""

import logging
import math
from datetime import datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from ..clock import utcnow
from ..config import Settings
from ..errors import Forbidden, NotFound, ValidationFailed
from ..models.entities import (
    Bookings,
    ConversationParticipants,
    Conversations,
    Messages,
    Services,
    Users,
)
from ..schemas.conversations import MessageRead
from .cache import CacheInvalidator, ReadThroughCache, build_cache_key
from .cache.keys import CONVERSATIONS_LIST
from .events import CONVERSATION_UPDATED, NEW_MESSAGE, RealtimeEmitter, user_room
from .read_state import ReadStateTracker

logger = logging.getLogger(__name__)

MAX_MESSAGE_LENGTH = 1000


def conversation_summary(conversation: Conversations) -> dict:
    """JSON summary of a conversation, without unread counts."""
    last_message = None
    if conversation.last_message_content is not None:
        last_message = {
            "content": conversation.last_message_content,
            "sender_id": conversation.last_message_sender_id,
            "created_at": conversation.last_message_at.isoformat(),
        }
    return {
        "id": conversation.id,
        "participants": [
            {"user_id": p.user_id, "name": p.user.name if p.user else None}
            for p in conversation.participants
        ],
        "service_id": conversation.service_id,
        "service_name": conversation.service.name if conversation.service else None,
        "booking_id": conversation.booking_id,
        "last_message": last_message,
        "last_message_at": conversation.last_message_at.isoformat(),
    }


def message_payload(message: Messages) -> dict:
    return MessageRead.model_validate(message).model_dump(mode="json")


class ConversationService:
    def __init__(
        self,
        db: Session,
        cache: ReadThroughCache,
        invalidator: CacheInvalidator,
        emitter: RealtimeEmitter,
        settings: Settings,
    ):
        self.db = db
        self.cache = cache
        self.invalidator = invalidator
        self.emitter = emitter
        self.settings = settings
        self.read_state = ReadStateTracker(db)

    # ── Read ─────────────────────────────────────────────────────────────

    def _participant(self, conversation_id: int, user_id: int) -> ConversationParticipants:
        conversation = self.db.get(Conversations, conversation_id)
        if not conversation:
            raise NotFound("Conversation not found")
        for participant in conversation.participants:
            if participant.user_id == user_id:
                return participant
        raise Forbidden("Not a participant of this conversation")

    def list_conversations(self, user_id: int, page: int = 1, limit: int = 20) -> dict:
        key = build_cache_key(CONVERSATIONS_LIST, {"page": page, "limit": limit}, user_id=user_id)

        def compute():
            mine = select(ConversationParticipants.conversation_id).where(
                ConversationParticipants.user_id == user_id
            )
            query = self.db.query(Conversations).filter(Conversations.id.in_(mine))
            total = query.count()
            items = (
                query.order_by(Conversations.last_message_at.desc(), Conversations.id.desc())
                .offset((page - 1) * limit)
                .limit(limit)
                .all()
            )
            return {
                "conversations": [conversation_summary(c) for c in items],
                "pagination": {
                    "page": page,
                    "limit": limit,
                    "total": total,
                    "pages": math.ceil(total / limit) if limit else 0,
                },
            }

        payload = self.cache.with_cache(key, self.settings.conversations_cache_ttl, compute)

        ids = [c["id"] for c in payload["conversations"]]
        participants = {
            p.conversation_id: p
            for p in self.db.query(ConversationParticipants).filter(
                ConversationParticipants.user_id == user_id,
                ConversationParticipants.conversation_id.in_(ids),
            )
        }
        conversations = []
        for summary in payload["conversations"]:
            participant = participants.get(summary["id"])
            unread = self.read_state.refresh_unread(participant) if participant else 0
            conversations.append({**summary, "unread_count": unread})
        self.db.commit()

        return {"conversations": conversations, "pagination": payload["pagination"]}

    def get_messages(
        self,
        user_id: int,
        conversation_id: int,
        page: int = 1,
        limit: int = 50,
    ) -> tuple[list[Messages], int]:
        """
        Page of messages in chronological order; page 1 holds the newest.
        Reading marks the conversation as read for user_id.
        """
        participant = self._participant(conversation_id, user_id)

        query = self.db.query(Messages).filter(Messages.conversation_id == conversation_id)
        total = query.count()
        items = (
            query.order_by(Messages.created_at.desc(), Messages.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        items.reverse()

        self._mark_read(participant)
        return items, total

    def unread_total(self, user_id: int) -> int:
        return self.read_state.unread_total(user_id)

    # ── Write ────────────────────────────────────────────────────────────

    def create_conversation(
        self,
        actor_id: int,
        recipient_id: int,
        service_id: int | None = None,
        booking_id: int | None = None,
    ) -> tuple[Conversations, bool]:
        """
        Conversation between actor and recipient about an optional service or
        booking. An existing one for the same pair and context is reused.

        Returns:
            (conversation, created)
        """
        if recipient_id == actor_id:
            raise ValidationFailed("Cannot start a conversation with yourself")
        if not self.db.get(Users, recipient_id):
            raise NotFound("Recipient not found")
        if service_id is not None and not self.db.get(Services, service_id):
            raise NotFound("Service not found")
        if booking_id is not None:
            booking = self.db.get(Bookings, booking_id)
            if not booking:
                raise NotFound("Booking not found")
            if {booking.customer_id, booking.provider_id} != {actor_id, recipient_id}:
                raise Forbidden("Booking does not belong to these users")

        existing = self._find_existing(actor_id, recipient_id, service_id, booking_id)
        if existing:
            return existing, False

        conversation = Conversations(
            service_id=service_id,
            booking_id=booking_id,
            participants=[
                ConversationParticipants(user_id=actor_id, unread_count=0),
                ConversationParticipants(user_id=recipient_id, unread_count=0),
            ],
        )
        self.db.add(conversation)
        self.db.commit()
        self.db.refresh(conversation)

        user_ids = [actor_id, recipient_id]
        self.invalidator.conversations_changed(user_ids)
        self.emitter.emit_to_users(
            user_ids,
            CONVERSATION_UPDATED,
            {"conversation_id": conversation.id, "created": True},
        )
        logger.info(f"Conversation created: id={conversation.id} users={user_ids}")
        return conversation, True

    def send_message(
        self,
        sender_id: int,
        conversation_id: int,
        content: str,
        content_type: str = "text",
    ) -> Messages:
        if not content or not content.strip():
            raise ValidationFailed("Message content is required")
        if len(content) > MAX_MESSAGE_LENGTH:
            raise ValidationFailed(f"Message cannot exceed {MAX_MESSAGE_LENGTH} characters")

        sender = self._participant(conversation_id, sender_id)
        conversation = sender.conversation
        others = [p for p in conversation.participants if p.user_id != sender_id]
        if not others:
            raise ValidationFailed("Conversation has no recipient")

        message = Messages(
            conversation_id=conversation_id,
            sender_id=sender_id,
            recipient_id=others[0].user_id,
            content=content,
            content_type=content_type,
            is_read=False,
            is_delivered=False,
            status="sent",
        )
        self.db.add(message)
        self.db.flush()

        conversation.last_message_content = content
        conversation.last_message_sender_id = sender_id
        conversation.last_message_at = message.created_at

        self.db.execute(
            update(ConversationParticipants)
            .where(
                ConversationParticipants.conversation_id == conversation_id,
                ConversationParticipants.user_id != sender_id,
            )
            .values(unread_count=ConversationParticipants.unread_count + 1)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        self.db.refresh(message)

        user_ids = [p.user_id for p in conversation.participants]
        self.invalidator.conversations_changed(user_ids)

        payload = message_payload(message)
        self.emitter.emit_to_users(
            user_ids,
            NEW_MESSAGE,
            {"conversation_id": conversation_id, "message": payload},
        )
        self.emitter.emit_to_users(
            user_ids,
            CONVERSATION_UPDATED,
            {
                "conversation_id": conversation_id,
                "last_message": {
                    "content": content,
                    "sender_id": sender_id,
                    "created_at": payload["created_at"],
                },
            },
        )
        return message

    def mark_as_read(self, user_id: int, conversation_id: int) -> ConversationParticipants:
        participant = self._participant(conversation_id, user_id)
        return self._mark_read(participant)

    def _mark_read(self, participant: ConversationParticipants) -> ConversationParticipants:
        participant = self.read_state.mark_read(participant)
        self.emitter.emit(
            user_room(participant.user_id),
            CONVERSATION_UPDATED,
            {"conversation_id": participant.conversation_id, "unread_count": 0},
        )
        return participant

    # ── Helpers ──────────────────────────────────────────────────────────

    def _find_existing(
        self,
        actor_id: int,
        recipient_id: int,
        service_id: int | None,
        booking_id: int | None,
    ) -> Conversations | None:
        def member_of(user_id):
            return select(ConversationParticipants.conversation_id).where(
                ConversationParticipants.user_id == user_id
            )

        query = self.db.query(Conversations).filter(
            Conversations.id.in_(member_of(actor_id)),
            Conversations.id.in_(member_of(recipient_id)),
        )
        query = query.filter(
            Conversations.service_id == service_id
            if service_id is not None
            else Conversations.service_id.is_(None)
        )
        query = query.filter(
            Conversations.booking_id == booking_id
            if booking_id is not None
            else Conversations.booking_id.is_(None)
        )
        return query.first()


def purge_expired_messages(db: Session, retention_days: int, now: datetime | None = None) -> int:
    """
    Delete messages older than the retention horizon.

    Read markers pointing at purged messages are cleared first; last_read_at
    stays, so unread counts are unaffected.
    """
    cutoff = (now or utcnow()) - timedelta(days=retention_days)
    expired = select(Messages.id).where(Messages.created_at < cutoff)

    db.execute(
        update(ConversationParticipants)
        .where(ConversationParticipants.last_read_message_id.in_(expired))
        .values(last_read_message_id=None)
        .execution_options(synchronize_session=False)
    )
    deleted = (
        db.query(Messages)
        .filter(Messages.created_at < cutoff)
        .delete(synchronize_session=False)
    )
    db.commit()

    if deleted:
        logger.info(f"Purged {deleted} messages older than {cutoff.isoformat()}")
    return deleted
