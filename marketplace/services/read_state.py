"""
Conversation read state.

Per participant: last_read_message_id, last_read_at and an unread_count
counter. The counter is derived data. The authoritative rule is

    unread = messages in the conversation
             with created_at > last_read_at (every message if never read)
             and sender != participant

and the counter is rewritten whenever it is found to disagree.
"""

import logging

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..clock import utcnow
from ..models.entities import ConversationParticipants, Messages

logger = logging.getLogger(__name__)


class ReadStateTracker:
    def __init__(self, db: Session):
        self.db = db

    def count_unread(self, participant: ConversationParticipants) -> int:
        query = self.db.query(func.count(Messages.id)).filter(
            Messages.conversation_id == participant.conversation_id,
            Messages.sender_id != participant.user_id,
        )
        if participant.last_read_at is not None:
            query = query.filter(Messages.created_at > participant.last_read_at)
        return query.scalar() or 0

    def refresh_unread(self, participant: ConversationParticipants) -> int:
        """Recompute; correct the stored counter if it drifted (flush only)."""
        actual = self.count_unread(participant)
        if participant.unread_count != actual:
            logger.debug(
                f"Unread counter corrected: conversation={participant.conversation_id} "
                f"user={participant.user_id} {participant.unread_count} → {actual}"
            )
            participant.unread_count = actual
            self.db.flush()
        return actual

    def mark_read(self, participant: ConversationParticipants) -> ConversationParticipants:
        """Point the read marker at the newest message and zero the counter."""
        now = utcnow()
        newest = (
            self.db.query(Messages.id)
            .filter(Messages.conversation_id == participant.conversation_id)
            .order_by(Messages.created_at.desc(), Messages.id.desc())
            .first()
        )

        participant.last_read_message_id = newest[0] if newest else None
        participant.last_read_at = now
        participant.unread_count = 0

        self.db.execute(
            update(Messages)
            .where(
                Messages.conversation_id == participant.conversation_id,
                Messages.recipient_id == participant.user_id,
                Messages.is_read.is_(False),
            )
            .values(is_read=True, status="read", read_at=now)
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return participant

    def unread_total(self, user_id: int) -> int:
        participants = (
            self.db.query(ConversationParticipants)
            .filter(ConversationParticipants.user_id == user_id)
            .all()
        )
        total = sum(self.refresh_unread(p) for p in participants)
        self.db.commit()
        return total
