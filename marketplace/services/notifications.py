"""
In-app notification inbox.

NotificationInbox.notify stores the in_app copy of a notification and then
hands the event to the NotificationDispatcher for push delivery. It is a
drop-in for the dispatcher wherever a request session is available.
"""

import json
import logging

from sqlalchemy import func, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..clock import utcnow
from ..errors import NotFound, ValidationFailed
from ..models.entities import Notifications
from .events import NotificationDispatcher

logger = logging.getLogger(__name__)

KINDS = ("booking", "payment", "review", "system", "message")


class NotificationInbox:
    def __init__(self, db: Session, dispatcher: NotificationDispatcher):
        self.db = db
        self.dispatcher = dispatcher

    def notify(
        self,
        user_id: int,
        title: str,
        message: str,
        channels: tuple[str, ...] = ("in_app", "push"),
        data: dict | None = None,
        kind: str = "booking",
    ) -> dict:
        """Persist the in_app copy, then queue the event. Storage errors are logged only."""
        if kind not in KINDS:
            raise ValidationFailed(f"Unknown notification type: {kind}")

        if "in_app" in channels:
            try:
                self.db.add(
                    Notifications(
                        user_id=user_id,
                        title=title[:200],
                        message=message[:500],
                        type=kind,
                        is_read=False,
                        data=json.dumps(data or {}),
                    )
                )
                self.db.commit()
            except SQLAlchemyError:
                self.db.rollback()
                logger.exception(f"Failed to store notification for user {user_id}")

        return self.dispatcher.notify(user_id, title, message, channels, data)

    # ── Inbox ────────────────────────────────────────────────────────────

    def list_for_user(
        self,
        user_id: int,
        page: int = 1,
        limit: int = 20,
        unread_only: bool = False,
    ) -> tuple[list[Notifications], int, int]:
        """Newest first. Returns (items, total, unread)."""
        query = self.db.query(Notifications).filter(Notifications.user_id == user_id)
        if unread_only:
            query = query.filter(Notifications.is_read.is_(False))

        total = query.with_entities(func.count(Notifications.id)).scalar()
        items = (
            query.order_by(Notifications.created_at.desc(), Notifications.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total, self.unread_count(user_id)

    def unread_count(self, user_id: int) -> int:
        return (
            self.db.query(func.count(Notifications.id))
            .filter(Notifications.user_id == user_id, Notifications.is_read.is_(False))
            .scalar()
        )

    def mark_read(self, user_id: int, notification_id: int) -> Notifications:
        notification = self._owned(user_id, notification_id)
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = utcnow()
            self.db.commit()
            self.db.refresh(notification)
        return notification

    def mark_all_read(self, user_id: int) -> int:
        result = self.db.execute(
            update(Notifications)
            .where(Notifications.user_id == user_id, Notifications.is_read.is_(False))
            .values(is_read=True, read_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        self.db.commit()
        return result.rowcount

    def delete(self, user_id: int, notification_id: int) -> None:
        notification = self._owned(user_id, notification_id)
        self.db.delete(notification)
        self.db.commit()

    def _owned(self, user_id: int, notification_id: int) -> Notifications:
        notification = self.db.get(Notifications, notification_id)
        # Another user's notification looks missing
        if not notification or notification.user_id != user_id:
            raise NotFound("Notification not found")
        return notification
