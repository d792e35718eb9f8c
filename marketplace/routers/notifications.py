# marketplace/routers/notifications.py
"""
In-app notification inbox of the calling user.
"""

from fastapi import APIRouter, Depends, Query

from ..dependencies import get_current_user, get_inbox
from ..models.entities import Users
from ..schemas.notifications import NotificationList, NotificationRead, NotificationsMarkedRead
from ..services.notifications import NotificationInbox

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.get("", response_model=NotificationList)
def list_notifications(
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    unread_only: bool = False,
    user: Users = Depends(get_current_user),
    inbox: NotificationInbox = Depends(get_inbox),
):
    items, total, unread = inbox.list_for_user(user.id, page, limit, unread_only)
    return NotificationList(
        notifications=[NotificationRead.model_validate(n) for n in items],
        unread_count=unread,
        pagination={"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    )


@router.put("/read-all", response_model=NotificationsMarkedRead)
def mark_all_read(
    user: Users = Depends(get_current_user),
    inbox: NotificationInbox = Depends(get_inbox),
):
    return NotificationsMarkedRead(success=True, updated=inbox.mark_all_read(user.id))


@router.put("/{notification_id}/read", response_model=NotificationRead)
def mark_read(
    notification_id: int,
    user: Users = Depends(get_current_user),
    inbox: NotificationInbox = Depends(get_inbox),
):
    return NotificationRead.model_validate(inbox.mark_read(user.id, notification_id))


@router.delete("/{notification_id}")
def delete_notification(
    notification_id: int,
    user: Users = Depends(get_current_user),
    inbox: NotificationInbox = Depends(get_inbox),
):
    inbox.delete(user.id, notification_id)
    return {"success": True, "message": "Notification deleted"}
