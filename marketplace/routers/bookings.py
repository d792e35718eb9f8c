# marketplace/routers/bookings.py

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_booking_guard, get_current_user, get_inbox, get_invalidator
from ..errors import ValidationFailed
from ..models.entities import Users
from ..schemas.bookings import (
    BookingCreate,
    BookingList,
    BookingRatingCreate,
    BookingRead,
    BookingStatusUpdate,
)
from ..services.bookings import BookingGuard
from ..services.cache import CacheInvalidator
from ..services.notifications import NotificationInbox
from ..services.ratings import add_rating

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking(
    data: BookingCreate,
    user: Users = Depends(get_current_user),
    guard: BookingGuard = Depends(get_booking_guard),
):
    booking = guard.create_booking(
        customer_id=user.id,
        service_id=data.service_id,
        day=data.date,
        time=data.time,
        notes=data.notes,
        address=data.address.model_dump() if data.address else None,
    )
    return BookingRead.model_validate(booking)


@router.get("", response_model=BookingList)
def list_bookings(
    type: str = Query("customer", pattern="^(customer|provider)$"),
    status_filter: str | None = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: Users = Depends(get_current_user),
    guard: BookingGuard = Depends(get_booking_guard),
):
    """Bookings where the caller is the customer (type=customer) or the provider."""
    items, total = guard.list_user_bookings(user.id, type, status_filter, page, limit)
    return BookingList(
        bookings=[BookingRead.model_validate(b) for b in items],
        pagination={"page": page, "limit": limit, "total": total, "pages": (total + limit - 1) // limit},
    )


@router.get("/{booking_id}", response_model=BookingRead)
def get_booking(
    booking_id: int,
    user: Users = Depends(get_current_user),
    guard: BookingGuard = Depends(get_booking_guard),
):
    return BookingRead.model_validate(guard.get_booking(booking_id, user.id))


@router.put("/{booking_id}/status", response_model=BookingRead)
def update_booking_status(
    booking_id: int,
    data: BookingStatusUpdate,
    user: Users = Depends(get_current_user),
    guard: BookingGuard = Depends(get_booking_guard),
):
    """
    Status change. With new_date and new_time (and status=rescheduled) the
    booking is moved to that slot instead.
    """
    if data.new_date is not None or data.new_time is not None:
        if data.new_date is None or data.new_time is None:
            raise ValidationFailed("new_date and new_time must be given together")
        if data.status != "rescheduled":
            raise ValidationFailed("new_date/new_time are only valid with status 'rescheduled'")
        booking = guard.reschedule(booking_id, data.new_date, data.new_time, user.id)
    else:
        booking = guard.transition(booking_id, data.status, user.id)
    return BookingRead.model_validate(booking)


@router.post("/{booking_id}/rating", response_model=BookingRead)
def rate_booking(
    booking_id: int,
    data: BookingRatingCreate,
    user: Users = Depends(get_current_user),
    invalidator: CacheInvalidator = Depends(get_invalidator),
    inbox: NotificationInbox = Depends(get_inbox),
    db: Session = Depends(get_db),
):
    booking = add_rating(db, invalidator, booking_id, user.id, data.rating, data.comment)
    inbox.notify(
        booking.provider_id,
        "New Review",
        f"{user.name} rated booking #{booking.id} {booking.rating_value}/5",
        data={"booking_id": booking.id, "service_id": booking.service_id},
        kind="review",
    )
    return BookingRead.model_validate(booking)
