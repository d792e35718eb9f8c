"""
Booking ratings.

One rating per completed booking, written by its customer. Provider and
service averages are recomputed from every rated booking after each new
rating.
"""

import logging

from sqlalchemy import func, update
from sqlalchemy.orm import Session

from ..clock import utcnow
from ..errors import Conflict, DomainError, Forbidden, InvalidState, NotFound, ValidationFailed
from ..models.entities import Bookings, Services, Users
from .cache import CacheInvalidator

logger = logging.getLogger(__name__)


def _average(db: Session, column, entity_id: int) -> tuple[float, int]:
    """Mean and count of rating_value over all rated bookings where column == entity_id."""
    avg, count = (
        db.query(func.avg(Bookings.rating_value), func.count(Bookings.rating_value))
        .filter(column == entity_id, Bookings.rating_value.isnot(None))
        .one()
    )
    return round(float(avg or 0.0), 2), int(count or 0)


def add_rating(
    db: Session,
    invalidator: CacheInvalidator,
    booking_id: int,
    actor_id: int,
    value: int,
    comment: str | None = None,
) -> Bookings:
    """
    Rate a completed booking.

    Raises:
        ValidationFailed: value outside 1..5
        NotFound: booking missing
        Forbidden: actor is not the booking's customer
        InvalidState: booking not completed
        Conflict: booking already rated (including a concurrent rating)
    """
    if not 1 <= value <= 5:
        raise ValidationFailed("Rating must be between 1 and 5")

    booking = db.get(Bookings, booking_id)
    if not booking:
        raise NotFound("Booking not found")
    if booking.customer_id != actor_id:
        raise Forbidden("Only the customer can rate this booking")
    if booking.status != "completed":
        raise InvalidState("Only completed bookings can be rated")
    if booking.rating_value is not None:
        raise Conflict("Booking has already been rated")

    try:
        result = db.execute(
            update(Bookings)
            .where(
                Bookings.id == booking_id,
                Bookings.status == "completed",
                Bookings.rating_value.is_(None),
            )
            .values(rating_value=value, rating_comment=comment, rated_at=utcnow())
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise Conflict("Booking has already been rated")

        provider_avg, provider_count = _average(db, Bookings.provider_id, booking.provider_id)
        db.execute(
            update(Users)
            .where(Users.id == booking.provider_id)
            .values(rating_average=provider_avg, rating_count=provider_count)
        )

        service_avg, service_count = _average(db, Bookings.service_id, booking.service_id)
        db.execute(
            update(Services)
            .where(Services.id == booking.service_id)
            .values(rating_average=service_avg, rating_count=service_count)
        )

        db.commit()
    except DomainError:
        db.rollback()
        raise

    invalidator.services_changed(booking.service_id)

    booking = db.get(Bookings, booking_id, populate_existing=True)
    logger.info(
        f"Booking {booking_id} rated {value} "
        f"(provider {booking.provider_id} avg={provider_avg}, service {booking.service_id} avg={service_avg})"
    )
    return booking


# ──────────────────────────────────────────────────────────────────────────────
# Reviews (rated bookings)
# ──────────────────────────────────────────────────────────────────────────────

def review_to_dict(booking: Bookings) -> dict:
    return {
        "id": booking.id,
        "booking_id": booking.id,
        "service_id": booking.service_id,
        "service_name": booking.service.name if booking.service else None,
        "customer_id": booking.customer_id,
        "customer_name": booking.customer.name if booking.customer else None,
        "provider_id": booking.provider_id,
        "provider_name": booking.provider.name if booking.provider else None,
        "rating": booking.rating_value,
        "comment": booking.rating_comment,
        "created_at": booking.rated_at,
    }


def list_reviews(
    db: Session,
    service_id: int | None = None,
    provider_id: int | None = None,
    customer_id: int | None = None,
    page: int = 1,
    limit: int = 10,
) -> tuple[list[Bookings], int, float]:
    """
    Rated bookings matching the filters, newest rating first.

    Returns:
        (page items, total, average rating over every match)
    """
    query = db.query(Bookings).filter(Bookings.rating_value.isnot(None))
    if service_id is not None:
        query = query.filter(Bookings.service_id == service_id)
    if provider_id is not None:
        query = query.filter(Bookings.provider_id == provider_id)
    if customer_id is not None:
        query = query.filter(Bookings.customer_id == customer_id)

    total, average = query.with_entities(func.count(Bookings.id), func.avg(Bookings.rating_value)).one()
    items = (
        query.order_by(Bookings.rated_at.desc(), Bookings.id.desc())
        .offset((page - 1) * limit)
        .limit(limit)
        .all()
    )
    return items, int(total or 0), round(float(average or 0.0), 1)


def get_review(db: Session, booking_id: int) -> Bookings:
    booking = db.get(Bookings, booking_id)
    if not booking or booking.rating_value is None:
        raise NotFound("Review not found")
    return booking
