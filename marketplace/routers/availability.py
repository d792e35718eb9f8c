# marketplace/routers/availability.py
"""
Availability API.

GET  /availability              - one provider day (created on first read)
GET  /availability/range        - every day in [start_date, end_date]
PUT  /availability              - provider edits own day
POST /availability/book-slot    - provider attaches a slot to a booking
POST /availability/unbook-slot  - provider detaches it
"""

from datetime import date, timedelta

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from ..config import Settings
from ..database import get_db
from ..dependencies import get_booking_guard, get_current_user, get_ledger, get_settings
from ..errors import Forbidden, NotFound, ValidationFailed
from ..models.entities import Users
from ..schemas.availability import (
    AvailabilityDayRead,
    AvailabilityUpdate,
    SlotBookingRequest,
    SlotRead,
)
from ..services.availability import AvailabilityLedger
from ..services.bookings import BookingGuard

router = APIRouter(prefix="/availability", tags=["availability"])


# ──────────────────────────────────────────────────────────────────────────────
# Helpers
# ──────────────────────────────────────────────────────────────────────────────

def _require_provider(db: Session, provider_id: int) -> Users:
    provider = db.get(Users, provider_id)
    if not provider or provider.role != "provider":
        raise NotFound("Provider not found")
    return provider


def _require_provider_role(user: Users) -> None:
    if user.role != "provider":
        raise Forbidden("Only providers can manage availability")


# ──────────────────────────────────────────────────────────────────────────────
# Endpoints
# ──────────────────────────────────────────────────────────────────────────────

@router.get("", response_model=AvailabilityDayRead)
def get_availability(
    provider_id: int,
    date: date,
    ledger: AvailabilityLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    _require_provider(db, provider_id)
    day = ledger.get_or_create_day(provider_id, date)
    return AvailabilityDayRead.model_validate(day)


@router.get("/range", response_model=list[AvailabilityDayRead])
def get_availability_range(
    provider_id: int,
    start_date: date | None = None,
    end_date: date | None = None,
    ledger: AvailabilityLedger = Depends(get_ledger),
    settings: Settings = Depends(get_settings),
    db: Session = Depends(get_db),
):
    """Defaults to today + availability_range_days."""
    _require_provider(db, provider_id)
    if start_date is None:
        start_date = date.today()
    if end_date is None:
        end_date = start_date + timedelta(days=settings.availability_range_days)
    if (end_date - start_date).days > 366:
        raise ValidationFailed("Range cannot exceed one year")

    days = ledger.get_range(provider_id, start_date, end_date)
    return [AvailabilityDayRead.model_validate(d) for d in days]


@router.put("", response_model=AvailabilityDayRead)
def update_availability(
    data: AvailabilityUpdate,
    user: Users = Depends(get_current_user),
    ledger: AvailabilityLedger = Depends(get_ledger),
    db: Session = Depends(get_db),
):
    _require_provider_role(user)
    slots = None
    if data.slots is not None:
        slots = [(s.start_time, s.end_time) for s in data.slots]

    try:
        day = ledger.set_day(user.id, data.date, slots, data.is_available)
        db.commit()
    except Exception:
        db.rollback()
        raise

    db.refresh(day)
    return AvailabilityDayRead.model_validate(day)


@router.post("/book-slot", response_model=SlotRead)
def book_slot(
    data: SlotBookingRequest,
    user: Users = Depends(get_current_user),
    guard: BookingGuard = Depends(get_booking_guard),
):
    """The booking must be active and for exactly this date and start time."""
    _require_provider_role(user)
    slot = guard.attach_slot(data.booking_id, user.id, data.date, data.start_time)
    return SlotRead.model_validate(slot)


@router.post("/unbook-slot", response_model=SlotRead)
def unbook_slot(
    data: SlotBookingRequest,
    user: Users = Depends(get_current_user),
    guard: BookingGuard = Depends(get_booking_guard),
):
    _require_provider_role(user)
    slot = guard.detach_slot(data.booking_id, user.id, data.date, data.start_time)
    return SlotRead.model_validate(slot)
