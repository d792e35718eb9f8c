"""
Booking concurrency guard.

Creation, status transitions and rescheduling of bookings. The availability
ledger is the single authority on whether a time is taken: a booking's time
must be a slot start and the slot is reserved in the same transaction that
inserts the booking.

Double booking is prevented at the storage level:
- bookings.active_slot_key ("<provider>:<date>:<time>") is UNIQUE while the
  booking is non-terminal and NULL afterwards
- slot reservation is a conditional UPDATE in the ledger

Status changes are conditional on the status that was read, so two
concurrent transitions of one booking cannot both apply.

State machine (role that may take the edge):

    pending     → confirmed   provider
    pending     → rejected    provider
    pending     → cancelled   customer
    confirmed   → in_progress provider
    confirmed   → completed   provider
    confirmed   → cancelled   customer
    confirmed   → rescheduled customer   (reschedule() only)
    in_progress → completed   provider
    rescheduled → confirmed   provider
    rescheduled → rejected    provider
    rescheduled → cancelled   customer
"""

import logging
from datetime import date

from sqlalchemy import func, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ..clock import utcnow
from ..errors import (
    Conflict,
    DomainError,
    Forbidden,
    InvalidState,
    InvalidStatus,
    NotFound,
    SlotConflict,
    SlotMismatch,
    SlotNotFound,
    ValidationFailed,
)
from ..models.entities import AvailabilitySlots, Bookings, Services
from .availability import AvailabilityLedger, SlotGridConfig, validate_time
from .events import NotificationDispatcher
from .notifications import NotificationInbox

logger = logging.getLogger(__name__)

ACTIVE_STATUSES = ("pending", "confirmed", "in_progress", "rescheduled")
TERMINAL_STATUSES = ("completed", "cancelled", "rejected")
STATUSES = ACTIVE_STATUSES + TERMINAL_STATUSES

# Entering these gives the slot back to the ledger
RELEASING_STATUSES = ("cancelled", "rejected")

TRANSITIONS: dict[tuple[str, str], str] = {
    ("pending", "confirmed"): "provider",
    ("pending", "rejected"): "provider",
    ("pending", "cancelled"): "customer",
    ("confirmed", "in_progress"): "provider",
    ("confirmed", "completed"): "provider",
    ("confirmed", "cancelled"): "customer",
    ("in_progress", "completed"): "provider",
    ("rescheduled", "confirmed"): "provider",
    ("rescheduled", "rejected"): "provider",
    ("rescheduled", "cancelled"): "customer",
}

# status → (recipient role, title, message template)
STATUS_NOTIFICATIONS: dict[str, tuple[str, str, str]] = {
    "confirmed": ("customer", "Booking Confirmed", "Your booking for {service} has been confirmed."),
    "rejected": ("customer", "Booking Rejected", "Your booking for {service} has been rejected."),
    "in_progress": ("customer", "Service In Progress", "Your {service} service has started."),
    "completed": ("customer", "Service Completed", "Your {service} service has been completed."),
    "cancelled": ("provider", "Booking Cancelled", "The booking for {service} has been cancelled."),
}


def slot_key(provider_id: int, day: date | str, time: str) -> str:
    day_str = day.isoformat() if isinstance(day, date) else day
    return f"{provider_id}:{day_str}:{time}"


def role_in_booking(booking: Bookings, user_id: int) -> str | None:
    if booking.customer_id == user_id:
        return "customer"
    if booking.provider_id == user_id:
        return "provider"
    return None


class BookingGuard:
    def __init__(
        self,
        db: Session,
        notifier: NotificationDispatcher | NotificationInbox,
        grid: SlotGridConfig | None = None,
        currency: str = "NGN",
    ):
        self.db = db
        self.notifier = notifier
        self.currency = currency
        self.ledger = AvailabilityLedger(db, grid)

    # ── Read ─────────────────────────────────────────────────────────────

    def _load(self, booking_id: int) -> Bookings:
        booking = self.db.get(Bookings, booking_id, populate_existing=True)
        if not booking:
            raise NotFound("Booking not found")
        return booking

    def get_booking(self, booking_id: int, actor_id: int) -> Bookings:
        booking = self._load(booking_id)
        if role_in_booking(booking, actor_id) is None:
            raise Forbidden("Not authorized to view this booking")
        return booking

    def list_user_bookings(
        self,
        user_id: int,
        role: str = "customer",
        status: str | None = None,
        page: int = 1,
        limit: int = 10,
    ) -> tuple[list[Bookings], int]:
        if role not in ("customer", "provider"):
            raise ValidationFailed("type must be 'customer' or 'provider'")
        if status is not None and status not in STATUSES:
            raise InvalidStatus(f"Unknown booking status: {status}")

        column = Bookings.customer_id if role == "customer" else Bookings.provider_id
        query = self.db.query(Bookings).filter(column == user_id)
        if status:
            query = query.filter(Bookings.status == status)

        total = query.with_entities(func.count(Bookings.id)).scalar()
        items = (
            query.order_by(Bookings.created_at.desc(), Bookings.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
            .all()
        )
        return items, total

    def find_conflict(
        self,
        provider_id: int,
        day: date,
        time: str,
        exclude_booking_id: int | None = None,
    ) -> Bookings | None:
        """Non-terminal booking occupying provider/date/time, if any."""
        query = self.db.query(Bookings).filter(
            Bookings.active_slot_key == slot_key(provider_id, day, time)
        )
        if exclude_booking_id is not None:
            query = query.filter(Bookings.id != exclude_booking_id)
        return query.first()

    # ── Write ────────────────────────────────────────────────────────────

    def create_booking(
        self,
        customer_id: int,
        service_id: int,
        day: date,
        time: str,
        notes: str | None = None,
        address: dict | None = None,
    ) -> Bookings:
        """
        Create a pending booking and reserve its slot.

        Raises:
            NotFound: service missing or inactive
            ValidationFailed: own service, malformed time
            SlotNotFound: time is not a slot start on that day
            SlotConflict: provider already booked at that time
        """
        validate_time(time)
        service = self.db.get(Services, service_id)
        if not service or not service.is_active:
            raise NotFound("Service not found")
        if service.provider_id == customer_id:
            raise ValidationFailed("You cannot book your own service")

        provider_id = service.provider_id
        self.ledger.get_or_create_day(provider_id, day)

        if self.find_conflict(provider_id, day, time):
            raise SlotConflict()

        address = address or {}
        booking = Bookings(
            customer_id=customer_id,
            provider_id=provider_id,
            service_id=service.id,
            date=day.isoformat(),
            time=time,
            duration_minutes=service.duration_min,
            status="pending",
            total_amount=service.price,
            currency=self.currency,
            payment_status="pending",
            active_slot_key=slot_key(provider_id, day, time),
            notes=notes,
            address_street=address.get("street"),
            address_city=address.get("city"),
            address_state=address.get("state"),
            address_zip_code=address.get("zip_code"),
            address_country=address.get("country"),
        )

        try:
            self.db.add(booking)
            self.db.flush()
            self.ledger.reserve_slot(provider_id, day, time, booking.id)
            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise SlotConflict() from e
        except Conflict as e:
            self.db.rollback()
            raise SlotConflict() from e
        except DomainError:
            self.db.rollback()
            raise

        self.db.refresh(booking)
        logger.info(
            f"Booking created: id={booking.id} customer={customer_id} "
            f"provider={provider_id} {booking.date} {booking.time}"
        )

        customer_name = booking.customer.name if booking.customer else "A customer"
        self.notifier.notify(
            provider_id,
            "New Booking Request",
            f'{customer_name} wants to book your service "{service.name}" '
            f"on {booking.date} at {booking.time}",
            data={"booking_id": booking.id, "service_id": service.id},
        )
        return booking

    def transition(self, booking_id: int, new_status: str, actor_id: int) -> Bookings:
        """
        Move a booking along the state machine.

        Check order: unknown status (InvalidStatus), non-participant
        (Forbidden), undefined edge (InvalidState), wrong role (Forbidden).
        From a terminal status every target is InvalidState.
        """
        if new_status not in STATUSES:
            raise InvalidStatus(f"Invalid booking status: {new_status}")

        booking = self._load(booking_id)
        role = role_in_booking(booking, actor_id)
        if role is None:
            raise Forbidden("Not authorized to update this booking")

        current = booking.status
        required_role = TRANSITIONS.get((current, new_status))
        if required_role is None:
            if current == "confirmed" and new_status == "rescheduled":
                raise InvalidState("Rescheduling requires a new date and time")
            raise InvalidState(f"Cannot change booking status from {current} to {new_status}")
        if role != required_role:
            raise Forbidden(f"Only the {required_role} can move a booking from {current} to {new_status}")

        now = utcnow()
        values = {"status": new_status, "updated_at": now}
        if new_status == "completed":
            values["completed_at"] = now
        if new_status in TERMINAL_STATUSES:
            values["active_slot_key"] = None

        try:
            result = self.db.execute(
                update(Bookings)
                .where(Bookings.id == booking.id, Bookings.status == current)
                .values(**values)
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise Conflict("Booking was modified concurrently, please retry")

            if new_status in RELEASING_STATUSES:
                self._release(booking.provider_id, booking.date, booking.time, booking.id)

            self.db.commit()
        except DomainError:
            self.db.rollback()
            raise

        booking = self._load(booking.id)
        logger.info(f"Booking {booking.id}: {current} → {new_status} by user {actor_id}")
        self._notify_status(booking)
        return booking

    def reschedule(self, booking_id: int, new_date: date, new_time: str, actor_id: int) -> Bookings:
        """
        Move a confirmed booking to another slot; status becomes rescheduled.

        The provider then confirms (or rejects) the new time.
        """
        booking = self._load(booking_id)
        role = role_in_booking(booking, actor_id)
        if role is None:
            raise Forbidden("Not authorized to update this booking")
        if booking.status != "confirmed":
            raise InvalidState(f"Only confirmed bookings can be rescheduled (current: {booking.status})")
        if role != "customer":
            raise Forbidden("Only the customer can reschedule a booking")
        validate_time(new_time)

        provider_id = booking.provider_id
        old_date, old_time = booking.date, booking.time
        moving = (old_date, old_time) != (new_date.isoformat(), new_time)

        self.ledger.get_or_create_day(provider_id, new_date)
        if self.find_conflict(provider_id, new_date, new_time, exclude_booking_id=booking.id):
            raise SlotConflict()

        try:
            result = self.db.execute(
                update(Bookings)
                .where(Bookings.id == booking.id, Bookings.status == "confirmed")
                .values(
                    date=new_date.isoformat(),
                    time=new_time,
                    status="rescheduled",
                    active_slot_key=slot_key(provider_id, new_date, new_time),
                    updated_at=utcnow(),
                )
                .execution_options(synchronize_session=False)
            )
            if result.rowcount != 1:
                raise Conflict("Booking was modified concurrently, please retry")

            if moving:
                try:
                    self.ledger.reserve_slot(provider_id, new_date, new_time, booking.id)
                except Conflict as e:
                    raise SlotConflict() from e
                self._release(provider_id, old_date, old_time, booking.id)

            self.db.commit()
        except IntegrityError as e:
            self.db.rollback()
            raise SlotConflict() from e
        except DomainError:
            self.db.rollback()
            raise

        booking = self._load(booking.id)
        logger.info(
            f"Booking {booking.id} rescheduled {old_date} {old_time} → "
            f"{booking.date} {booking.time} by user {actor_id}"
        )

        customer_name = booking.customer.name if booking.customer else "The customer"
        service_name = booking.service.name if booking.service else "your service"
        self.notifier.notify(
            provider_id,
            "Reschedule Request",
            f"{customer_name} has requested to reschedule your booking for "
            f"{service_name} to {booking.date} at {booking.time}",
            data={"booking_id": booking.id, "service_id": booking.service_id},
        )
        return booking

    # ── Manual calendar edits ────────────────────────────────────────────

    def attach_slot(self, booking_id: int, provider_id: int, day: date, start_time: str) -> AvailabilitySlots:
        """
        Provider re-attaches a booking to its own slot.

        Raises:
            Forbidden: booking belongs to another provider
            InvalidState: booking is completed, cancelled or rejected
            ValidationFailed: day/start_time differ from the booking's
        """
        validate_time(start_time)
        booking = self._load(booking_id)
        if booking.provider_id != provider_id:
            raise Forbidden("Booking does not belong to this provider")
        if booking.status not in ACTIVE_STATUSES:
            raise InvalidState(f"Cannot attach a slot to a {booking.status} booking")
        if (booking.date, booking.time) != (day.isoformat(), start_time):
            raise ValidationFailed(
                f"Booking {booking.id} is for {booking.date} {booking.time}, not {day.isoformat()} {start_time}"
            )

        try:
            slot = self.ledger.reserve_slot(provider_id, day, start_time, booking.id)
            self.db.commit()
        except DomainError:
            self.db.rollback()
            raise

        self.db.refresh(slot)
        return slot

    def detach_slot(self, booking_id: int, provider_id: int, day: date, start_time: str) -> AvailabilitySlots:
        booking = self._load(booking_id)
        if booking.provider_id != provider_id:
            raise Forbidden("Booking does not belong to this provider")

        try:
            slot = self.ledger.release_slot(provider_id, day, start_time, booking.id)
            self.db.commit()
        except DomainError:
            self.db.rollback()
            raise

        self.db.refresh(slot)
        return slot

    # ── Helpers ──────────────────────────────────────────────────────────

    def _release(self, provider_id: int, day: str, time: str, booking_id: int) -> None:
        # A missing or foreign slot is left for reconcile_slots
        try:
            self.ledger.release_slot(provider_id, date.fromisoformat(day), time, booking_id)
        except (SlotNotFound, SlotMismatch) as e:
            logger.warning(f"Slot release skipped for booking {booking_id}: {e.message}")

    def _notify_status(self, booking: Bookings) -> None:
        entry = STATUS_NOTIFICATIONS.get(booking.status)
        if entry is None:
            return
        recipient_role, title, template = entry
        recipient_id = booking.customer_id if recipient_role == "customer" else booking.provider_id
        service_name = booking.service.name if booking.service else "your service"
        self.notifier.notify(
            recipient_id,
            title,
            template.format(service=service_name),
            data={"booking_id": booking.id, "service_id": booking.service_id},
        )
