# marketplace/services/availability/ledger.py
"""
Availability ledger: per-provider, per-day bookable slots.

Storage:
  availability_days  - unique (provider_id, date)
  availability_slots - unique (day_id, start_time)

Reservation is a conditional UPDATE (... WHERE is_booked = false), so of two
concurrent reservations for the same provider/date/start_time exactly one
changes a row; the other sees rowcount 0 and fails with SlotAlreadyBooked.
No in-process lock is held across I/O.

Transaction handling: lazily created days are committed right away (they
are idempotent derived defaults). Every other mutation only flushes; the
caller owns the commit, so a reservation can share a transaction with the
booking that owns it.
"""

import logging
import re
from datetime import date, timedelta
from typing import Iterable

from sqlalchemy import update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ...errors import Conflict, SlotAlreadyBooked, SlotMismatch, SlotNotFound, ValidationFailed
from ...models.entities import AvailabilityDays, AvailabilitySlots
from .config import SlotGridConfig, time_str_to_minutes

logger = logging.getLogger(__name__)

_TIME_RE = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$|^24:00$")


def validate_time(value: str) -> str:
    if not isinstance(value, str) or not _TIME_RE.match(value):
        raise ValidationFailed(f"Time must be in HH:MM format, got {value!r}")
    return value


def date_range(start: date, end: date) -> list[date]:
    """Inclusive list of dates [start, end]."""
    days = []
    current = start
    while current <= end:
        days.append(current)
        current += timedelta(days=1)
    return days


class AvailabilityLedger:
    def __init__(self, db: Session, config: SlotGridConfig | None = None):
        self.db = db
        self.config = config or SlotGridConfig()

    # ── Read ─────────────────────────────────────────────────────────────

    def find_day(self, provider_id: int, day: date) -> AvailabilityDays | None:
        return (
            self.db.query(AvailabilityDays)
            .filter(
                AvailabilityDays.provider_id == provider_id,
                AvailabilityDays.date == day.isoformat(),
            )
            .first()
        )

    def find_slot(self, provider_id: int, day: date, start_time: str) -> AvailabilitySlots | None:
        return (
            self.db.query(AvailabilitySlots)
            .join(AvailabilityDays, AvailabilitySlots.day_id == AvailabilityDays.id)
            .filter(
                AvailabilityDays.provider_id == provider_id,
                AvailabilityDays.date == day.isoformat(),
                AvailabilitySlots.start_time == start_time,
            )
            .execution_options(populate_existing=True)
            .first()
        )

    def get_or_create_day(self, provider_id: int, day: date) -> AvailabilityDays:
        """
        Existing day, or a new one with the default grid (all unbooked).

        Idempotent per (provider, date): a creator that loses the unique-index
        race re-reads the winner's row.
        """
        existing = self.find_day(provider_id, day)
        if existing:
            return existing

        record = AvailabilityDays(
            provider_id=provider_id,
            date=day.isoformat(),
            is_available=True,
            slots=[
                AvailabilitySlots(start_time=start, end_time=end, is_booked=False)
                for start, end in self.config.default_slots()
            ],
        )
        self.db.add(record)
        try:
            self.db.commit()
        except IntegrityError:
            self.db.rollback()
            existing = self.find_day(provider_id, day)
            if existing is None:
                raise
            return existing

        logger.info(f"Availability day created: provider={provider_id} date={day.isoformat()}")
        return record

    def get_range(self, provider_id: int, start: date, end: date) -> list[AvailabilityDays]:
        """Days for every date in [start, end], ascending; missing ones are created."""
        if end < start:
            raise ValidationFailed("end date must not be before start date")

        existing = {
            d.date: d
            for d in self.db.query(AvailabilityDays)
            .filter(
                AvailabilityDays.provider_id == provider_id,
                AvailabilityDays.date >= start.isoformat(),
                AvailabilityDays.date <= end.isoformat(),
            )
            .all()
        }

        days = []
        for dt in date_range(start, end):
            record = existing.get(dt.isoformat())
            if record is None:
                record = self.get_or_create_day(provider_id, dt)
            days.append(record)

        days.sort(key=lambda d: d.date)
        return days

    # ── Write ────────────────────────────────────────────────────────────

    def set_day(
        self,
        provider_id: int,
        day: date,
        slots: Iterable[tuple[str, str]] | None,
        is_available: bool | None = None,
    ) -> AvailabilityDays:
        """
        Replace a day's slot list and/or availability flag.

        Booked slots must survive unchanged (same start and end); dropping or
        reshaping one raises Conflict. Only the owning provider reaches this
        (provider_id is always the authenticated user).
        """
        record = self.get_or_create_day(provider_id, day)

        if slots is not None:
            wanted = self._validate_slots(slots)
            current = {s.start_time: s for s in record.slots}

            for start, slot in current.items():
                if slot.is_booked and wanted.get(start) != slot.end_time:
                    raise Conflict(f"Slot {start} is booked and cannot be removed or changed")

            for start, slot in current.items():
                if start not in wanted:
                    record.slots.remove(slot)

            for start, end in wanted.items():
                slot = current.get(start)
                if slot is None:
                    record.slots.append(
                        AvailabilitySlots(start_time=start, end_time=end, is_booked=False)
                    )
                elif not slot.is_booked:
                    slot.end_time = end

        if is_available is not None:
            record.is_available = is_available

        self.db.flush()
        return record

    def reserve_slot(
        self,
        provider_id: int,
        day: date,
        start_time: str,
        booking_id: int,
    ) -> AvailabilitySlots:
        """
        Mark the slot booked by booking_id.

        Raises:
            SlotNotFound: no day/slot with that start time
            Conflict: the day is marked unavailable
            SlotAlreadyBooked: another booking holds the slot

        Re-reserving a slot already held by the same booking succeeds.
        """
        record = self.find_day(provider_id, day)
        if record is None:
            raise SlotNotFound(f"Time slot {start_time} not found on {day.isoformat()}")
        if not record.is_available:
            raise Conflict("Provider is not available on this date")

        result = self.db.execute(
            update(AvailabilitySlots)
            .where(
                AvailabilitySlots.day_id == record.id,
                AvailabilitySlots.start_time == start_time,
                AvailabilitySlots.is_booked.is_(False),
            )
            .values(is_booked=True, booking_id=booking_id)
            .execution_options(synchronize_session=False)
        )

        slot = self.find_slot(provider_id, day, start_time)
        if result.rowcount == 1:
            logger.info(
                f"Slot reserved: provider={provider_id} date={day.isoformat()} "
                f"time={start_time} booking={booking_id}"
            )
            return slot

        if slot is None:
            raise SlotNotFound(f"Time slot {start_time} not found on {day.isoformat()}")
        if slot.booking_id == booking_id:
            return slot
        raise SlotAlreadyBooked(f"Time slot {start_time} is already booked")

    def release_slot(
        self,
        provider_id: int,
        day: date,
        start_time: str,
        booking_id: int,
    ) -> AvailabilitySlots:
        """
        Clear the slot if (and only if) booking_id holds it.

        Raises:
            SlotNotFound: no such slot
            SlotMismatch: slot is free or held by another booking
        """
        slot = self.find_slot(provider_id, day, start_time)
        if slot is None:
            raise SlotNotFound(f"Time slot {start_time} not found on {day.isoformat()}")

        result = self.db.execute(
            update(AvailabilitySlots)
            .where(
                AvailabilitySlots.id == slot.id,
                AvailabilitySlots.booking_id == booking_id,
            )
            .values(is_booked=False, booking_id=None)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise SlotMismatch("Time slot not found or does not match booking")

        logger.info(
            f"Slot released: provider={provider_id} date={day.isoformat()} "
            f"time={start_time} booking={booking_id}"
        )
        return self.find_slot(provider_id, day, start_time)

    # ── Helpers ──────────────────────────────────────────────────────────

    @staticmethod
    def _validate_slots(slots: Iterable[tuple[str, str]]) -> dict[str, str]:
        """start_time → end_time; rejects bad formats, empty ranges, duplicates."""
        wanted: dict[str, str] = {}
        for start, end in slots:
            validate_time(start)
            validate_time(end)
            if time_str_to_minutes(end) <= time_str_to_minutes(start):
                raise ValidationFailed(f"Slot {start}-{end} must end after it starts")
            if start in wanted:
                raise ValidationFailed(f"Duplicate slot start time {start}")
            wanted[start] = end
        return wanted
