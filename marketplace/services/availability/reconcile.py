# marketplace/services/availability/reconcile.py
"""
Reconciliation sweep for the availability ledger.

A crash between a booking's status change and its slot release can leave a
slot booked with no active booking behind it. The sweep restores:

  is_booked = true  ⇒  booking exists and is not cancelled/rejected
  is_booked = false ⇒  booking_id is NULL
"""

import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from ...models.entities import AvailabilitySlots, Bookings

logger = logging.getLogger(__name__)

RELEASING_STATUSES = ("cancelled", "rejected")


def reconcile_slots(db: Session) -> int:
    """
    Release every slot whose booking is missing, cancelled or rejected.

    Returns:
        Number of repaired slots. Commits when anything changed.
    """
    orphaned = (
        db.query(AvailabilitySlots)
        .outerjoin(Bookings, AvailabilitySlots.booking_id == Bookings.id)
        .filter(AvailabilitySlots.is_booked.is_(True))
        .filter(or_(Bookings.id.is_(None), Bookings.status.in_(RELEASING_STATUSES)))
        .all()
    )
    for slot in orphaned:
        logger.warning(
            f"Releasing stale slot id={slot.id} start={slot.start_time} booking={slot.booking_id}"
        )
        slot.is_booked = False
        slot.booking_id = None

    dangling = (
        db.query(AvailabilitySlots)
        .filter(AvailabilitySlots.is_booked.is_(False))
        .filter(AvailabilitySlots.booking_id.isnot(None))
        .all()
    )
    for slot in dangling:
        slot.booking_id = None

    repaired = len(orphaned) + len(dangling)
    if repaired:
        db.commit()
        logger.info(f"Slot reconciliation repaired {repaired} slots")
    return repaired
