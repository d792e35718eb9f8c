# marketplace/services/availability/__init__.py
"""
Availability ledger.

config    - default slot grid (SlotGridConfig)
ledger    - days, slots, reservation and release
reconcile - sweep for slots left booked by dead bookings
"""

from .config import SlotGridConfig
from .ledger import AvailabilityLedger, validate_time
from .reconcile import reconcile_slots

__all__ = [
    "SlotGridConfig",
    "AvailabilityLedger",
    "validate_time",
    "reconcile_slots",
]
