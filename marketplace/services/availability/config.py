# marketplace/services/availability/config.py
"""
Default slot grid for lazily created availability days.
"""

from dataclasses import dataclass


def time_str_to_minutes(value: str) -> int:
    """Convert "HH:MM" to minutes since midnight."""
    hour, minute = value.split(":")
    return int(hour) * 60 + int(minute)


def minutes_to_time_str(total_minutes: int) -> str:
    """Convert minutes since midnight to "HH:MM"."""
    return f"{total_minutes // 60:02d}:{total_minutes % 60:02d}"


@dataclass(frozen=True)
class SlotGridConfig:
    """
    Configuration of the default day grid.

    Attributes:
        open_hour: First slot start (local wall clock)
        close_hour: Last slot end
        slot_minutes: Slot width in minutes (15/30/60)
    """
    open_hour: int = 8
    close_hour: int = 20
    slot_minutes: int = 60

    def __post_init__(self):
        """Validate configuration."""
        if self.slot_minutes not in (15, 30, 60):
            raise ValueError(f"slot_minutes must be 15, 30, or 60, got {self.slot_minutes}")
        if not 0 <= self.open_hour < self.close_hour <= 24:
            raise ValueError(
                f"open_hour/close_hour must satisfy 0 <= open < close <= 24, "
                f"got {self.open_hour}/{self.close_hour}"
            )

    @classmethod
    def from_settings(cls, settings) -> "SlotGridConfig":
        return cls(
            open_hour=settings.day_open_hour,
            close_hour=settings.day_close_hour,
            slot_minutes=settings.slot_minutes,
        )

    @property
    def slots_per_day(self) -> int:
        """
        Number of slots in the default grid.

        - 08:00–20:00 hourly → 12 slots
        """
        return (self.close_hour - self.open_hour) * 60 // self.slot_minutes

    def default_slots(self) -> list[tuple[str, str]]:
        """(start_time, end_time) pairs of the default grid, ascending."""
        start = self.open_hour * 60
        return [
            (
                minutes_to_time_str(start + i * self.slot_minutes),
                minutes_to_time_str(start + (i + 1) * self.slot_minutes),
            )
            for i in range(self.slots_per_day)
        ]
