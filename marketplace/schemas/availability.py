# marketplace/schemas/availability.py

from datetime import date
from typing import Optional

from pydantic import BaseModel, Field


class SlotRead(BaseModel):
    start_time: str
    end_time: str
    is_booked: bool
    booking_id: Optional[int] = None

    model_config = {"from_attributes": True}


class AvailabilityDayRead(BaseModel):
    id: int
    provider_id: int
    date: date
    is_available: bool
    slots: list[SlotRead]

    model_config = {"from_attributes": True}


class SlotInput(BaseModel):
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    end_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")


class AvailabilityUpdate(BaseModel):
    """Request body for PUT /availability"""
    date: date
    slots: Optional[list[SlotInput]] = None
    is_available: Optional[bool] = None


class SlotBookingRequest(BaseModel):
    """Request body for POST /availability/book-slot and /unbook-slot"""
    date: date
    start_time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    booking_id: int
