# marketplace/schemas/bookings.py

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from .services import Pagination


class BookingAddress(BaseModel):
    street: Optional[str] = None
    city: Optional[str] = None
    state: Optional[str] = None
    zip_code: Optional[str] = None
    country: Optional[str] = None

    model_config = {"extra": "forbid"}


class BookingCreate(BaseModel):
    service_id: int
    date: date
    time: str = Field(..., pattern=r"^\d{2}:\d{2}$")
    notes: Optional[str] = Field(None, max_length=500)
    address: Optional[BookingAddress] = None


class BookingStatusUpdate(BaseModel):
    """
    Request body for PUT /bookings/{id}/status.

    new_date + new_time together turn the request into a reschedule.
    """
    status: str
    new_date: Optional[date] = None
    new_time: Optional[str] = Field(None, pattern=r"^\d{2}:\d{2}$")


class BookingRatingCreate(BaseModel):
    rating: int = Field(..., ge=1, le=5)
    comment: Optional[str] = Field(None, max_length=500)


class BookingRead(BaseModel):
    id: int
    customer_id: int
    provider_id: int
    service_id: int

    date: date
    time: str
    duration_minutes: int

    status: str
    total_amount: float
    currency: str
    payment_status: str

    notes: Optional[str] = None
    address_street: Optional[str] = None
    address_city: Optional[str] = None
    address_state: Optional[str] = None
    address_zip_code: Optional[str] = None
    address_country: Optional[str] = None

    completed_at: Optional[datetime] = None
    rating_value: Optional[int] = None
    rating_comment: Optional[str] = None
    rated_at: Optional[datetime] = None

    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class BookingList(BaseModel):
    bookings: list[BookingRead]
    pagination: Pagination
