# marketplace/schemas/reviews.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from .services import Pagination


class ReviewRead(BaseModel):
    """A rated booking. id is the booking id."""
    id: int
    booking_id: int
    service_id: int
    service_name: Optional[str] = None
    customer_id: int
    customer_name: Optional[str] = None
    provider_id: int
    provider_name: Optional[str] = None
    rating: int
    comment: Optional[str] = None
    created_at: datetime


class ReviewList(BaseModel):
    reviews: list[ReviewRead]
    average_rating: float
    pagination: Pagination
