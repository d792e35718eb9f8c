# marketplace/schemas/services.py

import json
from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator, model_validator

PriceType = Literal["fixed", "hourly", "negotiable"]

NOT_NULLABLE = frozenset(
    {"name", "category", "description", "price", "price_type", "duration_min", "is_active"}
)


class ServiceLocation(BaseModel):
    address: Optional[str] = Field(None, max_length=300)
    lat: Optional[float] = Field(None, ge=-90, le=90)
    lng: Optional[float] = Field(None, ge=-180, le=180)

    model_config = {"extra": "forbid"}


class ServiceCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    category: str = Field(..., min_length=1, max_length=100)
    description: str = Field(..., min_length=1, max_length=1000)
    price: float = Field(..., ge=0)
    price_type: PriceType = "hourly"
    duration_min: int = Field(60, ge=15, le=1440)
    services_offered: list[str] = []
    location: Optional[ServiceLocation] = None

    model_config = {"extra": "forbid"}


class ServiceUpdate(BaseModel):
    """
    Partial update, version 1.

    Closed schema: unknown top-level or nested keys are rejected. Only the
    fields present in the payload are applied (see merge_service_update).
    """
    schema_version: Literal[1] = 1
    name: Optional[str] = Field(None, min_length=1, max_length=100)
    category: Optional[str] = Field(None, min_length=1, max_length=100)
    description: Optional[str] = Field(None, min_length=1, max_length=1000)
    price: Optional[float] = Field(None, ge=0)
    price_type: Optional[PriceType] = None
    duration_min: Optional[int] = Field(None, ge=15, le=1440)
    services_offered: Optional[list[str]] = None
    is_active: Optional[bool] = None
    location: Optional[ServiceLocation] = None

    model_config = {"extra": "forbid"}

    @model_validator(mode="after")
    def _reject_nulls(self):
        # location and services_offered may be cleared with null; the rest may not
        nulls = sorted(
            name for name in self.model_fields_set
            if name in NOT_NULLABLE and getattr(self, name) is None
        )
        if nulls:
            raise ValueError(f"Fields cannot be null: {', '.join(nulls)}")
        return self


class ServiceRead(BaseModel):
    id: int
    provider_id: int
    provider_name: Optional[str] = None
    name: str
    category: str
    description: str
    price: float
    price_type: str
    duration_min: int
    services_offered: list[str] = []
    location: Optional[ServiceLocation] = None
    is_active: bool
    rating_average: float
    rating_count: int
    created_at: datetime
    updated_at: datetime

    @field_validator("services_offered", mode="before")
    @classmethod
    def _decode_offered(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else []
        return v


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class ServiceList(BaseModel):
    services: list[ServiceRead]
    pagination: Pagination
