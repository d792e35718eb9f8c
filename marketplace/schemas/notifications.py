# marketplace/schemas/notifications.py

import json
from datetime import datetime
from typing import Optional

from pydantic import BaseModel, field_validator

from .services import Pagination


class NotificationRead(BaseModel):
    id: int
    title: str
    message: str
    type: str
    is_read: bool
    data: dict = {}
    read_at: Optional[datetime] = None
    created_at: datetime

    model_config = {"from_attributes": True}

    @field_validator("data", mode="before")
    @classmethod
    def _decode_data(cls, v):
        if isinstance(v, str):
            return json.loads(v) if v else {}
        return v


class NotificationList(BaseModel):
    notifications: list[NotificationRead]
    unread_count: int
    pagination: Pagination


class NotificationsMarkedRead(BaseModel):
    success: bool
    updated: int
