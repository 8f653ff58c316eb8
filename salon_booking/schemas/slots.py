# salon_booking/schemas/slots.py
"""
Pydantic schemas for slots API.
"""

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel


class SlotsResponse(BaseModel):
    """Offerable slot starts for an event type."""
    provider_id: int
    event_type_id: int
    start: datetime
    end: datetime
    slots: list[datetime]

    model_config = {"from_attributes": True}


class CacheInvalidateRequest(BaseModel):
    """Drop cached working hours of a schedule."""
    schedule_id: int
    date_start: Optional[date] = None  # None = all cached dates
    date_end: Optional[date] = None


class CacheInvalidateResponse(BaseModel):
    schedule_id: int
    deleted_keys: int
