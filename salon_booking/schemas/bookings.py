# salon_booking/schemas/bookings.py

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field, field_validator

from ..services.slots.timeutil import ensure_utc


class AttendeeCreate(BaseModel):
    name: str = Field(min_length=1)
    email: str = Field(pattern=r"^[^@\s]+@[^@\s]+$")
    phone: Optional[str] = None
    time_zone: str = "Europe/Belgrade"
    locale: str = "sr"


class AttendeeRead(BaseModel):
    id: int
    name: str
    email: str
    phone: Optional[str] = None
    time_zone: str
    locale: str

    model_config = {"from_attributes": True}


class BookingCreate(BaseModel):
    provider_id: int
    event_type_id: int
    start: datetime
    attendee: AttendeeCreate
    notes: Optional[str] = None
    host_id: Optional[int] = None  # staff member, None = provider


class BookingReschedule(BaseModel):
    start: datetime
    reason: Optional[str] = None


class BookingCancel(BaseModel):
    reason: Optional[str] = None


class BookingReject(BaseModel):
    reason: Optional[str] = None


class RescheduleRequestCreate(BaseModel):
    message: Optional[str] = None


class RescheduleRequestRead(BaseModel):
    booking_uid: str
    reschedule_url: str
    message: Optional[str] = None

    model_config = {"from_attributes": True}


class BookingRead(BaseModel):
    uid: str

    provider_id: int
    event_type_id: int
    host_id: Optional[int] = None
    title: str

    start: datetime
    end: datetime

    status: str
    notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    rejection_reason: Optional[str] = None
    rescheduled: bool
    reschedule_reason: Optional[str] = None
    previous_start: Optional[datetime] = None

    attendees: list[AttendeeRead] = []

    model_config = {"from_attributes": True}

    # stored as naive UTC
    @field_validator("start", "end", "previous_start")
    @classmethod
    def as_utc(cls, value: Optional[datetime]) -> Optional[datetime]:
        return ensure_utc(value) if value is not None else None
