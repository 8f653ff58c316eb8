# salon_booking/routers/bookings.py
# DELETE = 405: bookings are never deleted, cancel instead

from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, status
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_locks, get_redis
from ..schemas.bookings import (
    BookingCancel,
    BookingCreate,
    BookingRead,
    BookingReject,
    BookingReschedule,
    RescheduleRequestCreate,
    RescheduleRequestRead,
)
from ..services.bookings.lifecycle import (
    cancel_booking,
    confirm_booking,
    get_booking,
    reject_booking,
    request_reschedule,
)
from ..services.bookings.locks import ProviderLocks
from ..services.bookings.reservations import AttendeeInput, create_booking, reschedule_booking

router = APIRouter(prefix="/bookings", tags=["bookings"])


@router.post("", response_model=BookingRead, status_code=status.HTTP_201_CREATED)
def create_booking_endpoint(
    data: BookingCreate,
    db: Session = Depends(get_db),
    locks: ProviderLocks = Depends(get_locks),
    redis: Optional[Redis] = Depends(get_redis),
):
    return create_booking(
        db,
        data.provider_id,
        data.event_type_id,
        data.start,
        AttendeeInput(**data.attendee.model_dump()),
        notes=data.notes,
        locks=locks,
        redis=redis,
        host_id=data.host_id,
    )


@router.get("/{uid}", response_model=BookingRead)
def get_booking_endpoint(uid: str, db: Session = Depends(get_db)):
    return get_booking(db, uid)


@router.post("/{uid}/reschedule", response_model=BookingRead)
def reschedule_booking_endpoint(
    uid: str,
    data: BookingReschedule,
    db: Session = Depends(get_db),
    locks: ProviderLocks = Depends(get_locks),
    redis: Optional[Redis] = Depends(get_redis),
):
    return reschedule_booking(db, uid, data.start, locks=locks, redis=redis, reason=data.reason)


@router.post("/{uid}/reschedule-request", response_model=RescheduleRequestRead)
def request_reschedule_endpoint(
    uid: str,
    data: Optional[RescheduleRequestCreate] = None,
    db: Session = Depends(get_db),
    redis: Optional[Redis] = Depends(get_redis),
):
    """Attendee asks for another time; the booking itself is unchanged."""
    message = data.message if data else None
    return request_reschedule(db, uid, message, redis=redis)


@router.post("/{uid}/confirm", response_model=BookingRead)
def confirm_booking_endpoint(
    uid: str,
    db: Session = Depends(get_db),
    locks: ProviderLocks = Depends(get_locks),
    redis: Optional[Redis] = Depends(get_redis),
):
    return confirm_booking(db, uid, locks=locks, redis=redis)


@router.post("/{uid}/reject", response_model=BookingRead)
def reject_booking_endpoint(
    uid: str,
    data: Optional[BookingReject] = None,
    db: Session = Depends(get_db),
    locks: ProviderLocks = Depends(get_locks),
    redis: Optional[Redis] = Depends(get_redis),
):
    reason = data.reason if data else None
    return reject_booking(db, uid, reason, locks=locks, redis=redis)


@router.post("/{uid}/cancel", response_model=BookingRead)
def cancel_booking_endpoint(
    uid: str,
    data: Optional[BookingCancel] = None,
    db: Session = Depends(get_db),
    locks: ProviderLocks = Depends(get_locks),
    redis: Optional[Redis] = Depends(get_redis),
):
    reason = data.reason if data else None
    return cancel_booking(db, uid, reason, locks=locks, redis=redis)


@router.delete("/{uid}")
def delete_not_allowed():
    raise HTTPException(
        status_code=status.HTTP_405_METHOD_NOT_ALLOWED,
        detail="Method not allowed",
    )
