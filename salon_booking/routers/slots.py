# salon_booking/routers/slots.py
"""
Slots API endpoints.

GET  /providers/{provider_id}/slots - Offerable slot starts for an event type
POST /slots/invalidate              - Drop cached working hours of a schedule
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from redis import Redis
from sqlalchemy.orm import Session

from ..database import get_db
from ..dependencies import get_redis
from ..schemas.slots import CacheInvalidateRequest, CacheInvalidateResponse, SlotsResponse
from ..services.slots import get_slots
from ..services.slots.invalidator import invalidate_schedule_cache


router = APIRouter(tags=["slots"])


@router.get("/providers/{provider_id}/slots", response_model=SlotsResponse)
def get_provider_slots(
    provider_id: int,
    event_type_id: int,
    start: datetime = Query(..., alias="from"),
    end: datetime = Query(..., alias="to"),
    host_id: Optional[int] = None,
    db: Session = Depends(get_db),
    redis: Optional[Redis] = Depends(get_redis),
):
    """Offerable slot starts in [from, to), ascending, UTC. host_id picks a staff calendar."""
    slots = get_slots(db, provider_id, event_type_id, start, end, redis=redis, host_id=host_id)

    return SlotsResponse(
        provider_id=provider_id,
        event_type_id=event_type_id,
        start=slots.window_start,
        end=slots.window_end,
        slots=list(slots),
    )


@router.post("/slots/invalidate", response_model=CacheInvalidateResponse)
def invalidate_slots_cache(
    data: CacheInvalidateRequest,
    redis: Optional[Redis] = Depends(get_redis),
):
    """Drop cached working hours after a schedule change."""
    if redis is None:
        return CacheInvalidateResponse(schedule_id=data.schedule_id, deleted_keys=0)

    deleted = invalidate_schedule_cache(redis, data.schedule_id, data.date_start, data.date_end)
    return CacheInvalidateResponse(schedule_id=data.schedule_id, deleted_keys=deleted)
