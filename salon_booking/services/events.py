"""
salon_booking/services/events.py

Event emitter: pushes booking lifecycle events to a Redis queue for
notification workers.

Queue:
- events:p2p: instant delivery (booking_created, booking_confirmed,
  booking_rejected, booking_cancelled, booking_rescheduled,
  reschedule_requested)

Events are emitted after commit; a failed push is logged and never
undoes the committed booking.
"""

import json
import time
import logging

from redis import Redis, RedisError

logger = logging.getLogger(__name__)

P2P_QUEUE = "events:p2p"


def build_event(event_type: str, payload: dict) -> dict:
    return {
        "type": event_type,
        **payload,
        "ts": int(time.time()),
    }


def emit_event(redis: Redis | None, event_type: str, payload: dict) -> bool:
    """
    Emit a p2p event (instant delivery).

    Pushed to Redis list `events:p2p` for the consumer loop.
    Without Redis the event is only logged.

    Returns:
        True when the event reached the queue.
    """
    event = build_event(event_type, payload)
    if redis is None:
        logger.info(f"Event {event_type} (no queue configured): {payload.get('booking_uid')}")
        return False

    try:
        redis.rpush(P2P_QUEUE, json.dumps(event, default=str))
        logger.info(f"Event emitted: {event_type} → {P2P_QUEUE}")
        return True
    except RedisError as e:
        logger.error(f"Failed to emit event {event_type}: {e}")
        return False
