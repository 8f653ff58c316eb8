# salon_booking/redis_client.py

import logging
from typing import Optional

from redis import Redis

logger = logging.getLogger(__name__)


def create_redis_client(redis_url: Optional[str]) -> Optional[Redis]:
    """
    Redis client for REDIS_URL, or None when Redis is not configured.

    Without Redis: working hours are computed on every query, locks are
    process-local and events are only logged.
    """
    if not redis_url:
        logger.info("REDIS_URL not set, running without Redis")
        return None
    return Redis.from_url(redis_url, decode_responses=True)
