# salon_booking/services/slots/config.py
"""
Engine defaults for slot calculation and reservations.
"""

from dataclasses import dataclass
from functools import lru_cache

from ...config import settings


@dataclass(frozen=True)
class BookingConfig:
    """
    Configuration for the availability & booking engine.

    Attributes:
        default_minimum_notice: Notice (minutes) when an event type has none
        default_time_zone: Zone used when neither schedule nor provider has one
        max_query_span_days: Longest [from, to) window a slot query may span
        read_retry_attempts: Bounded retries of read-path storage errors
        cache_ttl_seconds: Redis TTL of cached working hours
        google_freebusy_chunk_days: Longest single free/busy request
        token_refresh_margin_seconds: Refresh access tokens this close to expiry
    """
    default_minimum_notice: int = 120
    default_time_zone: str = "Europe/Belgrade"
    max_query_span_days: int = 62
    read_retry_attempts: int = 3
    cache_ttl_seconds: int = 86400  # 24 hours
    google_freebusy_chunk_days: int = 90
    token_refresh_margin_seconds: int = 300

    def __post_init__(self):
        """Validate configuration."""
        if self.max_query_span_days < 1:
            raise ValueError(f"max_query_span_days must be positive, got {self.max_query_span_days}")
        if self.read_retry_attempts < 1:
            raise ValueError(f"read_retry_attempts must be at least 1, got {self.read_retry_attempts}")
        if self.default_minimum_notice < 0:
            raise ValueError(f"default_minimum_notice must not be negative, got {self.default_minimum_notice}")


@lru_cache
def get_booking_config() -> BookingConfig:
    """
    Get booking configuration (singleton).

    Spans, retries and TTLs come from application settings.
    """
    return BookingConfig(
        max_query_span_days=settings.max_query_span_days,
        read_retry_attempts=settings.read_retry_attempts,
        cache_ttl_seconds=settings.slot_cache_ttl_seconds,
    )
