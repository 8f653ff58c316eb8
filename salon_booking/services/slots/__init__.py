# salon_booking/services/slots/__init__.py
"""
Slots calculation package.

timeutil     → local wall clock ↔ UTC (DST-safe)
rules        → read-only working hours and out-of-office
busy         → merged busy set
calculator   → working blocks + slot grid (pure)
availability → GetSlots orchestration
redis_store  → working hours cache (optional)
"""

from .availability import get_slots
from .busy import ExternalBusySource, NoExternalBusy, StoredExternalBusySource, merge_busy
from .calculator import SlotParams, SlotSequence, generate_slots, working_blocks
from .config import BookingConfig, get_booking_config
from .intervals import Interval, intersect_intervals, merge_intervals, subtract_intervals
from .redis_store import WorkingHoursRedisStore
from .rules import RuleStore, ScheduleRules, SqlRuleStore

__all__ = [
    "BookingConfig",
    "ExternalBusySource",
    "Interval",
    "NoExternalBusy",
    "RuleStore",
    "ScheduleRules",
    "SlotParams",
    "SlotSequence",
    "SqlRuleStore",
    "StoredExternalBusySource",
    "WorkingHoursRedisStore",
    "generate_slots",
    "get_booking_config",
    "get_slots",
    "intersect_intervals",
    "merge_busy",
    "merge_intervals",
    "subtract_intervals",
    "working_blocks",
]
