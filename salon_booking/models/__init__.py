from .entities import (
    Attendees,
    AvailabilityRules,
    Base,
    BookingAudit,
    Bookings,
    CalendarCredentials,
    DateHoursOverrides,
    EventTypeHosts,
    EventTypes,
    ExternalBusyIntervals,
    Hosts,
    OutOfOffice,
    Providers,
    Schedules,
    metadata,
)

__all__ = [
    "Attendees",
    "AvailabilityRules",
    "Base",
    "BookingAudit",
    "Bookings",
    "CalendarCredentials",
    "DateHoursOverrides",
    "EventTypeHosts",
    "EventTypes",
    "ExternalBusyIntervals",
    "Hosts",
    "OutOfOffice",
    "Providers",
    "Schedules",
    "metadata",
]
