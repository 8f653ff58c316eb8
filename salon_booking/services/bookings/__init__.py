# salon_booking/services/bookings/__init__.py
"""
Booking services.

status       → lifecycle states and allowed transitions
locks        → per-provider critical sections
reservations → create / reschedule under isolation
lifecycle    → confirm / reject / cancel / lookup / reschedule requests
"""
