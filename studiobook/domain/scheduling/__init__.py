"""
Scheduling Domain

Decides whether a requested booking may be created, how it is split into
sub-bookings and when sunrise/dusk bookings are placed.

Structure:
```
studiobook/domain/scheduling/
├── __init__.py
├── exceptions.py        # Rejection errors (validation, quota, travel)
├── schemas.py           # Booking request/response schemas
├── repository.py        # Booking database queries
├── time_calculator.py   # Time zone and calendar-day calculations
├── solar_resolver.py    # Sunrise/sunset arrival times
├── travel_validator.py  # Drive time + buffer between crew bookings
├── quota.py             # Daily SUNRISE/DUSK caps
├── placeholders.py      # Sunrise/dusk placeholder slots
├── decomposer.py        # Mixed booking -> primary + secondary
├── recurrence.py        # Repeating block-outs
├── service.py           # Booking orchestration
└── router.py            # FastAPI endpoints
```

The quota, travel and split steps only run for tenants with
``scheduling_enabled`` set.

EXTERNAL INTEGRATIONS:
- Google Geocoding / Nominatim (address -> coordinates)
- Open-Meteo (sunrise/sunset)
- Google Distance Matrix (drive time)
- Resend (booking emails)
"""

from .router import router

__all__ = ["router"]
