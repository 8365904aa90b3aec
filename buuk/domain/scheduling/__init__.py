"""
Scheduling Domain

Availability computation and booking lifecycle.

Structure:
```
buuk/domain/scheduling/
├── schemas.py              # Slot and booking schemas
├── repository.py           # Working hours, time blocks, bookings queries
├── time_calculator.py      # Time parsing and slot overlap arithmetic (pure)
├── availability_service.py # Available slots per specialist / per business
├── booking_service.py      # Booking creation (slot re-check under lock), admin changes
└── router.py               # /availability and /bookings endpoints
```

Weekday numbering follows the stored working hours: 0=Sunday ... 6=Saturday.
All times are business-local; no timezone conversion happens here.
"""
