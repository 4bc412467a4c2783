"""
Imaging Booking API

Structure:
    api/
    ├── __init__.py              # This file
    ├── booking/                 # Booking domain
    │   ├── __init__.py          # Re-exports from endpoints
    │   └── endpoints.py         # Whitelisted endpoints
    └── shared/                  # Shared utilities
        ├── __init__.py
        └── validators.py        # Input validators

Usage:
    frappe.call("imaging_booking.api.booking.get_availability", ...)
"""

from . import booking
from . import shared

__all__ = [
    "booking",
    "shared",
]
