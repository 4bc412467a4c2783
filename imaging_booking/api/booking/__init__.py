"""
Booking API Domain

Availability, tentative selection, drafts, confirmation, rescheduling and the
patient's own appointments.
"""

from imaging_booking.api.booking.endpoints import (
    # Calendar
    get_availability,
    propose_slot,
    # Drafts
    create_draft,
    discard_draft,
    confirm_booking,
    # Patient's appointments
    reschedule_appointment,
    cancel_appointment,
    get_my_appointments,
)

__all__ = [
    "get_availability",
    "propose_slot",
    "create_draft",
    "discard_draft",
    "confirm_booking",
    "reschedule_appointment",
    "cancel_appointment",
    "get_my_appointments",
]
