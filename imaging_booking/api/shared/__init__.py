"""
Shared utilities for the Imaging Booking API.
"""

from .validators import (
    validate_date_string,
    validate_datetime_string,
    validate_docname,
    validate_imaging_context,
)

__all__ = [
    "validate_date_string",
    "validate_datetime_string",
    "validate_docname",
    "validate_imaging_context",
]
