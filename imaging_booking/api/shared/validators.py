"""
Booking Validators

Input validation for the booking endpoints. Every value arrives as a string
from the portal; validators return the cleaned string or raise
frappe.ValidationError.
"""

import re
import frappe
from frappe import _
from frappe.utils import getdate

MAX_ID_LENGTH = 140

# Docnames, equipment/scope ids and procedure names ("APT-2026-00001",
# "EQ-CT-01", "Resonancia Magnética (RM)"). Quotes, angle brackets,
# semicolons and SQL comments are never part of an id.
_ID_PATTERN = re.compile(r"^[\w][\w .:/()&+,@-]*$")

_DATETIME_PATTERN = re.compile(
    r"^\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}(:\d{2}(\.\d{1,6})?)?(Z|[+-]\d{2}:?\d{2})?$"
)


def _require(value, field_name: str) -> str:
    if value is None or not str(value).strip():
        frappe.throw(_("{0} is required").format(field_name), frappe.ValidationError)
    return str(value).strip()


def validate_date_string(date_str: str, field_name: str = "date") -> str:
    """
    Validate a calendar date (YYYY-MM-DD) such as from_date / to_date.

    Impossible dates ("2026-02-30") are rejected, not rolled over.

    Returns:
        str: the date, normalised to YYYY-MM-DD
    """
    date_str = _require(date_str, field_name)

    if not re.match(r"^\d{4}-\d{2}-\d{2}$", date_str):
        frappe.throw(
            _("Invalid {0} format. Use YYYY-MM-DD").format(field_name), frappe.ValidationError
        )

    try:
        return getdate(date_str).isoformat()
    except Exception:
        frappe.throw(_("{0} is not a valid date").format(field_name), frappe.ValidationError)


def validate_datetime_string(datetime_str: str, field_name: str = "datetime") -> str:
    """
    Validate a datetime string.

    Accepts "YYYY-MM-DD HH:MM[:SS]" and ISO 8601 as sent by the calendar
    ("2026-03-02T09:30:00.000Z", "2026-03-02T09:30:00-05:00").

    Args:
        datetime_str: Datetime string to validate
        field_name: Name of field for error messages

    Returns:
        str: Validated datetime string

    Raises:
        frappe.ValidationError: If datetime format is invalid
    """
    datetime_str = _require(datetime_str, field_name)

    if not _DATETIME_PATTERN.match(datetime_str):
        frappe.throw(
            _("Invalid {0} format. Use YYYY-MM-DD HH:MM:SS or ISO 8601").format(field_name),
            frappe.ValidationError,
        )

    return datetime_str


def validate_docname(name: str, field_name: str = "name") -> str:
    """
    Validate an id sent by the portal: a docname (draft, appointment,
    procedure) or a scope/equipment id.

    Args:
        name: id to validate
        field_name: Name of field for error messages

    Returns:
        str: the trimmed id

    Raises:
        frappe.ValidationError: empty, longer than 140 characters or with
            characters outside letters, digits and " .:/()&+,@-_"
    """
    name = _require(name, field_name)

    if len(name) > MAX_ID_LENGTH:
        frappe.throw(_("{0} is too long").format(field_name), frappe.ValidationError)

    if not _ID_PATTERN.match(name) or "--" in name:
        frappe.throw(_("Invalid {0}").format(field_name), frappe.ValidationError)

    return name


def validate_imaging_context(organization: str, branch: str, service: str, service_name: str = None) -> dict:
    """
    Validates the three scope ids and returns them as an imaging dict.

    service_name is the display name sent as the notification location;
    it is optional and only trimmed.
    """
    imaging = {
        "organization": validate_docname(organization, "organization"),
        "branch": validate_docname(branch, "branch"),
        "service": validate_docname(service, "service"),
    }

    service_name = (service_name or "").strip()
    if len(service_name) > MAX_ID_LENGTH:
        frappe.throw(_("service_name is too long"), frappe.ValidationError)
    if service_name:
        imaging["service_name"] = service_name

    return imaging
