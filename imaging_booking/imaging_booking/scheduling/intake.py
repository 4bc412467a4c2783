"""
Patient Intake

Validates the confirmation form (contact, height, weight) and builds the
private health record stored with the appointment. Self-service patients only
provide height and weight; every other clinical field gets its default.
"""

import copy
from typing import Any, Dict, Optional

import frappe
from frappe import _

from imaging_booking.imaging_booking.scheduling.exceptions import BookingValidationError

CONTACT_MIN_LENGTH = 8
HEIGHT_RANGE = (30, 250)
WEIGHT_RANGE = (1, 500)

CLINICAL_CONDITIONS = (
	"diabetes",
	"hypertension",
	"epoc",
	"smoking",
	"malnutrition",
	"obesity",
	"hiv",
	"renal_insufficiency",
	"heart_failure",
	"ischemic_heart_disease",
	"valvulopathy",
	"arrhythmia",
	"cancer",
	"dementia",
	"claustrophobia",
	"asthma",
	"hyperthyroidism",
	"hypothyroidism",
	"pregnancy",
)

_DEFAULT_DETAILS = {
	"medication": "N/A",
	"allergies": "N/A",
	"other": "N/A",
	"implants": {
		"cochlear_implant": False,
		"cardiac_stent": False,
		"metal_prostheses": False,
		"metal_shards": False,
		"pacemaker": False,
		"other": "N/A",
	},
	"covid19": {
		"had_covid": False,
		"vaccinated": False,
		"details": "N/A",
	},
}


def validate_contact(contact: Optional[str]) -> str:
	"""Contact phone/email, at least 8 characters once trimmed."""
	contact = (contact or "").strip()
	if len(contact) < CONTACT_MIN_LENGTH:
		frappe.throw(
			_("Contact must have at least {0} characters").format(CONTACT_MIN_LENGTH),
			BookingValidationError,
		)
	return contact


def _validate_range(label: str, value: Any, bounds: tuple) -> float:
	if value in (None, ""):
		frappe.throw(_("{0} is required").format(label), BookingValidationError)

	try:
		number = float(value)
	except (TypeError, ValueError):
		frappe.throw(_("{0} must be a number").format(label), BookingValidationError)

	low, high = bounds
	if number < low or number > high:
		frappe.throw(
			_("{0} must be between {1} and {2}").format(label, low, high),
			BookingValidationError,
		)
	return number


def build_private_health(height: Any, weight: Any) -> Dict[str, Any]:
	"""
	Construye el registro private_health a partir del formulario.

	Args:
		height: cm, 30 to 250
		weight: kg, 1 to 500

	Returns:
		dict: height, weight, every clinical condition set to False and the
			default medication/allergies/implants/covid19 details

	Raises:
		BookingValidationError: value missing or out of range
	"""
	private_health = {
		"height": _validate_range(_("Height"), height, HEIGHT_RANGE),
		"weight": _validate_range(_("Weight"), weight, WEIGHT_RANGE),
	}
	private_health.update({condition: False for condition in CLINICAL_CONDITIONS})
	private_health.update(copy.deepcopy(_DEFAULT_DETAILS))
	return private_health


def validate_private_health(private_health: Optional[Dict[str, Any]]) -> Dict[str, Any]:
	"""Re-validates a private_health dict coming from the client and fills missing defaults."""
	if not isinstance(private_health, dict):
		frappe.throw(_("Height and weight are required"), BookingValidationError)

	validated = build_private_health(private_health.get("height"), private_health.get("weight"))
	for key, value in private_health.items():
		if key not in ("height", "weight") and key in validated:
			validated[key] = value
	return validated
