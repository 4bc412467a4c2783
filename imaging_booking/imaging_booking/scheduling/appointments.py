"""
Appointment Actions

Read and cancel operations on a patient's own appointments.
"""

from datetime import datetime
from typing import Any, Callable, Dict, List, Optional

import frappe
from frappe import _
from frappe.utils import cint

from imaging_booking.imaging_booking.notifications.appointment import enqueue_appointment_notification
from imaging_booking.imaging_booking.scheduling.config import FLOW_STATE_SCHEDULED, FLOW_STATES
from imaging_booking.imaging_booking.scheduling.exceptions import BookingValidationError, PersistenceError
from imaging_booking.imaging_booking.scheduling.overlap import normalize_datetime, utc_now
from imaging_booking.imaging_booking.scheduling.query import build_params
from imaging_booking.imaging_booking.scheduling.store import get_store

CANCELLED_LABEL = "Cancelled"


def flow_state_label(appointment: Dict[str, Any]) -> str:
	"""Cancelled for soft-deleted appointments, otherwise the flow stage name."""
	if not cint(appointment.get("status")):
		return CANCELLED_LABEL
	return FLOW_STATES.get(appointment.get("flow_state"), FLOW_STATES[FLOW_STATE_SCHEDULED])


def can_modify(appointment: Dict[str, Any], now: Optional[datetime] = None) -> bool:
	"""Solo citas activas, en estado A01 y futuras pueden reprogramarse o cancelarse."""
	if not cint(appointment.get("status")) or appointment.get("flow_state") != FLOW_STATE_SCHEDULED:
		return False
	now = normalize_datetime(now or utc_now())
	return normalize_datetime(appointment["start_datetime"]) > now


def format_appointment_date(appointment: Dict[str, Any]) -> str:
	"""e.g. "Mon, Mar 2, 2026"."""
	if not appointment.get("start_datetime"):
		return "-"
	start = normalize_datetime(appointment["start_datetime"])
	return f"{start.strftime('%a, %b')} {start.day}, {start.year}"


def format_appointment_time(appointment: Dict[str, Any]) -> str:
	"""e.g. "09:30 - 10:00" (24h)."""
	if not appointment.get("start_datetime") or not appointment.get("end_datetime"):
		return "-"
	start = normalize_datetime(appointment["start_datetime"])
	end = normalize_datetime(appointment["end_datetime"])
	return f"{start.strftime('%H:%M')} - {end.strftime('%H:%M')}"


def get_patient_appointments(patient: str, store: Any = None, now: Optional[datetime] = None) -> List[Dict[str, Any]]:
	"""
	All appointments of a patient, newest first, with display helpers.

	Returns:
		list: appointment rows plus "state_label", "date_label", "time_label"
			and "can_modify"
	"""
	store = store or get_store()
	rows = store.find(
		"appointments",
		build_params(
			filters={"fk_patient": patient},
			projection=[
				"_id", "start", "end", "flow_state", "status", "procedure.name",
				"slot.equipment._id", "imaging.service", "fk_patient", "contact",
			],
			sort={"start": -1},
		),
	)

	appointments = []
	for row in rows:
		appointment = dict(row)
		appointment.update({
			"state_label": flow_state_label(appointment),
			"date_label": format_appointment_date(appointment),
			"time_label": format_appointment_time(appointment),
			"can_modify": can_modify(appointment, now),
		})
		appointments.append(appointment)
	return appointments


def cancel_appointment(
	appointment_id: str,
	store: Any = None,
	notify: Optional[Callable] = None,
	now: Optional[datetime] = None,
) -> Dict[str, Any]:
	"""
	Cancela una cita (soft delete: status = 0).

	Raises:
		frappe.DoesNotExistError: unknown appointment
		BookingValidationError: appointment already started, finished or cancelled
		PersistenceError: the store rejected the update
	"""
	store = store or get_store()
	notify = notify or enqueue_appointment_notification

	appointment = store.get("appointments", appointment_id)
	if not appointment:
		frappe.throw(_("Appointment {0} not found").format(appointment_id), frappe.DoesNotExistError)

	if not can_modify(appointment, now):
		frappe.throw(_("Only future scheduled appointments can be cancelled"), BookingValidationError)

	try:
		with store.atomic():
			updated = store.update("appointments", appointment_id, {"status": 0}, ["status"])
	except Exception as e:
		frappe.log_error(
			title="Appointment Cancel Failed",
			message=f"Failed to cancel {appointment_id}: {str(e)}",
		)
		frappe.throw(_("The appointment could not be cancelled. Please try again."), PersistenceError)

	frappe.logger("imaging_booking").info(f"Appointment {appointment_id} cancelled")
	notify("appointment_cancelled", updated)
	return updated
