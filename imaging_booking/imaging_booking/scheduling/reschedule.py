"""
Reschedule Adapter

Moves an existing appointment to a new window. Reuses the availability
aggregator and the tentative hold, but never creates a draft: the appointment
itself keeps blocking its old window until the update is confirmed, and the
aggregator hides it so the patient can pick an overlapping new time.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Dict, Optional, Tuple

import frappe
from frappe import _

from imaging_booking.imaging_booking.notifications.appointment import enqueue_appointment_notification
from imaging_booking.imaging_booking.scheduling.appointments import can_modify
from imaging_booking.imaging_booking.scheduling.availability import AvailabilityResult, fetch_availability
from imaging_booking.imaging_booking.scheduling.exceptions import BookingValidationError, PersistenceError
from imaging_booking.imaging_booking.scheduling.intake import validate_private_health
from imaging_booking.imaging_booking.scheduling.overlap import normalize_datetime
from imaging_booking.imaging_booking.scheduling.store import get_store

RESCHEDULE_FIELDS = ["start_datetime", "end_datetime", "equipment", "slot", "private_health"]


@dataclass(frozen=True)
class RescheduleContext:
	original_appointment_id: str


class RescheduleAdapter:
	"""
	Reprogramacion de una cita existente.

	Args:
		appointment_id: appointment to move
		store: BookingStore (defaults to FrappeStore)
		notify: fn(notification_type, appointment)
	"""

	def __init__(self, appointment_id: str, store: Any = None, notify: Optional[Callable] = None):
		self.store = store or get_store()
		self.notify = notify or enqueue_appointment_notification
		self.context = RescheduleContext(original_appointment_id=appointment_id)
		self.appointment: Optional[Dict[str, Any]] = None
		self.selection: Any = None

	def load(self, now: Optional[datetime] = None) -> Dict[str, Any]:
		"""
		Loads the appointment and checks it may still be moved
		(active, scheduled and in the future).
		"""
		appointment = self.store.get("appointments", self.context.original_appointment_id)
		if not appointment:
			frappe.throw(
				_("Appointment {0} not found").format(self.context.original_appointment_id),
				frappe.DoesNotExistError,
			)

		if not can_modify(appointment, now):
			frappe.throw(_("Only future scheduled appointments can be rescheduled"), BookingValidationError)

		self.appointment = appointment
		return appointment

	@property
	def imaging(self) -> Dict[str, str]:
		appointment = self._require_loaded()
		return {
			"organization": appointment["organization"],
			"branch": appointment["branch"],
			"service": appointment["service"],
			"service_name": appointment.get("service_name"),
		}

	def fetch_availability(
		self,
		procedure: Dict[str, Any],
		date_range: Optional[Tuple[datetime, datetime]] = None,
		now: Optional[datetime] = None,
	) -> AvailabilityResult:
		"""Calendar for the appointment's imaging context, without the appointment itself."""
		return fetch_availability(
			self.imaging,
			procedure,
			date_range=date_range,
			reschedule=self.context,
			store=self.store,
			now=now,
		)

	def hold(self, selection: Any) -> None:
		"""Keeps the accepted selection in memory. No draft is written."""
		self.selection = selection

	def confirm(self, private_health: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
		"""
		Writes the new window onto the appointment.

		Only start, end, equipment, slot and private_health are updated; every
		other field keeps its value.

		Raises:
			BookingValidationError: no selection held
			PersistenceError: the store rejected the update; nothing changed
		"""
		appointment = self._require_loaded()
		if self.selection is None:
			frappe.throw(_("Select a new slot before confirming"), BookingValidationError)

		if private_health is not None:
			private_health = validate_private_health(private_health)
		else:
			private_health = appointment.get("private_health")

		data = {
			"start_datetime": normalize_datetime(self.selection.start),
			"end_datetime": normalize_datetime(self.selection.end),
			"equipment": self.selection.equipment,
			"slot": self.selection.slot_id,
			"private_health": private_health,
		}

		try:
			with self.store.atomic():
				updated = self.store.update("appointments", appointment["name"], data, RESCHEDULE_FIELDS)
		except Exception as e:
			frappe.log_error(
				title="Appointment Reschedule Failed",
				message=f"Failed to reschedule {appointment['name']}: {str(e)}",
			)
			frappe.throw(_("The appointment could not be rescheduled. Please try again."), PersistenceError)

		frappe.logger("imaging_booking").info(
			f"Appointment {appointment['name']} moved to {data['equipment']} "
			f"{data['start_datetime'].isoformat()} - {data['end_datetime'].isoformat()}"
		)

		self.appointment = updated
		self.selection = None
		self.notify("appointment_rescheduled", updated)
		return updated

	def abandon(self) -> None:
		"""Drops the in-memory selection. The store is not touched."""
		self.selection = None

	def _require_loaded(self) -> Dict[str, Any]:
		if self.appointment is None:
			frappe.throw(_("Appointment not loaded"), BookingValidationError)
		return self.appointment
