"""
Draft Lifecycle Manager

A draft blocks its window for other sessions while the patient fills in the
confirmation form. It ends in exactly one of two ways:
- promote: becomes an Imaging Appointment (draft deleted)
- discard: the patient goes back or leaves (draft deleted)

Drafts nobody promotes or discards expire after the configured TTL and are
swept by tasks.sweep_expired_drafts.
"""

from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Optional

import frappe
from frappe import _
from frappe.utils import cint

from imaging_booking.imaging_booking.notifications.appointment import enqueue_appointment_notification
from imaging_booking.imaging_booking.scheduling.config import (
	FLOW_STATE_SCHEDULED,
	get_draft_ttl_minutes,
)
from imaging_booking.imaging_booking.scheduling.exceptions import (
	BookingValidationError,
	DraftSaveError,
	PersistenceError,
)
from imaging_booking.imaging_booking.scheduling.intake import validate_contact, validate_private_health
from imaging_booking.imaging_booking.scheduling.overlap import normalize_datetime, utc_now
from imaging_booking.imaging_booking.scheduling.procedures import get_procedure, get_procedure_label
from imaging_booking.imaging_booking.scheduling.store import get_store


def build_draft(
	selection: Any,
	imaging: Dict[str, str],
	patient: str,
	procedure: Dict[str, Any],
	coordinator: Optional[str] = None,
	now: Optional[datetime] = None,
) -> Dict[str, Any]:
	"""Draft record for a tentative selection. Patients never create urgent drafts."""
	now = normalize_datetime(now or utc_now())
	return {
		"organization": imaging["organization"],
		"branch": imaging["branch"],
		"service": imaging["service"],
		"service_name": imaging.get("service_name"),
		"start_datetime": selection.start,
		"end_datetime": selection.end,
		"equipment": selection.equipment,
		"slot": selection.slot_id,
		"patient": patient,
		"coordinator": coordinator,
		"procedure": procedure["name"],
		"procedure_name": get_procedure_label(procedure),
		"urgency": 0,
		"draft_expires_at": now + timedelta(minutes=get_draft_ttl_minutes()),
	}


def build_appointment(
	draft: Dict[str, Any],
	procedure: Dict[str, Any],
	contact: str,
	private_health: Dict[str, Any],
) -> Dict[str, Any]:
	"""
	Construye el registro de la cita a partir del borrador.

	Self-service appointments are always outpatient, never urgent, without
	contrast, referred by and reported in the same imaging context.
	report_before = start + procedure reporting delay (days).
	"""
	start = normalize_datetime(draft["start_datetime"])
	return {
		"organization": draft["organization"],
		"branch": draft["branch"],
		"service": draft["service"],
		"service_name": draft.get("service_name"),
		"start_datetime": start,
		"end_datetime": normalize_datetime(draft["end_datetime"]),
		"equipment": draft["equipment"],
		"slot": draft.get("slot"),
		"patient": draft["patient"],
		"coordinator": draft.get("coordinator"),
		"procedure": procedure["name"],
		"procedure_name": get_procedure_label(procedure),
		"flow_state": FLOW_STATE_SCHEDULED,
		"status": 1,
		"urgency": 0,
		"outpatient": 1,
		"referring_organization": draft["organization"],
		"reporting_organization": draft["organization"],
		"reporting_branch": draft["branch"],
		"reporting_service": draft["service"],
		"use_contrast": 0,
		"contact": contact,
		"private_health": private_health,
		"report_before": start + timedelta(days=cint(procedure.get("reporting_delay"))),
	}


class DraftLifecycleManager:
	"""
	Creates, promotes and discards drafts through a BookingStore.

	Args:
		store: BookingStore (defaults to FrappeStore)
		notify: fn(notification_type, appointment), defaults to the enqueued
			notification service call
	"""

	def __init__(self, store: Any = None, notify: Optional[Callable] = None):
		self.store = store or get_store()
		self.notify = notify or enqueue_appointment_notification

	def create(
		self,
		selection: Any,
		imaging: Dict[str, str],
		patient: str,
		procedure: Dict[str, Any],
		coordinator: Optional[str] = None,
		now: Optional[datetime] = None,
	) -> str:
		"""
		Persists the tentative selection as a draft.

		Returns:
			str: draft id

		Raises:
			BookingValidationError: no selection or no patient
			DraftSaveError: the store rejected the write (e.g. the window was
				taken in the meantime); the selection has to be made again
		"""
		if selection is None:
			frappe.throw(_("Select a slot before continuing"), BookingValidationError)
		if not patient:
			frappe.throw(_("Patient is required"), BookingValidationError)

		record = build_draft(selection, imaging, patient, procedure, coordinator, now)

		try:
			with self.store.atomic():
				draft = self.store.insert("appointments_drafts", record)
		except Exception as e:
			frappe.logger("imaging_booking").warning(
				f"Draft for {selection.equipment} at {selection.start.isoformat()} rejected: {str(e)}"
			)
			frappe.throw(
				_("The selected slot could not be reserved. Please choose another one."),
				DraftSaveError,
			)

		frappe.logger("imaging_booking").info(
			f"Draft {draft['name']} created for {patient} "
			f"({selection.equipment} {selection.start.isoformat()} - {selection.end.isoformat()})"
		)
		return draft["name"]

	def promote(
		self,
		draft_id: str,
		contact: str,
		private_health: Dict[str, Any],
		procedure: Optional[Dict[str, Any]] = None,
	) -> Dict[str, Any]:
		"""
		Convierte el borrador en cita confirmada.

		Args:
			draft_id: draft to promote
			contact: patient contact (validated here)
			private_health: intake dict with height/weight (validated here)
			procedure: procedure dict; loaded from the draft if omitted

		Returns:
			dict: the inserted appointment

		Raises:
			BookingValidationError: form values invalid, nothing written
			PersistenceError: draft missing or store failure; the draft is kept

		Algoritmo:
			1. Validate form values
			2. In one store transaction: delete the draft, insert the appointment
			3. Enqueue the appointment_booked notification
		"""
		contact = validate_contact(contact)
		private_health = validate_private_health(private_health)

		draft = self.store.get("appointments_drafts", draft_id)
		if not draft:
			frappe.throw(
				_("Your reservation expired or no longer exists. Please select a slot again."),
				PersistenceError,
			)

		procedure = procedure or get_procedure(draft["procedure"])
		record = build_appointment(draft, procedure, contact, private_health)

		try:
			with self.store.atomic():
				# The draft covers the same window; it goes first so the
				# appointment's own overlap check does not see it
				self.store.delete("appointments_drafts", draft_id)
				appointment = self.store.insert("appointments", record)
		except Exception as e:
			frappe.log_error(
				title="Appointment Booking Failed",
				message=f"Failed to promote draft {draft_id}: {str(e)}",
			)
			frappe.throw(_("The appointment could not be saved. Please try again."), PersistenceError)

		frappe.logger("imaging_booking").info(f"Draft {draft_id} promoted to appointment {appointment['name']}")

		self.notify("appointment_booked", appointment)
		return appointment

	def discard(self, draft_id: Optional[str]) -> bool:
		"""
		Deletes the draft. Safe to call twice or after promote.

		Returns:
			bool: True if a draft was deleted
		"""
		if not draft_id:
			return False

		try:
			with self.store.atomic():
				deleted = self.store.delete("appointments_drafts", draft_id)
		except Exception as e:
			frappe.log_error(
				title="Draft Discard Failed",
				message=f"Failed to discard draft {draft_id}: {str(e)}",
			)
			frappe.throw(_("The reservation could not be released. Please try again."), PersistenceError)

		if deleted:
			frappe.logger("imaging_booking").info(f"Draft {draft_id} discarded")
		return deleted
