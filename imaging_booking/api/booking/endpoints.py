"""
Booking API Endpoints

Whitelisted functions for the patient portal. Every endpoint acts on behalf
of the logged-in user (frappe.session.user is the patient).

Rate limited per user/IP with frappe.rate_limiter.

The HTTP API is stateless: the tentative selection lives in the browser and
is re-validated against fresh availability on create_draft and
reschedule_appointment.
"""

import frappe
from frappe import _
from frappe.rate_limiter import rate_limit
from frappe.utils import get_datetime
from typing import Dict, List, Any, Optional

# Import scheduling services
from imaging_booking.imaging_booking.scheduling.appointments import (
	cancel_appointment as cancel_patient_appointment,
	get_patient_appointments,
)
from imaging_booking.imaging_booking.scheduling.availability import fetch_availability
from imaging_booking.imaging_booking.scheduling.drafts import DraftLifecycleManager
from imaging_booking.imaging_booking.scheduling.exceptions import ConflictError, PersistenceError, SlotSelectionError
from imaging_booking.imaging_booking.scheduling.holds import TentativeHoldManager, TentativeSelection
from imaging_booking.imaging_booking.scheduling.intake import build_private_health
from imaging_booking.imaging_booking.scheduling.procedures import get_procedure
from imaging_booking.imaging_booking.scheduling.reschedule import RescheduleAdapter
from imaging_booking.imaging_booking.scheduling.store import get_store

from imaging_booking.api.shared import (
    validate_date_string,
    validate_datetime_string,
    validate_docname,
    validate_imaging_context,
)


def _get_patient() -> str:
	if frappe.session.user == "Guest":
		frappe.throw(_("Debe iniciar sesión para reservar"), frappe.PermissionError)
	return frappe.session.user


def _get_date_range(from_date: Optional[str], to_date: Optional[str]) -> Optional[tuple]:
	if not from_date and not to_date:
		return None

	from_date = validate_date_string(from_date, "from_date")
	to_date = validate_date_string(to_date, "to_date")

	start = get_datetime(f"{from_date} 00:00:00")
	end = get_datetime(f"{to_date} 23:59:59.999000")
	if start > end:
		frappe.throw(_("from_date debe ser menor o igual que to_date"))
	return start, end


def _load_own_reschedule(appointment_id: str, patient: str, store: Any) -> RescheduleAdapter:
	"""Loads a reschedulable appointment that belongs to the patient."""
	adapter = RescheduleAdapter(validate_docname(appointment_id, "appointment_id"), store=store)
	appointment = adapter.load()
	if appointment.get("patient") != patient:
		frappe.throw(_("Appointment {0} not found").format(appointment_id), frappe.DoesNotExistError)
	return adapter


def _load_own_draft(draft_id: str, patient: str, store: Any) -> Optional[Dict[str, Any]]:
	draft = store.get("appointments_drafts", validate_docname(draft_id, "draft_id"))
	if not draft or draft.get("patient") != patient:
		return None
	return draft


def _select_slot(
	result: Any,
	procedure: Dict[str, Any],
	slot_id: str,
	equipment: str,
	start: str,
) -> TentativeSelection:
	"""
	Replays the calendar click server side against fresh availability.

	The clicked slot must be one of the open background events of the
	equipment and contain the requested start.
	"""
	start_dt = get_datetime(validate_datetime_string(start, "start"))

	event = next(
		(
			e for e in result.background_events
			if e.slot_id == slot_id and e.resource_id == equipment
		),
		None,
	)
	if not event:
		frappe.throw(_("Please select an open slot"), SlotSelectionError)

	holds = TentativeHoldManager(procedure, result.blocking_events)
	selection = holds.click(event, start_dt)

	if not (event.start <= selection.start < event.end):
		frappe.throw(_("Please select an open slot"), SlotSelectionError)

	return selection


@frappe.whitelist(methods=["GET"])
@rate_limit(limit=60, seconds=60)
def get_availability(
	organization: str,
	branch: str,
	service: str,
	procedure: str,
	from_date: Optional[str] = None,
	to_date: Optional[str] = None,
	reschedule: Optional[str] = None,
) -> Dict[str, Any]:
	"""
	Obtiene el calendario de disponibilidad para un servicio y procedimiento.

	Args:
		organization, branch, service: imaging context
		procedure: Imaging Procedure name
		from_date, to_date: YYYY-MM-DD (default: today to 31 December)
		reschedule: appointment being moved; it is left out of blocking events

	Returns:
		dict: {
			"background_events": [...],   # open slots
			"blocking_events": [...],     # appointments + drafts
			"resources": [{"id", "title", "duration"}],
			"errors": {source: message}   # partial results if not empty
		}

	Example:
		```javascript
		frappe.call({
			method: "imaging_booking.api.booking.get_availability",
			args: {organization: "ORG1", branch: "BR1", service: "CT", procedure: "Brain CT"},
			callback: (r) => calendar.render(r.message)
		});
		```
	"""
	patient = _get_patient()
	imaging = validate_imaging_context(organization, branch, service)
	procedure_doc = get_procedure(validate_docname(procedure, "procedure"))
	date_range = _get_date_range(from_date, to_date)
	store = get_store()

	if reschedule:
		adapter = _load_own_reschedule(reschedule, patient, store)
		result = adapter.fetch_availability(procedure_doc, date_range=date_range)
	else:
		result = fetch_availability(imaging, procedure_doc, date_range=date_range, store=store)

	return result.as_dict()


@frappe.whitelist(methods=["POST"])
@rate_limit(limit=60, seconds=60)
def propose_slot(
	organization: str,
	branch: str,
	service: str,
	procedure: str,
	slot_id: str,
	equipment: str,
	start: str,
	reschedule: Optional[str] = None,
) -> Dict[str, Any]:
	"""
	Valida una seleccion tentativa sin escribir nada.

	Returns:
		dict: {
			"valid": bool,
			"errors": [str],
			"selection": {"equipment", "slot_id", "start", "end", "duration"} | None,
			"required_duration": int | None   # set when the window does not fit
		}
	"""
	patient = _get_patient()
	imaging = validate_imaging_context(organization, branch, service)
	procedure_doc = get_procedure(validate_docname(procedure, "procedure"))
	store = get_store()

	if reschedule:
		adapter = _load_own_reschedule(reschedule, patient, store)
		result = adapter.fetch_availability(procedure_doc)
	else:
		result = fetch_availability(imaging, procedure_doc, store=store)

	response = {"valid": False, "errors": [], "selection": None, "required_duration": None}

	try:
		selection = _select_slot(result, procedure_doc, slot_id, equipment, start)
	except ConflictError as e:
		response["errors"].append(str(e))
		response["required_duration"] = e.required_duration
		return response
	except SlotSelectionError as e:
		response["errors"].append(str(e))
		return response

	response["valid"] = True
	response["selection"] = selection.as_dict()
	return response


@frappe.whitelist(methods=["POST"])
@rate_limit(limit=20, seconds=60)
def create_draft(
	organization: str,
	branch: str,
	service: str,
	procedure: str,
	slot_id: str,
	equipment: str,
	start: str,
	service_name: Optional[str] = None,
) -> Dict[str, Any]:
	"""
	Reserva la ventana seleccionada como borrador.

	Args:
		service_name: display name of the service, used as the notification location

	Returns:
		dict: {"draft_id": str, "selection": {...}}

	Raises:
		ConflictError / SlotSelectionError: selection no longer valid
		DraftSaveError: the store rejected the draft
	"""
	patient = _get_patient()
	imaging = validate_imaging_context(organization, branch, service, service_name)
	procedure_doc = get_procedure(validate_docname(procedure, "procedure"))
	store = get_store()

	result = fetch_availability(imaging, procedure_doc, store=store)
	selection = _select_slot(result, procedure_doc, slot_id, equipment, start)

	draft_id = DraftLifecycleManager(store=store).create(selection, imaging, patient, procedure_doc)
	return {"draft_id": draft_id, "selection": selection.as_dict()}


@frappe.whitelist(methods=["POST"])
@rate_limit(limit=20, seconds=60)
def discard_draft(draft_id: str) -> Dict[str, Any]:
	"""
	Libera un borrador propio. Idempotente.

	Returns:
		dict: {"deleted": bool}
	"""
	patient = _get_patient()
	store = get_store()

	draft = _load_own_draft(draft_id, patient, store)
	if not draft:
		return {"deleted": False}

	return {"deleted": DraftLifecycleManager(store=store).discard(draft["name"])}


@frappe.whitelist(methods=["POST"])
@rate_limit(limit=20, seconds=60)
def confirm_booking(draft_id: str, contact: str, height: Any, weight: Any) -> Dict[str, Any]:
	"""
	Confirma la reserva: convierte el borrador en Imaging Appointment.

	Returns:
		dict: {"appointment": str, "start": str, "end": str, "equipment": str}
	"""
	patient = _get_patient()
	store = get_store()

	draft = _load_own_draft(draft_id, patient, store)
	if not draft:
		frappe.throw(
			_("Your reservation expired or no longer exists. Please select a slot again."),
			PersistenceError,
		)

	private_health = build_private_health(height, weight)
	appointment = DraftLifecycleManager(store=store).promote(draft["name"], contact, private_health)

	return {
		"appointment": appointment["name"],
		"start": str(appointment["start_datetime"]),
		"end": str(appointment["end_datetime"]),
		"equipment": appointment["equipment"],
	}


@frappe.whitelist(methods=["POST"])
@rate_limit(limit=20, seconds=60)
def reschedule_appointment(
	appointment_id: str,
	slot_id: str,
	equipment: str,
	start: str,
	height: Any = None,
	weight: Any = None,
) -> Dict[str, Any]:
	"""
	Reprograma una cita propia a una nueva ventana. No crea borrador.

	height/weight are optional; when both are sent the intake is replaced.

	Returns:
		dict: {"appointment": str, "start": str, "end": str, "equipment": str}
	"""
	patient = _get_patient()
	store = get_store()

	adapter = _load_own_reschedule(appointment_id, patient, store)
	procedure_doc = get_procedure(adapter.appointment["procedure"])

	result = adapter.fetch_availability(procedure_doc)
	adapter.hold(_select_slot(result, procedure_doc, slot_id, equipment, start))

	private_health = None
	if height not in (None, "") and weight not in (None, ""):
		private_health = build_private_health(height, weight)

	appointment = adapter.confirm(private_health)
	return {
		"appointment": appointment["name"],
		"start": str(appointment["start_datetime"]),
		"end": str(appointment["end_datetime"]),
		"equipment": appointment["equipment"],
	}


@frappe.whitelist(methods=["POST"])
@rate_limit(limit=20, seconds=60)
def cancel_appointment(appointment_id: str) -> Dict[str, Any]:
	"""
	Cancela una cita propia (soft delete).

	Returns:
		dict: {"appointment": str, "status": 0}
	"""
	patient = _get_patient()
	store = get_store()
	appointment_id = validate_docname(appointment_id, "appointment_id")

	appointment = store.get("appointments", appointment_id)
	if not appointment or appointment.get("patient") != patient:
		frappe.throw(_("Appointment {0} not found").format(appointment_id), frappe.DoesNotExistError)

	updated = cancel_patient_appointment(appointment_id, store=store)
	return {"appointment": updated["name"], "status": updated["status"]}


@frappe.whitelist(methods=["GET"])
def get_my_appointments() -> List[Dict[str, Any]]:
	"""
	Citas del usuario logueado, mas recientes primero.

	Returns:
		list[dict]: appointment rows with state_label, date_label, time_label
			and can_modify
	"""
	patient = _get_patient()
	appointments = get_patient_appointments(patient)

	for appointment in appointments:
		for key in ("start_datetime", "end_datetime"):
			if appointment.get(key):
				appointment[key] = str(appointment[key])

	return appointments
