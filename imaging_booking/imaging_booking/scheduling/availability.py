"""
Availability Aggregator

Builds the conflict-aware calendar for one imaging context and procedure by
merging three independent reads:
- slots: open windows, shown as non-interactive background events
- appointments: active scheduled appointments (blocking)
- appointments_drafts: live drafts of other sessions (blocking)

The reads run concurrently when the store allows it. A failing source is
reported in the result and the other sources still render.
"""

from concurrent.futures import ThreadPoolExecutor
from datetime import date, datetime
from typing import Any, Callable, Dict, List, Optional, Tuple

import frappe
from frappe import _

from imaging_booking.imaging_booking.scheduling.config import FLOW_STATE_SCHEDULED
from imaging_booking.imaging_booking.scheduling.overlap import normalize_datetime, utc_now
from imaging_booking.imaging_booking.scheduling.procedures import get_equipment_mapping
from imaging_booking.imaging_booking.scheduling.query import build_params
from imaging_booking.imaging_booking.scheduling.store import get_store

class AvailabilityResult:
	"""
	Merged calendar data.

	Attributes:
		background_events: open slots (never block)
		blocking_events: appointments and drafts (block their equipment)
		resources: [{"id": equipment, "title": "CT 1 | 30 min.", "duration": 30}]
		errors: {source: message} for each read that failed
	"""

	def __init__(self):
		self.background_events: List[Dict[str, Any]] = []
		self.blocking_events: List[Dict[str, Any]] = []
		self.resources: List[Dict[str, Any]] = []
		self.errors: Dict[str, str] = {}

	@property
	def events(self) -> List[Dict[str, Any]]:
		"""All events in render order: background first, blocking on top."""
		return self.background_events + self.blocking_events

	@property
	def is_partial(self) -> bool:
		return bool(self.errors)

	def as_dict(self) -> Dict[str, Any]:
		return {
			"background_events": [_serialize_event(e) for e in self.background_events],
			"blocking_events": [_serialize_event(e) for e in self.blocking_events],
			"resources": self.resources,
			"errors": self.errors,
		}


def get_booking_window(today: Optional[date] = None) -> Tuple[datetime, datetime]:
	"""
	Default visible range: from today 00:00 to the end of 31 December of the same year.
	"""
	today = today or utc_now().date()
	start = datetime(today.year, today.month, today.day)
	end = datetime(today.year, 12, 31, 23, 59, 59, 999000)
	return start, end


def build_slot_params(imaging: Dict[str, str], date_range: Tuple[datetime, datetime]) -> Dict[str, Any]:
	"""Open, non-urgent slots of the imaging context. Patients never book urgent slots."""
	start, end = date_range
	return build_params(
		filters={
			"domain.organization": imaging["organization"],
			"domain.branch": imaging["branch"],
			"domain.service": imaging["service"],
			"start": {"$gte": start},
			"end": {"$lte": end},
			"urgency": False,
		},
		projection=["_id", "start", "end", "urgency", "equipment._id", "equipment.name"],
		sort={"start": 1},
	)


def build_appointment_params(imaging: Dict[str, str], date_range: Tuple[datetime, datetime]) -> Dict[str, Any]:
	"""Active appointments still in the scheduled stage."""
	start, end = date_range
	return build_params(
		filters={
			"imaging.organization._id": imaging["organization"],
			"imaging.branch._id": imaging["branch"],
			"imaging.service._id": imaging["service"],
			"flow_state": FLOW_STATE_SCHEDULED,
			"status": True,
			"start": {"$gte": start},
			"end": {"$lte": end},
		},
		projection=["_id", "start", "end", "urgency", "procedure.name", "slot.equipment._id"],
		sort={"start": 1},
	)


def build_draft_params(imaging: Dict[str, str], date_range: Tuple[datetime, datetime]) -> Dict[str, Any]:
	start, end = date_range
	return build_params(
		filters={
			"imaging.organization._id": imaging["organization"],
			"imaging.branch._id": imaging["branch"],
			"imaging.service._id": imaging["service"],
			"start": {"$gte": start},
			"end": {"$lte": end},
		},
		projection=["_id", "start", "end", "urgency", "procedure.name", "slot.equipment._id", "draft_expires_at"],
		sort={"start": 1},
	)


def fetch_availability(
	imaging: Dict[str, str],
	procedure: Dict[str, Any],
	date_range: Optional[Tuple[datetime, datetime]] = None,
	reschedule: Any = None,
	store: Any = None,
	now: Optional[datetime] = None,
) -> AvailabilityResult:
	"""
	Obtiene el calendario combinado para un contexto de imagenes.

	Args:
		imaging: {"organization": str, "branch": str, "service": str}
		procedure: procedure dict with its equipment mapping
		date_range: (start, end); defaults to get_booking_window()
		reschedule: RescheduleContext; its appointment is left out of blocking events
		store: BookingStore (defaults to FrappeStore)
		now: reference time for draft expiry

	Returns:
		AvailabilityResult

	Algoritmo:
		1. Build the three query parameter sets
		2. Read the three collections independently
		3. Slots -> background events + resources (only mapped equipment)
		4. Appointments + drafts -> blocking events (minus the rescheduled one)
	"""
	store = store or get_store()
	date_range = date_range or get_booking_window()
	date_range = (normalize_datetime(date_range[0]), normalize_datetime(date_range[1]))
	now = normalize_datetime(now or utc_now())

	reads = {
		"slots": build_slot_params(imaging, date_range),
		"appointments": build_appointment_params(imaging, date_range),
		"appointments_drafts": build_draft_params(imaging, date_range),
	}

	rows, errors = _read_sources(store, reads)

	result = AvailabilityResult()
	result.errors = errors

	for source, message in errors.items():
		frappe.logger("imaging_booking").error(
			f"Availability source '{source}' failed for "
			f"{imaging.get('organization')}/{imaging.get('branch')}/{imaging.get('service')}: {message}"
		)

	slots = rows.get("slots") or []
	result.background_events = _to_background_events(slots)
	result.resources = _build_resources(slots, procedure)

	excluded = getattr(reschedule, "original_appointment_id", None)
	result.blocking_events = _to_blocking_events(
		rows.get("appointments") or [],
		rows.get("appointments_drafts") or [],
		excluded,
		now,
	)

	return result


def _read_sources(
	store: Any, reads: Dict[str, Dict[str, Any]]
) -> Tuple[Dict[str, List[Dict[str, Any]]], Dict[str, str]]:
	"""
	Runs every read with its own error handling.

	Worker threads only call store.find; logging happens in the caller since
	frappe.local is not shared with them.
	"""
	rows: Dict[str, List[Dict[str, Any]]] = {}
	errors: Dict[str, str] = {}

	def run(source: str) -> Callable:
		return lambda: store.find(source, reads[source])

	if store.supports_concurrent_reads:
		with ThreadPoolExecutor(max_workers=len(reads)) as executor:
			futures = {source: executor.submit(run(source)) for source in reads}
			for source, future in futures.items():
				try:
					rows[source] = future.result()
				except Exception as e:
					errors[source] = str(e) or e.__class__.__name__
	else:
		for source in reads:
			try:
				rows[source] = run(source)()
			except Exception as e:
				errors[source] = str(e) or e.__class__.__name__

	return rows, errors


def _to_background_events(slots: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
	events = []
	for slot in slots:
		events.append(frappe._dict({
			"id": slot["name"],
			"kind": "slot",
			"display": "background",
			"slot_id": slot["name"],
			"resource_id": slot["equipment"],
			"start": normalize_datetime(slot["start_datetime"]),
			"end": normalize_datetime(slot["end_datetime"]),
		}))
	return events


def _build_resources(slots: List[Dict[str, Any]], procedure: Dict[str, Any]) -> List[Dict[str, Any]]:
	"""Equipment present in the slots AND mapped by the procedure, in slot order."""
	mapping = get_equipment_mapping(procedure)
	resources = []
	seen = set()

	for slot in slots:
		equipment = slot["equipment"]
		if equipment in seen or equipment not in mapping:
			continue
		seen.add(equipment)

		name = slot.get("equipment_name") or equipment
		resources.append({
			"id": equipment,
			"title": f"{name} | {mapping[equipment]} min.",
			"duration": mapping[equipment],
		})

	return resources


def _to_blocking_events(
	appointments: List[Dict[str, Any]],
	drafts: List[Dict[str, Any]],
	excluded_appointment: Optional[str],
	now: datetime,
) -> List[Dict[str, Any]]:
	events = []

	for appt in appointments:
		# The appointment being rescheduled must look free again
		if excluded_appointment and appt["name"] == excluded_appointment:
			continue
		events.append(frappe._dict({
			"id": appt["name"],
			"kind": "appointment",
			"display": "auto",
			"resource_id": appt["equipment"],
			"title": _("Booked"),
			"urgency": bool(appt.get("urgency")),
			"start": normalize_datetime(appt["start_datetime"]),
			"end": normalize_datetime(appt["end_datetime"]),
		}))

	for draft in drafts:
		expires_at = draft.get("draft_expires_at")
		if expires_at and normalize_datetime(expires_at) <= now:
			continue
		events.append(frappe._dict({
			"id": draft["name"],
			"kind": "draft",
			"display": "auto",
			"resource_id": draft["equipment"],
			"title": _("Reserved"),
			"urgency": bool(draft.get("urgency")),
			"start": normalize_datetime(draft["start_datetime"]),
			"end": normalize_datetime(draft["end_datetime"]),
		}))

	return events


def _serialize_event(event: Dict[str, Any]) -> Dict[str, Any]:
	data = dict(event)
	for key in ("start", "end"):
		if isinstance(data.get(key), datetime):
			data[key] = data[key].isoformat()
	return data

