"""
Overlap Detection Service

Detects conflicts between a candidate window and the blocking events
(active appointments and live drafts) of one equipment.

Intervals are half-open: a window that starts exactly when another one ends
does not conflict. Slots (open availability) never block.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Union

import pytz
from frappe.utils import get_datetime


def normalize_datetime(value: Union[datetime, str]) -> datetime:
	"""
	Convierte un timestamp a reloj UTC sin timezone, con precision de milisegundos.

	Aware datetimes are converted to UTC; naive ones are already treated as
	UTC wall-clock time.
	"""
	if value is None:
		raise ValueError("Timestamp is required")

	if not isinstance(value, datetime):
		value = get_datetime(value)

	if value.tzinfo is not None:
		value = value.astimezone(pytz.UTC).replace(tzinfo=None)

	return value.replace(microsecond=(value.microsecond // 1000) * 1000)


def utc_now() -> datetime:
	"""Current time as a UTC wall-clock datetime."""
	return normalize_datetime(datetime.now(pytz.UTC))


def intervals_overlap(start_a: datetime, end_a: datetime, start_b: datetime, end_b: datetime) -> bool:
	"""Half-open interval test: touching boundaries are not a conflict."""
	return not (end_b <= start_a or start_b >= end_a)


def find_conflicts(candidate: Dict[str, Any], blocking_events: Iterable[Dict[str, Any]]) -> List[Dict[str, Any]]:
	"""
	Returns the blocking events that overlap the candidate on its resource.

	Args:
		candidate: {"resource_id": str, "start": datetime, "end": datetime}
		blocking_events: events with resource_id/start/end

	Returns:
		list: conflicting events, in input order
	"""
	start = normalize_datetime(candidate["start"])
	end = normalize_datetime(candidate["end"])

	if start >= end:
		raise ValueError("Candidate start must be before its end")

	conflicts = []
	for event in blocking_events:
		if event.get("resource_id") != candidate["resource_id"]:
			continue

		if intervals_overlap(
			start,
			end,
			normalize_datetime(event["start"]),
			normalize_datetime(event["end"]),
		):
			conflicts.append(event)

	return conflicts


def overlaps(candidate: Dict[str, Any], blocking_events: Iterable[Dict[str, Any]]) -> bool:
	"""True if the candidate conflicts with any blocking event on its resource."""
	return bool(find_conflicts(candidate, blocking_events))


def check_store_overlap(
	equipment: str,
	start_datetime: Union[datetime, str],
	end_datetime: Union[datetime, str],
	exclude: Optional[Dict[str, str]] = None,
	store: Any = None,
	now: Optional[datetime] = None,
	for_update: bool = False,
) -> Dict[str, Any]:
	"""
	Runs the overlap test against the store instead of a client snapshot.

	Used by the DocType controllers so the database, not the client, is the
	final authority on the no-overlap invariant.

	Args:
		equipment: equipment id
		start_datetime: window start
		end_datetime: window end
		exclude: {"appointments": name} and/or {"appointments_drafts": name}
		store: BookingStore (defaults to FrappeStore)
		now: reference time for draft expiry
		for_update: lock the matching rows (controllers call this holding
			the equipment lock, see locks.py)

	Returns:
		dict: {
			"has_overlap": bool,
			"overlapping_appointments": [names],
			"overlapping_drafts": [names]
		}
	"""
	from imaging_booking.imaging_booking.scheduling.store import get_store
	from imaging_booking.imaging_booking.scheduling.query import build_params

	store = store or get_store()
	exclude = exclude or {}
	start = normalize_datetime(start_datetime)
	end = normalize_datetime(end_datetime)
	now = normalize_datetime(now or utc_now())

	# Overlap condition pushed to the query: start < end_datetime AND end > start_datetime
	window = {
		"slot.equipment._id": equipment,
		"start": {"$lt": end},
		"end": {"$gt": start},
	}

	appointment_filters = dict(window, status=True)
	if exclude.get("appointments"):
		appointment_filters["_id"] = {"$ne": exclude["appointments"]}

	draft_filters = dict(window)
	if exclude.get("appointments_drafts"):
		draft_filters["_id"] = {"$ne": exclude["appointments_drafts"]}

	appointments = store.find("appointments", build_params(appointment_filters, ["_id"]), for_update=for_update)
	drafts = store.find(
		"appointments_drafts",
		build_params(draft_filters, ["_id", "draft_expires_at"]),
		for_update=for_update,
	)

	live_drafts = [
		d for d in drafts
		if not d.get("draft_expires_at") or normalize_datetime(d["draft_expires_at"]) > now
	]

	overlapping_appointments = [a["name"] for a in appointments]
	overlapping_drafts = [d["name"] for d in live_drafts]

	return {
		"has_overlap": bool(overlapping_appointments or overlapping_drafts),
		"overlapping_appointments": overlapping_appointments,
		"overlapping_drafts": overlapping_drafts,
	}
