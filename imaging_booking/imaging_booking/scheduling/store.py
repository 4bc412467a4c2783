"""
Booking Store

Collection-level persistence for the booking core. The core reads and writes
three collections by name (slots, appointments, appointments_drafts) using the
query contract in query.py; FrappeStore maps them onto DocTypes.
"""

from contextlib import contextmanager
from typing import Any, Dict, List, Optional

import frappe

from imaging_booking.imaging_booking.scheduling.overlap import normalize_datetime
from imaging_booking.imaging_booking.scheduling.query import parse_params

COLLECTIONS = {
	"slots": "Imaging Slot",
	"appointments": "Imaging Appointment",
	"appointments_drafts": "Appointment Draft",
}

DATETIME_FIELDS = {"start_datetime", "end_datetime", "draft_expires_at", "report_before"}

# Document paths used in queries -> DocType columns
_BOOKING_ALIASES = {
	"_id": "name",
	"start": "start_datetime",
	"end": "end_datetime",
	"imaging.organization": "organization",
	"imaging.organization._id": "organization",
	"imaging.branch": "branch",
	"imaging.branch._id": "branch",
	"imaging.service": "service",
	"imaging.service._id": "service",
	"imaging.service.name": "service_name",
	"slot": "slot",
	"fk_slot": "slot",
	"slot.equipment._id": "equipment",
	"fk_patient": "patient",
	"fk_coordinator": "coordinator",
	"fk_procedure": "procedure",
	"procedure.name": "procedure_name",
}

FIELD_ALIASES = {
	"slots": {
		"_id": "name",
		"start": "start_datetime",
		"end": "end_datetime",
		"domain.organization": "organization",
		"domain.branch": "branch",
		"domain.service": "service",
		"equipment._id": "equipment",
		"equipment.name": "equipment_name",
	},
	"appointments": _BOOKING_ALIASES,
	"appointments_drafts": _BOOKING_ALIASES,
}


def get_doctype(collection: str) -> str:
	if collection not in COLLECTIONS:
		raise ValueError(f"Unknown collection: {collection}")
	return COLLECTIONS[collection]


def resolve_field(collection: str, path: str) -> str:
	"""Translate a document path (e.g. "domain.organization") to its column."""
	get_doctype(collection)
	return FIELD_ALIASES[collection].get(path, path)


def resolve_value(column: str, value: Any) -> Any:
	"""Convert query values to what the column stores."""
	if isinstance(value, bool):
		return int(value)
	if isinstance(value, (list, tuple)):
		return [resolve_value(column, v) for v in value]
	if column in DATETIME_FIELDS and value not in (None, ""):
		return normalize_datetime(value)
	return value


class BookingStore:
	"""
	Interface used by the booking core.

	Records are dicts keyed by DocType column names and always carry "name".
	"""

	# Whether find() may be called from worker threads
	supports_concurrent_reads = False

	def find(self, collection: str, params: Dict[str, Any], for_update: bool = False) -> List[Dict[str, Any]]:
		"""Query a collection. for_update locks the matched rows until commit."""
		raise NotImplementedError

	def get(self, collection: str, name: str) -> Optional[Dict[str, Any]]:
		raise NotImplementedError

	def insert(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
		raise NotImplementedError

	def update(self, collection: str, name: str, data: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
		raise NotImplementedError

	def delete(self, collection: str, name: str) -> bool:
		"""Delete a record. Returns False if it did not exist."""
		raise NotImplementedError

	@contextmanager
	def atomic(self):
		"""Group writes so they are persisted together or not at all."""
		yield


class FrappeStore(BookingStore):
	"""BookingStore backed by the app DocTypes."""

	def find(self, collection: str, params: Dict[str, Any], for_update: bool = False) -> List[Dict[str, Any]]:
		doctype = get_doctype(collection)
		query = parse_params(params)

		filters = []
		for path, operator, value in query.filters:
			column = resolve_field(collection, path)
			filters.append([column, operator, resolve_value(column, value)])

		fields = ["name"]
		for path in query.projection:
			column = resolve_field(collection, path)
			if column not in fields:
				fields.append(column)
		if len(fields) == 1:
			fields = ["*"]

		order_by = ", ".join(
			f"{resolve_field(collection, path)} {'asc' if direction > 0 else 'desc'}"
			for path, direction in query.sort
		) or "start_datetime asc"

		if for_update:
			# Locking read: sees rows committed after this transaction started
			return frappe.db.get_values(
				doctype,
				filters,
				fields,
				as_dict=True,
				order_by=order_by,
				for_update=True,
			)

		return frappe.get_all(
			doctype,
			filters=filters,
			fields=fields,
			order_by=order_by,
			limit_page_length=0,
		)

	def get(self, collection: str, name: str) -> Optional[Dict[str, Any]]:
		doctype = get_doctype(collection)
		if not name or not frappe.db.exists(doctype, name):
			return None
		return frappe.get_doc(doctype, name).as_dict()

	def insert(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
		doc = frappe.get_doc(dict(data, doctype=get_doctype(collection)))
		doc.insert(ignore_permissions=True)
		return doc.as_dict()

	def update(self, collection: str, name: str, data: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
		doc = frappe.get_doc(get_doctype(collection), name)
		for field in fields:
			doc.set(field, data.get(field))
		doc.save(ignore_permissions=True)
		return doc.as_dict()

	def delete(self, collection: str, name: str) -> bool:
		doctype = get_doctype(collection)
		if not name or not frappe.db.exists(doctype, name):
			return False
		frappe.delete_doc(doctype, name, ignore_permissions=True, force=True)
		return True

	@contextmanager
	def atomic(self):
		try:
			yield
			frappe.db.commit()
		except Exception:
			frappe.db.rollback()
			raise


def get_store() -> BookingStore:
	return FrappeStore()
