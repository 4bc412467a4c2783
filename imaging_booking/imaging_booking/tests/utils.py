"""
Test helpers

MemoryStore: in-memory BookingStore that follows the same query contract as
FrappeStore, so the booking core can be tested without DocTypes.
"""

import copy
from contextlib import contextmanager
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional

from imaging_booking.imaging_booking.scheduling.exceptions import ConflictError
from imaging_booking.imaging_booking.scheduling.overlap import check_store_overlap, normalize_datetime, utc_now
from imaging_booking.imaging_booking.scheduling.query import parse_params
from imaging_booking.imaging_booking.scheduling.store import (
	COLLECTIONS,
	DATETIME_FIELDS,
	BookingStore,
	resolve_field,
	resolve_value,
)

IMAGING = {"organization": "ORG-1", "branch": "BR-1", "service": "CT-SERVICE", "service_name": "CT Sede Norte"}

PROCEDURE = {
	"name": "Brain CT",
	"procedure_name": "Brain CT",
	"reporting_delay": 3,
	"equipments": [
		{"equipment": "EQ-1", "duration": 30},
		{"equipment": "EQ-2", "duration": 45},
	],
}

_PREFIXES = {"slots": "SLOT", "appointments": "APT", "appointments_drafts": "DRAFT"}


def dt(value: str) -> datetime:
	"""dt("2030-03-04 10:00") -> datetime"""
	return normalize_datetime(value)


class MemoryStore(BookingStore):
	"""
	Args:
		enforce_overlap: run the overlap test on insert/update of appointments
			and drafts, as the DocType controllers do
	"""

	supports_concurrent_reads = True

	def __init__(self, enforce_overlap: bool = True):
		self.enforce_overlap = enforce_overlap
		self.data: Dict[str, Dict[str, Dict[str, Any]]] = {c: {} for c in COLLECTIONS}
		self.failures: Dict[tuple, Exception] = {}
		self.calls: List[tuple] = []
		self._counter = 0

	# --- test helpers ---

	def fail(self, operation: str, collection: str, error: Optional[Exception] = None) -> None:
		"""Make the next and every following <operation> on <collection> raise."""
		self.failures[(operation, collection)] = error or RuntimeError(f"{collection} unavailable")

	def add(self, collection: str, **values) -> Dict[str, Any]:
		"""Insert a fixture row without any validation."""
		return self._write(collection, values)

	def add_slot(self, equipment: str, start: str, end: str, urgency: bool = False, **values) -> Dict[str, Any]:
		row = dict(IMAGING, equipment=equipment, equipment_name=f"Equipment {equipment}",
			start_datetime=start, end_datetime=end, urgency=int(urgency))
		row.update(values)
		return self.add("slots", **row)

	def add_appointment(self, equipment: str, start: str, end: str, **values) -> Dict[str, Any]:
		row = dict(IMAGING, equipment=equipment, start_datetime=start, end_datetime=end,
			patient="patient@example.com", procedure=PROCEDURE["name"], procedure_name=PROCEDURE["procedure_name"],
			flow_state="A01", status=1, urgency=0)
		row.update(values)
		return self.add("appointments", **row)

	def add_draft(self, equipment: str, start: str, end: str, expires_in_minutes: int = 15, **values) -> Dict[str, Any]:
		row = dict(IMAGING, equipment=equipment, start_datetime=start, end_datetime=end,
			patient="other@example.com", procedure=PROCEDURE["name"], urgency=0,
			draft_expires_at=utc_now() + timedelta(minutes=expires_in_minutes))
		row.update(values)
		return self.add("appointments_drafts", **row)

	# --- BookingStore ---

	def find(self, collection: str, params: Dict[str, Any], for_update: bool = False) -> List[Dict[str, Any]]:
		self._check("find", collection)
		self.calls.append(("find_for_update" if for_update else "find", collection))
		query = parse_params(params)

		rows = [
			row for row in self.data[collection].values()
			if all(self._match(collection, row, path, op, value) for path, op, value in query.filters)
		]

		for path, direction in reversed(query.sort):
			column = resolve_field(collection, path)
			rows.sort(key=lambda r: r.get(column), reverse=direction < 0)

		if query.projection:
			columns = {"name"} | {resolve_field(collection, p) for p in query.projection}
			return [{k: v for k, v in row.items() if k in columns} for row in rows]
		return [copy.deepcopy(row) for row in rows]

	def get(self, collection: str, name: str) -> Optional[Dict[str, Any]]:
		self._check("get", collection)
		row = self.data[collection].get(name)
		return copy.deepcopy(row) if row else None

	def insert(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
		self._check("insert", collection)
		self.calls.append(("insert", collection))
		self._validate(collection, data, exclude_name=None)
		return self._write(collection, data)

	def update(self, collection: str, name: str, data: Dict[str, Any], fields: List[str]) -> Dict[str, Any]:
		self._check("update", collection)
		self.calls.append(("update", collection, name, tuple(fields)))
		current = self.data[collection][name]
		updated = dict(current)
		updated.update({field: self._store_value(field, data.get(field)) for field in fields})
		self._validate(collection, updated, exclude_name=name)
		self.data[collection][name] = updated
		return copy.deepcopy(updated)

	def delete(self, collection: str, name: str) -> bool:
		self._check("delete", collection)
		self.calls.append(("delete", collection, name))
		return self.data[collection].pop(name, None) is not None

	@contextmanager
	def atomic(self):
		snapshot = copy.deepcopy(self.data)
		try:
			yield
		except Exception:
			self.data = snapshot
			raise

	# --- internals ---

	def _check(self, operation: str, collection: str) -> None:
		error = self.failures.get((operation, collection))
		if error:
			raise error

	def _write(self, collection: str, values: Dict[str, Any]) -> Dict[str, Any]:
		self._counter += 1
		row = {k: self._store_value(k, v) for k, v in values.items()}
		row["name"] = row.get("name") or f"{_PREFIXES[collection]}-{self._counter:05d}"
		self.data[collection][row["name"]] = row
		return copy.deepcopy(row)

	def _store_value(self, column: str, value: Any) -> Any:
		if isinstance(value, bool):
			return int(value)
		if column in DATETIME_FIELDS and value not in (None, ""):
			return normalize_datetime(value)
		return copy.deepcopy(value)

	def _validate(self, collection: str, row: Dict[str, Any], exclude_name: Optional[str]) -> None:
		if not self.enforce_overlap or collection == "slots":
			return
		if collection == "appointments" and not row.get("status"):
			return

		exclude = {collection: exclude_name} if exclude_name else None
		result = check_store_overlap(
			row["equipment"], row["start_datetime"], row["end_datetime"], exclude=exclude, store=self
		)
		if result["has_overlap"]:
			raise ConflictError(
				f"Equipment {row['equipment']} is already booked",
				conflicts=result["overlapping_appointments"] + result["overlapping_drafts"],
			)

	def _match(self, collection: str, row: Dict[str, Any], path: str, op: str, value: Any) -> bool:
		column = resolve_field(collection, path)
		expected = resolve_value(column, value)
		actual = row.get(column)
		if isinstance(actual, bool):
			actual = int(actual)

		if op == "=":
			return actual == expected
		if op == "!=":
			return actual != expected
		if op == "in":
			return actual in expected
		if actual is None:
			return False
		if op == ">":
			return actual > expected
		if op == ">=":
			return actual >= expected
		if op == "<":
			return actual < expected
		if op == "<=":
			return actual <= expected
		raise ValueError(f"Unsupported operator {op}")
