"""
Equipment Locks

Serialises booking writes per equipment. The DocType controllers take the
lock before the overlap check, so two sessions writing the same window run
one after the other and the second one sees the first one's row.

MariaDB: GET_LOCK is held by the connection, so it is released explicitly
after commit or rollback. Postgres: transaction-level advisory lock, released
by the database at transaction end.
"""

import frappe
from frappe import _

from imaging_booking.imaging_booking.scheduling.config import get_lock_timeout_seconds
from imaging_booking.imaging_booking.scheduling.exceptions import PersistenceError


def get_lock_name(equipment: str) -> str:
	return f"imaging_booking:equipment:{equipment}"


def lock_equipment(equipment: str, timeout: int = None) -> str:
	"""
	Takes the write lock of an equipment until the current transaction ends.

	Re-entrant within one connection (promote and reschedule may lock the
	same equipment twice).

	Args:
		equipment: equipment id
		timeout: seconds to wait, defaults to site config

	Returns:
		str: lock name

	Raises:
		PersistenceError: the lock was not granted in time
	"""
	lock_name = get_lock_name(equipment)

	if frappe.db.db_type == "postgres":
		frappe.db.sql("select pg_advisory_xact_lock(hashtext(%s))", (lock_name,))
		return lock_name

	timeout = timeout or get_lock_timeout_seconds()
	acquired = frappe.db.sql("select get_lock(%s, %s)", (lock_name, timeout))[0][0]

	if not acquired:
		frappe.logger("imaging_booking").warning(f"Lock {lock_name} not granted after {timeout}s")
		frappe.throw(
			_("El equipo {0} esta ocupado, intente de nuevo").format(equipment),
			PersistenceError,
		)

	def release():
		frappe.db.sql("select release_lock(%s)", (lock_name,))

	frappe.db.after_commit.add(release)
	frappe.db.after_rollback.add(release)
	return lock_name
