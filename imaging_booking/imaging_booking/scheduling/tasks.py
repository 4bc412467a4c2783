"""
Scheduled Tasks

Background tasks that run periodically:
- sweep_expired_drafts: deletes drafts past draft_expires_at (every 15 min)
- reconcile_orphaned_drafts: deletes drafts whose appointment already exists (hourly)
"""

from datetime import datetime
from typing import Any, Optional

import frappe

from imaging_booking.imaging_booking.scheduling.overlap import normalize_datetime, utc_now
from imaging_booking.imaging_booking.scheduling.query import build_params
from imaging_booking.imaging_booking.scheduling.store import get_store


def sweep_expired_drafts(store: Any = None, now: Optional[datetime] = None) -> int:
	"""
	Elimina los borradores expirados.
	Se ejecuta cada 15 minutos via cron (configurado en hooks.py).

	Algoritmo:
		1. Buscar drafts con draft_expires_at < now
		2. Eliminar cada uno (un error no detiene a los demas)
		3. Log cantidad de drafts eliminados

	Returns:
		int: Cantidad de drafts eliminados
	"""
	store = store or get_store()
	now = normalize_datetime(now or utc_now())

	# Drafts without draft_expires_at are never swept here
	expired = store.find(
		"appointments_drafts",
		build_params(
			filters={"draft_expires_at": {"$lt": now}},
			projection=["_id", "slot.equipment._id", "start", "draft_expires_at"],
		),
	)

	deleted_count = 0

	for draft in expired:
		try:
			with store.atomic():
				if store.delete("appointments_drafts", draft["name"]):
					deleted_count += 1

			frappe.logger("imaging_booking").info(
				f"Draft expirado eliminado: {draft['name']} "
				f"(Equipment: {draft.get('equipment')}, Expiro: {draft.get('draft_expires_at')})"
			)

		except Exception as e:
			frappe.logger("imaging_booking").error(
				f"Error al eliminar Draft expirado {draft['name']}: {str(e)}"
			)
			continue

	if deleted_count > 0:
		frappe.logger("imaging_booking").info(
			f"sweep_expired_drafts: {deleted_count} Drafts expirados eliminados"
		)

	return deleted_count


def reconcile_orphaned_drafts(store: Any = None) -> int:
	"""
	Elimina borradores cuya cita ya fue creada.

	Promote deletes the draft and inserts the appointment in one transaction;
	this sweep only catches drafts left behind by an interrupted request.
	A draft is orphaned when an active appointment exists for the same
	patient, equipment, start and end.

	Returns:
		int: Cantidad de drafts eliminados
	"""
	store = store or get_store()

	drafts = store.find(
		"appointments_drafts",
		build_params(projection=["_id", "fk_patient", "slot.equipment._id", "start", "end"]),
	)

	deleted_count = 0

	for draft in drafts:
		try:
			matches = store.find(
				"appointments",
				build_params(
					filters={
						"fk_patient": draft["patient"],
						"slot.equipment._id": draft["equipment"],
						"start": normalize_datetime(draft["start_datetime"]),
						"end": normalize_datetime(draft["end_datetime"]),
						"status": True,
					},
					projection=["_id"],
				),
			)
			if not matches:
				continue

			with store.atomic():
				if store.delete("appointments_drafts", draft["name"]):
					deleted_count += 1

			frappe.logger("imaging_booking").info(
				f"Draft huerfano eliminado: {draft['name']} (Appointment: {matches[0]['name']})"
			)

		except Exception as e:
			frappe.logger("imaging_booking").error(
				f"Error al reconciliar Draft {draft['name']}: {str(e)}"
			)
			continue

	if deleted_count > 0:
		frappe.logger("imaging_booking").info(
			f"reconcile_orphaned_drafts: {deleted_count} Drafts huerfanos eliminados"
		)

	return deleted_count
