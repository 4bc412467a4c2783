# Copyright (c) 2026, Imaging Booking Contributors and contributors
# For license information, please see license.txt

"""
Appointment Draft DocType

Short-lived reservation of an equipment window while the patient confirms.
A live draft blocks its window for every other session until it is promoted,
discarded or expires.
"""

from datetime import timedelta

import frappe
from frappe import _
from frappe.model.document import Document

from imaging_booking.imaging_booking.scheduling.config import get_draft_ttl_minutes
from imaging_booking.imaging_booking.scheduling.exceptions import ConflictError
from imaging_booking.imaging_booking.scheduling.locks import lock_equipment
from imaging_booking.imaging_booking.scheduling.overlap import (
	check_store_overlap,
	normalize_datetime,
	utc_now,
)


class AppointmentDraft(Document):
	"""
	Flujo:
	1. Paciente selecciona un slot -> se crea el Draft (bloquea la ventana)
	2. Confirma -> el Draft se elimina y se crea la Imaging Appointment
	3. Si no confirma a tiempo, el Draft expira y lo elimina el cron
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.

		Ejecuta:
		1. Validar consistencia de fechas
		2. Calcular draft_expires_at si es Draft nuevo
		3. Bloquear si la ventana se cruza con otra cita o draft vivo
		"""
		self._validate_datetime_consistency()
		self._calculate_draft_expiration()
		self._validate_no_overlap()

	def _validate_datetime_consistency(self) -> None:
		if not self.start_datetime or not self.end_datetime:
			frappe.throw(_("Start y End son requeridos"))

		if normalize_datetime(self.start_datetime) >= normalize_datetime(self.end_datetime):
			frappe.throw(_("Start debe ser menor que End"))

	def _calculate_draft_expiration(self) -> None:
		if not self.draft_expires_at:
			self.draft_expires_at = utc_now() + timedelta(minutes=get_draft_ttl_minutes())

	def _validate_no_overlap(self) -> None:
		lock_equipment(self.equipment)
		result = check_store_overlap(
			self.equipment,
			self.start_datetime,
			self.end_datetime,
			exclude={"appointments_drafts": self.name} if not self.is_new() else None,
			for_update=True,
		)

		if result["has_overlap"]:
			raise ConflictError(
				_("El equipo {0} ya esta reservado en ese horario").format(self.equipment),
				conflicts=result["overlapping_appointments"] + result["overlapping_drafts"],
			)
