# Copyright (c) 2026, Imaging Booking Contributors and contributors
# For license information, please see license.txt

"""
Imaging Appointment DocType

Confirmed booking of an equipment window. Active appointments (status = 1)
block their window; cancelled ones (status = 0) are kept for history.
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import cint

from imaging_booking.imaging_booking.scheduling.config import FLOW_STATES
from imaging_booking.imaging_booking.scheduling.exceptions import ConflictError
from imaging_booking.imaging_booking.scheduling.locks import lock_equipment
from imaging_booking.imaging_booking.scheduling.overlap import check_store_overlap, normalize_datetime


class ImagingAppointment(Document):
	"""
	Imaging Appointment with scheduling validation.

	The overlap test runs against the database on every save of an active
	appointment while holding the equipment lock, so two sessions racing for
	the same window cannot both win.
	"""

	def validate(self) -> None:
		"""
		Validación antes de guardar.

		Ejecuta:
		1. Validar consistencia de fechas
		2. Validar flow_state
		3. Bloquear si la ventana se cruza con otra cita activa o draft vivo
		"""
		self._validate_datetime_consistency()
		self._validate_flow_state()
		self._validate_no_overlap()

	def _validate_datetime_consistency(self) -> None:
		"""Valida que start_datetime < end_datetime."""
		if not self.start_datetime or not self.end_datetime:
			frappe.throw(_("Start y End son requeridos"))

		if normalize_datetime(self.start_datetime) >= normalize_datetime(self.end_datetime):
			frappe.throw(_("Start debe ser menor que End"))

		if self.report_before and normalize_datetime(self.report_before) < normalize_datetime(self.start_datetime):
			frappe.throw(_("Report Before no puede ser anterior a Start"))

	def _validate_flow_state(self) -> None:
		if self.flow_state not in FLOW_STATES:
			frappe.throw(_("Flow State invalido: {0}").format(self.flow_state))

	def _validate_no_overlap(self) -> None:
		# Cancelled appointments free their window
		if not cint(self.status):
			return

		if not self.is_new() and not self._window_changed() and not self.has_value_changed("status"):
			return

		lock_equipment(self.equipment)
		result = check_store_overlap(
			self.equipment,
			self.start_datetime,
			self.end_datetime,
			exclude={"appointments": self.name} if not self.is_new() else None,
			for_update=True,
		)

		if result["has_overlap"]:
			raise ConflictError(
				_("El equipo {0} ya esta reservado en ese horario").format(self.equipment),
				conflicts=result["overlapping_appointments"] + result["overlapping_drafts"],
			)

	def _window_changed(self) -> bool:
		return any(
			self.has_value_changed(field)
			for field in ("equipment", "start_datetime", "end_datetime")
		)
