# Copyright (c) 2026, Imaging Booking Contributors and contributors
# For license information, please see license.txt

"""
Imaging Procedure DocType

Lists the equipment a procedure can run on, each with its fixed duration.
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import cint


class ImagingProcedure(Document):
	"""
	Validations:
	- At least one equipment row
	- Duration > 0 minutes
	- Each equipment listed once
	"""

	def validate(self) -> None:
		if not self.equipments:
			frappe.throw(_("Debe agregar al menos un equipo"))

		seen = set()
		for idx, row in enumerate(self.equipments, 1):
			if cint(row.duration) <= 0:
				frappe.throw(_("Fila {0}: Duration debe ser mayor que 0").format(idx))

			if row.equipment in seen:
				frappe.throw(_("Fila {0}: el equipo {1} esta repetido").format(idx, row.equipment))
			seen.add(row.equipment)

		if cint(self.reporting_delay) < 0:
			frappe.throw(_("Reporting Delay no puede ser negativo"))
