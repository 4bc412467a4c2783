# Copyright (c) 2026, Imaging Booking Contributors and contributors
# For license information, please see license.txt

"""
Imaging Slot DocType

Open window of an equipment. Slots are read-only availability markers and
never block a booking.
"""

import frappe
from frappe import _
from frappe.model.document import Document
from frappe.utils import get_datetime


class ImagingSlot(Document):
	def validate(self) -> None:
		if get_datetime(self.start_datetime) >= get_datetime(self.end_datetime):
			frappe.throw(_("Start debe ser menor que End"))
