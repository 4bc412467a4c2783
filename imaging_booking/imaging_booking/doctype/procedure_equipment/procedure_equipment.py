# Copyright (c) 2026, Imaging Booking Contributors and contributors
# For license information, please see license.txt

from frappe.model.document import Document


class ProcedureEquipment(Document):
	pass
