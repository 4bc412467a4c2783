"""
Procedure Equipment Mapping

A procedure lists the equipment it can run on, each with a fixed duration.
The duration decides the end of a candidate window from the clicked start.
"""

from typing import Any, Dict, Optional

import frappe
from frappe import _
from frappe.utils import cint


def get_procedure(procedure_name: str) -> Dict[str, Any]:
	"""
	Loads an Imaging Procedure as a plain dict.

	Returns:
		dict: {
			"name": "PROC-0001",
			"procedure_name": "Brain MRI",
			"reporting_delay": 3,
			"equipments": [{"equipment": "EQ-01", "duration": 30}, ...]
		}
	"""
	if not procedure_name or not frappe.db.exists("Imaging Procedure", procedure_name):
		frappe.throw(_("Imaging Procedure {0} does not exist").format(procedure_name), frappe.DoesNotExistError)

	doc = frappe.get_doc("Imaging Procedure", procedure_name)
	return {
		"name": doc.name,
		"procedure_name": doc.procedure_name,
		"reporting_delay": cint(doc.reporting_delay),
		"equipments": [
			{"equipment": row.equipment, "duration": cint(row.duration)}
			for row in doc.equipments
		],
	}


def get_equipment_mapping(procedure: Dict[str, Any]) -> Dict[str, int]:
	"""Returns {equipment_id: duration_minutes} for the procedure."""
	return {
		row["equipment"]: cint(row["duration"])
		for row in procedure.get("equipments") or []
		if row.get("equipment") and cint(row.get("duration")) > 0
	}


def get_duration(procedure: Dict[str, Any], equipment: str) -> Optional[int]:
	"""Mapped duration in minutes, or None if the equipment is not eligible."""
	return get_equipment_mapping(procedure).get(equipment)


def get_procedure_label(procedure: Dict[str, Any]) -> str:
	return procedure.get("procedure_name") or procedure.get("name") or ""
