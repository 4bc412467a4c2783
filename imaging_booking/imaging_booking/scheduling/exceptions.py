"""
Booking Exceptions

All user-facing booking errors derive from frappe.ValidationError so that
whitelisted methods return them as messages instead of server errors.
"""

import frappe


class BookingValidationError(frappe.ValidationError):
	"""Form or field constraint failed. Raised before any write."""


class SlotSelectionError(frappe.ValidationError):
	"""The click did not land on an open slot of a bookable equipment."""


class TentativeExistsError(frappe.ValidationError):
	"""A tentative selection already exists and must be cleared first."""


class ConflictError(frappe.ValidationError):
	"""
	The candidate window overlaps a blocking event on the same equipment.

	Attributes:
		required_duration: minutes the procedure needs on that equipment
		conflicts: blocking events that caused the rejection
	"""

	http_status_code = 409

	def __init__(self, message=None, required_duration=None, conflicts=None):
		super().__init__(message)
		self.required_duration = required_duration
		self.conflicts = conflicts or []


class PersistenceError(frappe.ValidationError):
	"""The store rejected a draft/appointment write. Retried only by the user."""


class DraftSaveError(PersistenceError):
	"""The draft could not be saved; the selection has to be made again."""


class NotificationError(Exception):
	"""Notification delivery failed. Logged, never surfaced."""
