# Copyright (c) 2026, Imaging Booking Contributors and contributors
# For license information, please see license.txt

"""
Appointment Notification Service

Tells the notification service when an appointment is booked, rescheduled or
cancelled:

	POST {imaging_booking_notification_url}/api/notify
	{"patientId", "type", "appointmentId", "data": {"procedure", "date", "time", "location"}}

Delivery runs as a background job and never fails the booking; errors are
logged only. Other apps can enrich "data" via the hook:
  - imaging_booking_notification_data: fn(notification_type, appointment) -> dict
"""

from typing import Any, Dict, Optional

import frappe
from frappe.integrations.utils import make_post_request

from imaging_booking.imaging_booking.scheduling.config import get_notification_url
from imaging_booking.imaging_booking.scheduling.exceptions import NotificationError
from imaging_booking.imaging_booking.scheduling.overlap import normalize_datetime

APPOINTMENT_BOOKED = "appointment_booked"
APPOINTMENT_RESCHEDULED = "appointment_rescheduled"
APPOINTMENT_CANCELLED = "appointment_cancelled"

NOTIFICATION_TYPES = (APPOINTMENT_BOOKED, APPOINTMENT_RESCHEDULED, APPOINTMENT_CANCELLED)

DEFAULT_PROCEDURE_LABEL = "Medical Imaging"
DEFAULT_LOCATION = "See portal for details"


def build_notification_payload(
	notification_type: str,
	appointment: Dict[str, Any],
	patient: Optional[str] = None,
) -> Dict[str, Any]:
	"""
	Construye el payload para el servicio de notificaciones.

	Args:
		notification_type: appointment_booked | appointment_rescheduled | appointment_cancelled
		appointment: appointment record (DocType columns)
		patient: overrides appointment["patient"]

	Returns:
		dict: {"patientId", "type", "appointmentId", "data": {...}}
	"""
	if notification_type not in NOTIFICATION_TYPES:
		raise ValueError(f"Unknown notification type: {notification_type}")

	start = normalize_datetime(appointment["start_datetime"])

	data = {
		"procedure": appointment.get("procedure_name") or DEFAULT_PROCEDURE_LABEL,
		# e.g. "Monday, March 2, 2026" / "09:30 AM"
		"date": f"{start.strftime('%A, %B')} {start.day}, {start.year}",
		"time": start.strftime("%I:%M %p"),
		"location": appointment.get("service_name") or DEFAULT_LOCATION,
	}

	# --- Enriched data from other apps ---
	for hook_path in frappe.get_hooks("imaging_booking_notification_data"):
		try:
			extra = frappe.get_attr(hook_path)(notification_type, appointment)
			if extra:
				data.update(extra)
		except Exception:
			frappe.log_error(
				title="Appointment Notification",
				message=f"Error in imaging_booking_notification_data hook: {hook_path}",
			)

	return {
		"patientId": patient or appointment.get("patient"),
		"type": notification_type,
		"appointmentId": appointment["name"],
		"data": data,
	}


def enqueue_appointment_notification(notification_type: str, appointment: Dict[str, Any]) -> None:
	"""
	Builds the payload now and sends it after the transaction commits.

	The payload is built in the request so a cancelled or moved appointment is
	reported with the values the patient just saw.
	"""
	try:
		payload = build_notification_payload(notification_type, appointment)
		frappe.enqueue(
			"imaging_booking.imaging_booking.notifications.appointment.send_appointment_notification",
			payload=payload,
			queue="short",
			enqueue_after_commit=True,
		)
	except Exception as e:
		frappe.log_error(
			title="Appointment Notification Failed",
			message=f"Could not enqueue {notification_type} for {appointment.get('name')}: {str(e)}",
		)


def send_appointment_notification(payload: Dict[str, Any]) -> bool:
	"""
	Posts the payload to the notification service.

	Returns:
		bool: True if delivered
	"""
	url = f"{get_notification_url()}/api/notify"

	try:
		try:
			make_post_request(url, json=payload)
		except Exception as e:
			raise NotificationError(str(e)) from e

		frappe.logger("imaging_booking").info(
			f"Notification {payload.get('type')} sent for appointment {payload.get('appointmentId')}"
		)
		return True

	except NotificationError as e:
		frappe.log_error(
			title="Appointment Notification Failed",
			message=f"Failed to send {payload.get('type')} for {payload.get('appointmentId')} to {url}: {str(e)}",
		)
		return False
