"""
Booking Configuration

Site-level settings read from site_config.json via frappe.conf.
"""

import frappe
from frappe.utils import cint

DEFAULT_DRAFT_TTL_MINUTES = 15
DEFAULT_SLOT_GRANULARITY_MINUTES = 5
DEFAULT_NOTIFICATION_URL = "http://localhost:3004"
DEFAULT_LOCK_TIMEOUT_SECONDS = 10

# Workflow stages of a confirmed appointment
FLOW_STATE_SCHEDULED = "A01"
FLOW_STATES = {
	"A01": "Scheduled",
	"A02": "Checked In",
	"A03": "In Progress",
	"A04": "Completed",
	"A05": "Reported",
}


def get_draft_ttl_minutes() -> int:
	"""Minutes a draft keeps blocking its window after creation."""
	return cint(frappe.conf.get("imaging_booking_draft_ttl_minutes")) or DEFAULT_DRAFT_TTL_MINUTES


def get_slot_granularity_minutes() -> int:
	"""Minute granularity that calendar clicks are snapped to."""
	return (
		cint(frappe.conf.get("imaging_booking_slot_granularity_minutes"))
		or DEFAULT_SLOT_GRANULARITY_MINUTES
	)


def get_notification_url() -> str:
	url = frappe.conf.get("imaging_booking_notification_url") or DEFAULT_NOTIFICATION_URL
	return url.rstrip("/")


def get_lock_timeout_seconds() -> int:
	"""Seconds a booking write waits for the equipment lock."""
	return cint(frappe.conf.get("imaging_booking_lock_timeout_seconds")) or DEFAULT_LOCK_TIMEOUT_SECONDS
