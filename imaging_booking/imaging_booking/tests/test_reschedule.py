"""
Tests for scheduling/reschedule.py

Tests moving an existing appointment without creating drafts.
"""

import unittest

from imaging_booking.imaging_booking.scheduling.availability import fetch_availability
from imaging_booking.imaging_booking.scheduling.exceptions import BookingValidationError, ConflictError, PersistenceError
from imaging_booking.imaging_booking.scheduling.holds import TentativeHoldManager
from imaging_booking.imaging_booking.scheduling.intake import build_private_health
from imaging_booking.imaging_booking.scheduling.reschedule import RESCHEDULE_FIELDS, RescheduleAdapter
from imaging_booking.imaging_booking.tests.utils import PROCEDURE, MemoryStore, dt

RANGE = (dt("2030-03-04 00:00"), dt("2030-03-05 00:00"))
NOW = dt("2030-03-01 08:00")


class TestRescheduleAdapter(unittest.TestCase):
	"""Tests for RescheduleAdapter."""

	def setUp(self):
		"""Set up a slot and the appointment to move (10:00-10:30 on EQ-1)."""
		self.store = MemoryStore()
		self.slot = self.store.add_slot("EQ-1", "2030-03-04 08:00", "2030-03-04 12:00")
		self.appointment = self.store.add_appointment(
			"EQ-1", "2030-03-04 10:00", "2030-03-04 10:30",
			contact="3001234567", private_health=build_private_health(170, 70),
		)
		self.notifications = []
		self.adapter = RescheduleAdapter(
			self.appointment["name"],
			store=self.store,
			notify=lambda kind, appointment: self.notifications.append((kind, appointment["name"])),
		)
		self.adapter.load(now=NOW)

	def select(self, clicked_at):
		result = self.adapter.fetch_availability(PROCEDURE, date_range=RANGE, now=NOW)
		holds = TentativeHoldManager(PROCEDURE, result.blocking_events, granularity_minutes=5)
		event = result.background_events[0]
		selection = holds.click(event, dt(clicked_at))
		self.adapter.hold(selection)
		return selection

	def test_accepts_window_overlapping_original(self):
		"""Test that 10:15-10:45 is accepted because the original 10:00-10:30 is excluded."""
		self.select("2030-03-04 10:15")
		updated = self.adapter.confirm()

		self.assertEqual(updated["name"], self.appointment["name"])
		self.assertEqual(updated["start_datetime"], dt("2030-03-04 10:15"))
		self.assertEqual(updated["end_datetime"], dt("2030-03-04 10:45"))
		self.assertEqual(self.store.data["appointments_drafts"], {})
		self.assertEqual(self.notifications, [("appointment_rescheduled", self.appointment["name"])])

	def test_same_window_conflicts_without_reschedule(self):
		"""Test that 10:15-10:45 is rejected once the original is not excluded."""
		result = fetch_availability(
			self.adapter.imaging, PROCEDURE, date_range=RANGE, reschedule=None, store=self.store, now=NOW,
		)
		holds = TentativeHoldManager(PROCEDURE, result.blocking_events, granularity_minutes=5)

		with self.assertRaises(ConflictError):
			holds.click(result.background_events[0], dt("2030-03-04 10:15"))

		self.select("2030-03-04 10:15")
		self.assertEqual(self.adapter.confirm()["start_datetime"], dt("2030-03-04 10:15"))

	def test_field_level_update(self):
		"""Test that only the window fields and private_health are written."""
		self.select("2030-03-04 11:00")
		self.adapter.confirm(build_private_health(180, 80))

		update_calls = [c for c in self.store.calls if c[0] == "update"]
		self.assertEqual(update_calls, [("update", "appointments", self.appointment["name"], tuple(RESCHEDULE_FIELDS))])

		stored = self.store.get("appointments", self.appointment["name"])
		self.assertEqual(stored["contact"], "3001234567")
		self.assertEqual(stored["flow_state"], "A01")
		self.assertEqual(stored["private_health"]["height"], 180)
		self.assertEqual(stored["slot"], self.slot["name"])

	def test_never_creates_drafts(self):
		self.select("2030-03-04 11:00")
		self.adapter.confirm()
		self.assertNotIn(("insert", "appointments_drafts"), self.store.calls)

	def test_other_appointment_still_blocks(self):
		"""Test that only the rescheduled appointment is excluded."""
		other = self.store.add_appointment("EQ-1", "2030-03-04 11:00", "2030-03-04 11:30")
		result = self.adapter.fetch_availability(PROCEDURE, date_range=RANGE, now=NOW)
		self.assertEqual([e.id for e in result.blocking_events], [other["name"]])

	def test_abandon_leaves_store_untouched(self):
		"""Test that abandon only clears the in-memory selection."""
		self.select("2030-03-04 11:00")
		before = self.store.get("appointments", self.appointment["name"])

		self.adapter.abandon()

		self.assertIsNone(self.adapter.selection)
		self.assertEqual(self.store.get("appointments", self.appointment["name"]), before)
		self.assertEqual(self.notifications, [])

	def test_confirm_without_selection(self):
		with self.assertRaises(BookingValidationError):
			self.adapter.confirm()

	def test_update_failure(self):
		"""Test that a store failure raises PersistenceError and keeps the selection."""
		self.select("2030-03-04 11:00")
		self.store.fail("update", "appointments")

		with self.assertRaises(PersistenceError):
			self.adapter.confirm()

		self.assertIsNotNone(self.adapter.selection)
		self.assertEqual(self.store.get("appointments", self.appointment["name"])["start_datetime"], dt("2030-03-04 10:00"))

	def test_only_future_scheduled_appointments(self):
		"""Test that past, checked-in and cancelled appointments cannot be moved."""
		past = self.store.add_appointment("EQ-2", "2030-02-01 10:00", "2030-02-01 10:30")
		checked_in = self.store.add_appointment("EQ-2", "2030-03-04 10:00", "2030-03-04 10:30", flow_state="A02")
		cancelled = self.store.add_appointment("EQ-2", "2030-03-05 10:00", "2030-03-05 10:30", status=0)

		for appointment in (past, checked_in, cancelled):
			with self.assertRaises(BookingValidationError):
				RescheduleAdapter(appointment["name"], store=self.store).load(now=NOW)


def run_tests():
	"""Run all tests in this module."""
	unittest.main()
