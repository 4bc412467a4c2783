"""
Tests for scheduling/tasks.py

Tests the expired-draft sweep and the orphaned-draft reconciliation.
"""

import unittest

from imaging_booking.imaging_booking.scheduling.tasks import reconcile_orphaned_drafts, sweep_expired_drafts
from imaging_booking.imaging_booking.tests.utils import MemoryStore, dt

NOW = dt("2030-03-01 08:00")


class TestTasks(unittest.TestCase):
	"""Tests for scheduled task functions."""

	def setUp(self):
		"""Set up an empty store."""
		self.store = MemoryStore(enforce_overlap=False)

	def test_sweep_returns_count(self):
		"""Test that sweep_expired_drafts returns a count."""
		result = sweep_expired_drafts(store=self.store, now=NOW)
		self.assertEqual(result, 0)

	def test_sweep_deletes_expired(self):
		"""Test that expired drafts are deleted and live ones kept."""
		expired = self.store.add_draft("EQ-1", "2030-03-04 10:00", "2030-03-04 10:30", draft_expires_at=dt("2030-03-01 07:59"))
		live = self.store.add_draft("EQ-1", "2030-03-04 11:00", "2030-03-04 11:30", draft_expires_at=dt("2030-03-01 08:10"))

		count = sweep_expired_drafts(store=self.store, now=NOW)

		self.assertEqual(count, 1)
		self.assertIsNone(self.store.get("appointments_drafts", expired["name"]))
		self.assertIsNotNone(self.store.get("appointments_drafts", live["name"]))

	def test_sweep_skips_drafts_without_expiry(self):
		"""Test that drafts without draft_expires_at are not swept."""
		draft = self.store.add_draft("EQ-1", "2030-03-04 10:00", "2030-03-04 10:30", draft_expires_at=None)

		self.assertEqual(sweep_expired_drafts(store=self.store, now=NOW), 0)
		self.assertIsNotNone(self.store.get("appointments_drafts", draft["name"]))

	def test_sweep_continues_after_error(self):
		"""Test that a failing delete is logged and the sweep goes on."""
		self.store.add_draft("EQ-1", "2030-03-04 10:00", "2030-03-04 10:30", draft_expires_at=dt("2030-03-01 07:00"))
		self.store.fail("delete", "appointments_drafts")

		self.assertEqual(sweep_expired_drafts(store=self.store, now=NOW), 0)

	def test_reconcile_deletes_orphaned_drafts(self):
		"""Test that a draft whose appointment exists is deleted."""
		appointment = self.store.add_appointment("EQ-1", "2030-03-04 10:00", "2030-03-04 10:30", patient="p@example.com")
		orphan = self.store.add_draft("EQ-1", "2030-03-04 10:00", "2030-03-04 10:30", patient="p@example.com")
		pending = self.store.add_draft("EQ-1", "2030-03-04 10:00", "2030-03-04 10:30", patient="q@example.com")

		count = reconcile_orphaned_drafts(store=self.store)

		self.assertEqual(count, 1)
		self.assertIsNone(self.store.get("appointments_drafts", orphan["name"]))
		self.assertIsNotNone(self.store.get("appointments_drafts", pending["name"]))
		self.assertIsNotNone(self.store.get("appointments", appointment["name"]))

	def test_reconcile_ignores_cancelled_appointments(self):
		"""Test that a cancelled appointment does not orphan a draft."""
		self.store.add_appointment("EQ-1", "2030-03-04 10:00", "2030-03-04 10:30", patient="p@example.com", status=0)
		draft = self.store.add_draft("EQ-1", "2030-03-04 10:00", "2030-03-04 10:30", patient="p@example.com")

		self.assertEqual(reconcile_orphaned_drafts(store=self.store), 0)
		self.assertIsNotNone(self.store.get("appointments_drafts", draft["name"]))


def run_tests():
	"""Run all tests in this module."""
	unittest.main()
