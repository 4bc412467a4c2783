"""
Tests for scheduling/holds.py

Tests the tentative selection state machine.
"""

import unittest

from imaging_booking.imaging_booking.scheduling.exceptions import (
	ConflictError,
	SlotSelectionError,
	TentativeExistsError,
)
from imaging_booking.imaging_booking.scheduling.holds import (
	IDLE,
	TENTATIVE_ACCEPTED,
	TentativeHoldManager,
	snap_to_granularity,
)
from imaging_booking.imaging_booking.tests.utils import PROCEDURE, dt

SLOT_EVENT = {"display": "background", "slot_id": "SLOT-1", "resource_id": "EQ-1"}


class TestTentativeHoldManager(unittest.TestCase):
	"""Tests for TentativeHoldManager."""

	def setUp(self):
		"""Set up a manager with one blocking appointment 10:00-10:30 on EQ-1."""
		self.blocking = [{"id": "APT-1", "resource_id": "EQ-1", "start": dt("2030-03-04 10:00"), "end": dt("2030-03-04 10:30")}]
		self.holds = TentativeHoldManager(PROCEDURE, self.blocking, granularity_minutes=5)

	def test_initial_state(self):
		self.assertEqual(self.holds.state, IDLE)
		self.assertIsNone(self.holds.selection)

	def test_accepts_free_window(self):
		"""Test that 10:30 on EQ-1 with a 30 minute procedure is accepted next to 10:00-10:30."""
		selection = self.holds.click(SLOT_EVENT, dt("2030-03-04 10:30"))

		self.assertEqual(self.holds.state, TENTATIVE_ACCEPTED)
		self.assertEqual(selection.equipment, "EQ-1")
		self.assertEqual(selection.slot_id, "SLOT-1")
		self.assertEqual(selection.start, dt("2030-03-04 10:30"))
		self.assertEqual(selection.end, dt("2030-03-04 11:00"))
		self.assertEqual(selection.duration, 30)

	def test_duration_comes_from_mapping(self):
		"""Test that the end is start + the duration mapped for the clicked equipment."""
		event = dict(SLOT_EVENT, resource_id="EQ-2")
		selection = self.holds.click(event, dt("2030-03-04 10:00"))
		self.assertEqual(selection.end, dt("2030-03-04 10:45"))

	def test_conflict_returns_to_idle(self):
		"""Test that 10:15 overlaps 10:00-10:30 and the error carries the required duration."""
		with self.assertRaises(ConflictError) as ctx:
			self.holds.click(SLOT_EVENT, dt("2030-03-04 10:15"))

		self.assertEqual(ctx.exception.required_duration, 30)
		self.assertEqual(len(ctx.exception.conflicts), 1)
		self.assertEqual(self.holds.state, IDLE)
		self.assertIsNone(self.holds.selection)

	def test_second_click_rejected(self):
		"""Test that a second click with a selection held fails and keeps the first one."""
		first = self.holds.click(SLOT_EVENT, dt("2030-03-04 11:00"))

		with self.assertRaises(TentativeExistsError):
			self.holds.click(SLOT_EVENT, dt("2030-03-04 12:00"))

		self.assertEqual(self.holds.state, TENTATIVE_ACCEPTED)
		self.assertEqual(self.holds.selection, first)

	def test_clear_allows_new_selection(self):
		"""Test that clear() returns to Idle and a new click is accepted."""
		self.holds.click(SLOT_EVENT, dt("2030-03-04 11:00"))
		self.holds.clear()

		self.assertEqual(self.holds.state, IDLE)
		selection = self.holds.click(SLOT_EVENT, dt("2030-03-04 12:00"))
		self.assertEqual(selection.start, dt("2030-03-04 12:00"))

	def test_click_outside_open_slot(self):
		"""Test that clicks on non-background events are rejected."""
		with self.assertRaises(SlotSelectionError):
			self.holds.click({"display": "auto", "resource_id": "EQ-1"}, dt("2030-03-04 11:00"))
		with self.assertRaises(SlotSelectionError):
			self.holds.click(None, dt("2030-03-04 11:00"))
		self.assertEqual(self.holds.state, IDLE)

	def test_unmapped_equipment(self):
		"""Test that equipment the procedure cannot use is rejected."""
		with self.assertRaises(SlotSelectionError):
			self.holds.click(dict(SLOT_EVENT, resource_id="EQ-9"), dt("2030-03-04 11:00"))

	def test_click_is_snapped(self):
		"""Test snapping down to the granularity and dropping seconds."""
		selection = self.holds.click(SLOT_EVENT, dt("2030-03-04 11:07:31.250"))
		self.assertEqual(selection.start, dt("2030-03-04 11:05"))

	def test_refresh_replaces_snapshot(self):
		"""Test that a refresh without the appointment frees its window."""
		self.holds.refresh([])
		selection = self.holds.click(SLOT_EVENT, dt("2030-03-04 10:15"))
		self.assertEqual(selection.start, dt("2030-03-04 10:15"))

	def test_snap_to_granularity(self):
		self.assertEqual(snap_to_granularity(dt("2030-03-04 09:59:59"), 15), dt("2030-03-04 09:45"))
		self.assertEqual(snap_to_granularity(dt("2030-03-04 09:59:59"), 1), dt("2030-03-04 09:59"))


def run_tests():
	"""Run all tests in this module."""
	unittest.main()
