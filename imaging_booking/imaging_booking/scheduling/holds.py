"""
Tentative Hold Manager

Turns a click on an open slot into at most one validated candidate selection
per booking session.

States:
	Idle -> CandidateProposed -> TentativeAccepted
	                          -> Rejected (back to Idle right away)

The candidate is validated against a snapshot of blocking events taken when
the calendar was loaded or last refreshed; nothing is re-read per click.
"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import frappe
from frappe import _

from imaging_booking.imaging_booking.scheduling.config import get_slot_granularity_minutes
from imaging_booking.imaging_booking.scheduling.exceptions import (
	ConflictError,
	SlotSelectionError,
	TentativeExistsError,
)
from imaging_booking.imaging_booking.scheduling.overlap import find_conflicts, normalize_datetime
from imaging_booking.imaging_booking.scheduling.procedures import get_equipment_mapping

IDLE = "Idle"
CANDIDATE_PROPOSED = "CandidateProposed"
TENTATIVE_ACCEPTED = "TentativeAccepted"


@dataclass(frozen=True)
class TentativeSelection:
	"""In-memory candidate window. Never persisted unless turned into a draft."""

	equipment: str
	start: datetime
	end: datetime
	slot_id: Optional[str] = None

	@property
	def duration(self) -> int:
		return int((self.end - self.start).total_seconds() // 60)

	def as_candidate(self) -> Dict[str, Any]:
		return {"resource_id": self.equipment, "start": self.start, "end": self.end}

	def as_dict(self) -> Dict[str, Any]:
		return {
			"equipment": self.equipment,
			"slot_id": self.slot_id,
			"start": self.start.isoformat(),
			"end": self.end.isoformat(),
			"duration": self.duration,
		}


def snap_to_granularity(value: datetime, minutes: int) -> datetime:
	"""Floors a timestamp to the slot grid (e.g. 10:07:31 -> 10:05 for 5 minutes)."""
	value = normalize_datetime(value).replace(second=0, microsecond=0)
	if minutes > 1:
		value -= timedelta(minutes=value.minute % minutes)
	return value


class TentativeHoldManager:
	"""
	Holds the single tentative selection of a booking session.

	Args:
		procedure: procedure dict; its equipment mapping gives the durations
		blocking_events: snapshot from the availability aggregator
		granularity_minutes: click snapping grid (defaults to site config)
	"""

	def __init__(
		self,
		procedure: Dict[str, Any],
		blocking_events: Iterable[Dict[str, Any]],
		granularity_minutes: Optional[int] = None,
	):
		self.procedure = procedure
		self.mapping = get_equipment_mapping(procedure)
		self.blocking_events: List[Dict[str, Any]] = list(blocking_events)
		self.granularity_minutes = granularity_minutes or get_slot_granularity_minutes()
		self._state = IDLE
		self._selection: Optional[TentativeSelection] = None

	@property
	def state(self) -> str:
		return self._state

	@property
	def selection(self) -> Optional[TentativeSelection]:
		return self._selection

	def refresh(self, blocking_events: Iterable[Dict[str, Any]]) -> None:
		"""Replaces the blocking-events snapshot (explicit calendar refresh)."""
		self.blocking_events = list(blocking_events)

	def click(self, event: Dict[str, Any], clicked_at: Any) -> TentativeSelection:
		"""
		Proposes a candidate from a click on a background (open slot) event.

		Args:
			event: structured payload of the clicked event
				{"display": "background", "slot_id": str, "resource_id": str}
			clicked_at: timestamp under the pointer

		Returns:
			TentativeSelection: the accepted selection

		Raises:
			SlotSelectionError: the click was not on an open slot of mapped equipment
			TentativeExistsError: a selection is already held
			ConflictError: the window overlaps a blocking event (carries required_duration)
		"""
		if not event or event.get("display") != "background":
			frappe.throw(_("Please select an open slot"), SlotSelectionError)

		if self._state == TENTATIVE_ACCEPTED:
			frappe.throw(
				_("A tentative selection already exists. Remove it before choosing another slot."),
				TentativeExistsError,
			)

		equipment = event.get("resource_id")
		duration = self.mapping.get(equipment)
		if not duration:
			frappe.throw(
				_("Equipment {0} is not available for this procedure").format(equipment),
				SlotSelectionError,
			)

		start = snap_to_granularity(clicked_at, self.granularity_minutes)
		candidate = TentativeSelection(
			equipment=equipment,
			start=start,
			end=start + timedelta(minutes=duration),
			slot_id=event.get("slot_id"),
		)
		self._state = CANDIDATE_PROPOSED

		conflicts = find_conflicts(candidate.as_candidate(), self.blocking_events)
		if conflicts:
			# Rejected: notify the caller and go straight back to Idle
			self._state = IDLE
			frappe.logger("imaging_booking").info(
				f"Candidate {candidate.start.isoformat()} on {equipment} rejected, "
				f"{len(conflicts)} conflicting event(s)"
			)
			raise ConflictError(
				_("The selected window does not fit. This procedure needs {0} free minutes on the equipment.").format(duration),
				required_duration=duration,
				conflicts=conflicts,
			)

		self._selection = candidate
		self._state = TENTATIVE_ACCEPTED
		return candidate

	def clear(self) -> None:
		"""Removes the tentative selection, if any."""
		self._selection = None
		self._state = IDLE
