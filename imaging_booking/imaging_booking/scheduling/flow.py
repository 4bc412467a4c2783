"""
Booking Flow

One object owns the booking session (imaging context, procedure, selection,
draft, reschedule target, form values) and drives the steps:

	load_calendar -> click -> submit_selection -> confirm
	                   ^            |
	                   +--- back ---+

Steps get a read-only view of the session; only the flow mutates it.
"""

from dataclasses import dataclass, field, fields
from datetime import datetime
from types import MappingProxyType
from typing import Any, Callable, Dict, Mapping, Optional, Tuple

import frappe
from frappe import _

from imaging_booking.imaging_booking.scheduling.availability import AvailabilityResult, fetch_availability
from imaging_booking.imaging_booking.scheduling.drafts import DraftLifecycleManager
from imaging_booking.imaging_booking.scheduling.exceptions import BookingValidationError, DraftSaveError
from imaging_booking.imaging_booking.scheduling.holds import TentativeHoldManager, TentativeSelection
from imaging_booking.imaging_booking.scheduling.intake import build_private_health, validate_contact
from imaging_booking.imaging_booking.scheduling.procedures import get_procedure
from imaging_booking.imaging_booking.scheduling.reschedule import RescheduleAdapter
from imaging_booking.imaging_booking.scheduling.store import get_store


@dataclass
class BookingSession:
	patient: Optional[str] = None
	imaging: Optional[Dict[str, str]] = None
	procedure: Optional[Dict[str, Any]] = None
	selection: Optional[TentativeSelection] = None
	draft_id: Optional[str] = None
	reschedule: Optional[RescheduleAdapter] = None
	contact: Optional[str] = None
	private_health: Optional[Dict[str, Any]] = None
	availability: Optional[AvailabilityResult] = field(default=None, repr=False)


class BookingFlow:
	"""
	Flujo de reserva de una sesion de paciente.

	Args:
		store: BookingStore shared by every step (defaults to FrappeStore)
		notify: fn(notification_type, appointment) passed to drafts/reschedule
		granularity_minutes: click snapping grid (defaults to site config)
	"""

	def __init__(self, store: Any = None, notify: Optional[Callable] = None, granularity_minutes: Optional[int] = None):
		self.store = store or get_store()
		self.notify = notify
		self.granularity_minutes = granularity_minutes
		self.drafts = DraftLifecycleManager(store=self.store, notify=notify)
		self._session = BookingSession()
		self._holds: Optional[TentativeHoldManager] = None

	@property
	def session(self) -> Mapping[str, Any]:
		"""Read-only view of the session."""
		return MappingProxyType({f.name: getattr(self._session, f.name) for f in fields(self._session)})

	@property
	def is_reschedule(self) -> bool:
		return self._session.reschedule is not None

	def start(self, patient: str, imaging: Dict[str, str], procedure: Dict[str, Any]) -> Mapping[str, Any]:
		"""New booking. Any previous session is left first."""
		self.leave()
		self._session = BookingSession(patient=patient, imaging=dict(imaging), procedure=procedure)
		return self.session

	def start_reschedule(
		self,
		patient: str,
		appointment_id: str,
		procedure: Optional[Dict[str, Any]] = None,
		now: Optional[datetime] = None,
	) -> Mapping[str, Any]:
		"""Reschedule mode: imaging context and procedure come from the appointment."""
		self.leave()
		adapter = RescheduleAdapter(appointment_id, store=self.store, notify=self.notify)
		appointment = adapter.load(now)

		if appointment.get("patient") != patient:
			frappe.throw(_("Appointment {0} not found").format(appointment_id), frappe.DoesNotExistError)

		self._session = BookingSession(
			patient=patient,
			imaging=adapter.imaging,
			procedure=procedure or get_procedure(appointment["procedure"]),
			reschedule=adapter,
			contact=appointment.get("contact"),
		)
		return self.session

	def load_calendar(
		self,
		date_range: Optional[Tuple[datetime, datetime]] = None,
		now: Optional[datetime] = None,
	) -> AvailabilityResult:
		"""
		Reads the calendar and refreshes the hold snapshot.

		A held selection survives a refresh; it is not re-validated.
		"""
		session = self._require_started()

		if session.reschedule:
			result = session.reschedule.fetch_availability(session.procedure, date_range=date_range, now=now)
		else:
			result = fetch_availability(
				session.imaging,
				session.procedure,
				date_range=date_range,
				store=self.store,
				now=now,
			)

		if self._holds is None:
			self._holds = TentativeHoldManager(
				session.procedure,
				result.blocking_events,
				granularity_minutes=self.granularity_minutes,
			)
		else:
			self._holds.refresh(result.blocking_events)

		session.availability = result
		return result

	def click(self, event: Dict[str, Any], clicked_at: Any) -> TentativeSelection:
		"""Proposes a tentative selection. See TentativeHoldManager.click for errors."""
		self._require_started()
		if self._holds is None:
			frappe.throw(_("Load the calendar before selecting a slot"), BookingValidationError)

		selection = self._holds.click(event, clicked_at)
		self._session.selection = selection
		if self._session.reschedule:
			self._session.reschedule.hold(selection)
		return selection

	def clear_selection(self) -> None:
		if self._holds:
			self._holds.clear()
		self._session.selection = None
		if self._session.reschedule:
			self._session.reschedule.abandon()

	def submit_selection(self, now: Optional[datetime] = None) -> Optional[str]:
		"""
		Moves on to the confirmation step.

		Booking mode writes a draft and returns its id. Reschedule mode keeps
		the selection in memory and returns None.

		Raises:
			BookingValidationError: no selection
			DraftSaveError: the draft was rejected; the selection is cleared
		"""
		session = self._require_started()
		if session.selection is None:
			frappe.throw(_("Select a slot before continuing"), BookingValidationError)

		if session.reschedule:
			return None

		if session.draft_id:
			return session.draft_id

		try:
			session.draft_id = self.drafts.create(
				session.selection,
				session.imaging,
				session.patient,
				session.procedure,
				now=now,
			)
		except DraftSaveError:
			self.clear_selection()
			raise

		return session.draft_id

	def back(self) -> None:
		"""Returns to slot selection, releasing the draft."""
		if self._session.draft_id:
			self.drafts.discard(self._session.draft_id)
			self._session.draft_id = None
		self.clear_selection()

	def confirm(self, contact: Optional[str], height: Any, weight: Any) -> Dict[str, Any]:
		"""
		Confirma la reserva o la reprogramacion.

		Form values are validated before anything is written. On a store
		failure the session is kept as it was so the patient can retry.

		Returns:
			dict: the new or updated appointment
		"""
		session = self._require_started()

		private_health = build_private_health(height, weight)
		session.private_health = private_health

		if session.reschedule:
			if session.selection is None:
				frappe.throw(_("Select a new slot before confirming"), BookingValidationError)
			appointment = session.reschedule.confirm(private_health)
		else:
			contact = validate_contact(contact)
			session.contact = contact
			if not session.draft_id:
				frappe.throw(_("Select a slot before confirming"), BookingValidationError)
			appointment = self.drafts.promote(session.draft_id, contact, private_health, session.procedure)
			session.draft_id = None

		self._reset()
		return appointment

	def leave(self) -> None:
		"""Ends the session; a pending draft is discarded."""
		if self._session.draft_id:
			self.drafts.discard(self._session.draft_id)
		if self._session.reschedule:
			self._session.reschedule.abandon()
		self._reset()

	def _reset(self) -> None:
		self._session = BookingSession()
		self._holds = None

	def _require_started(self) -> BookingSession:
		if not self._session.imaging or not self._session.procedure:
			frappe.throw(_("Select an imaging service and a procedure first"), BookingValidationError)
		return self._session
