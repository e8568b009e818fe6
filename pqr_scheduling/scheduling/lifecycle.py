"""Appointment status transitions.

::

    pending --confirm--> confirmed --complete--> completed
    pending | confirmed --cancel(reason)--> cancelled

Logical deletion is orthogonal to status: it hides the appointment from
default listings and frees its slot, but keeps the row for history queries.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional

from sqlalchemy.orm import Session

from pqr_scheduling.core.clock import local_now
from pqr_scheduling.core.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from pqr_scheduling.models.appointment import Appointment, AppointmentStatus
from pqr_scheduling.scheduling import notifications
from pqr_scheduling.scheduling.availability import AvailabilityEngine
from pqr_scheduling.scheduling.directory import ClientDetails, Directory
from pqr_scheduling.scheduling.ledger import BookingLedger
from pqr_scheduling.scheduling.notifications import AppointmentEvent, appointment_event

logger = logging.getLogger(__name__)

MAX_CANCELLATION_REASON_LENGTH = 500
NUMBER_GENERATION_ATTEMPTS = 5

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: {AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED},
    AppointmentStatus.CONFIRMED: {AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED},
    AppointmentStatus.COMPLETED: set(),
    AppointmentStatus.CANCELLED: set(),
}


@dataclass
class AppointmentRequest:
    client_id: int
    branch_id: int
    appointment_type_id: int
    appointment_date: datetime
    notes: Optional[str] = None


def generate_appointment_number(moment: Optional[datetime] = None) -> str:
    moment = moment or datetime.utcnow()
    return f"APT-{moment:%Y%m%d}-{uuid.uuid4().hex.upper()}"


def ensure_transition(current: str, target: AppointmentStatus) -> None:
    status = AppointmentStatus(current)
    if target in ALLOWED_TRANSITIONS[status]:
        return
    if status is target:
        raise InvalidStateError(f"Appointment is already {status.value}")
    raise InvalidStateError(f"Cannot move an appointment from {status.value} to {target.value}")


class AppointmentLifecycle:
    def __init__(
        self,
        db: Session,
        publish: Optional[Callable[[AppointmentEvent], None]] = None,
        engine: Optional[AvailabilityEngine] = None,
    ):
        self.db = db
        self.engine = engine or AvailabilityEngine(db)
        self.directory: Directory = self.engine.directory
        self.ledger: BookingLedger = self.engine.ledger
        self.published: list[AppointmentEvent] = []
        self._publish = publish

    def _emit(self, event_type: str, appointment: Appointment, reason: Optional[str] = None) -> None:
        event = appointment_event(event_type, appointment, reason)
        self.published.append(event)
        if self._publish is None:
            return
        try:
            self._publish(event)
        except Exception:
            # The change itself is already committed.
            logger.exception("Could not hand off %s for %s", event_type, appointment.appointment_number)

    @staticmethod
    def _require_positive(**ids: Optional[int]) -> None:
        for field_name, value in ids.items():
            if value is None or value <= 0:
                raise ValidationError(f"{field_name} must be a positive integer")

    @staticmethod
    def _future_moment(appointment_date: Optional[datetime], now: datetime) -> datetime:
        if appointment_date is None:
            raise ValidationError("appointment_date is required")

        appointment_date = appointment_date.replace(tzinfo=None, second=0, microsecond=0)
        if appointment_date <= now:
            raise ValidationError("Appointments must be scheduled in the future")
        return appointment_date

    def _check_slot(self, branch_id: int, appointment_type_id: int, appointment_date: datetime, now: datetime) -> None:
        self.directory.require_active(branch_id, appointment_type_id)

        configured = {slot.time for slot in self.engine.catalog.get_slots(branch_id, appointment_type_id)}
        if appointment_date.time() not in configured:
            raise ValidationError(
                f"{appointment_date:%H:%M} is not a configured time for this branch and appointment type"
            )

        holiday = self.engine.calendar.find_holiday(appointment_date.date(), branch_id)
        if holiday is not None:
            raise ValidationError(f"{appointment_date.date().isoformat()} is a holiday ({holiday.holiday_name})")

        if not self.engine.is_slot_available(appointment_date, branch_id, appointment_type_id, now=now):
            raise ConflictError("The selected time slot is not available")

    def create(self, request: AppointmentRequest, now: Optional[datetime] = None) -> Appointment:
        now = now or local_now()
        self._require_positive(
            client_id=request.client_id,
            branch_id=request.branch_id,
            appointment_type_id=request.appointment_type_id,
        )
        appointment_date = self._future_moment(request.appointment_date, now)

        self.directory.get_client(request.client_id)
        self._check_slot(request.branch_id, request.appointment_type_id, appointment_date, now)
        return self._book(request, appointment_date)

    def schedule_for_client(
        self,
        details: ClientDetails,
        branch_id: int,
        appointment_type_id: int,
        appointment_date: datetime,
        notes: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Appointment:
        """Book for the client holding ``details.document_number``, registering them first if unknown.

        The slot is checked before any client is written; ``create`` checks it again.
        """
        now = now or local_now()
        details = details.normalized()
        self._require_positive(branch_id=branch_id, appointment_type_id=appointment_type_id)
        moment = self._future_moment(appointment_date, now)
        self._check_slot(branch_id, appointment_type_id, moment, now)

        client = self.directory.find_or_create_client(details)
        return self.create(
            AppointmentRequest(
                client_id=client.id,
                branch_id=branch_id,
                appointment_type_id=appointment_type_id,
                appointment_date=moment,
                notes=notes,
            ),
            now=now,
        )

    def _book(self, request: AppointmentRequest, appointment_date: datetime) -> Appointment:
        appointment = Appointment(
            appointment_number=self._new_number(),
            client_id=request.client_id,
            branch_id=request.branch_id,
            appointment_type_id=request.appointment_type_id,
            appointment_date=appointment_date,
            status=AppointmentStatus.PENDING.value,
            notes=(request.notes or "").strip() or None,
        )
        appointment = self.ledger.save(self.ledger.insert(appointment))

        logger.info(
            "Scheduled %s for client %s at branch %s on %s",
            appointment.appointment_number,
            appointment.client_id,
            appointment.branch_id,
            appointment.appointment_date,
        )
        self._emit(notifications.APPOINTMENT_SCHEDULED, appointment)
        return appointment

    def _new_number(self) -> str:
        for _ in range(NUMBER_GENERATION_ATTEMPTS):
            number = generate_appointment_number()
            if not self.ledger.number_exists(number):
                return number
        raise ConflictError("Could not generate a unique appointment number")

    def confirm(self, appointment_id: int) -> Appointment:
        appointment = self.ledger.get(appointment_id)
        ensure_transition(appointment.status, AppointmentStatus.CONFIRMED)

        appointment = self.ledger.set_status(appointment, AppointmentStatus.CONFIRMED)
        logger.info("Confirmed %s", appointment.appointment_number)
        self._emit(notifications.APPOINTMENT_CONFIRMED, appointment)
        return appointment

    def cancel(self, appointment_id: int, reason: str) -> Appointment:
        return self._cancel(self.ledger.get(appointment_id), reason)

    def cancel_by_number(self, appointment_number: str, document_number: str, reason: str) -> Appointment:
        """Public cancellation: the caller proves ownership with the client's document number."""
        appointment = self.ledger.get_by_number(appointment_number)
        document = (document_number or "").strip()
        if not document or appointment.client is None or appointment.client.document_number != document:
            # Reported like a missing appointment.
            raise NotFoundError(f"Appointment {appointment.appointment_number} not found")
        return self._cancel(appointment, reason)

    def _cancel(self, appointment: Appointment, reason: str) -> Appointment:
        ensure_transition(appointment.status, AppointmentStatus.CANCELLED)
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A cancellation reason is required")
        if len(reason) > MAX_CANCELLATION_REASON_LENGTH:
            raise ValidationError(f"Cancellation reason must be {MAX_CANCELLATION_REASON_LENGTH} characters or fewer")

        appointment = self.ledger.cancel(appointment, reason)
        logger.info("Cancelled %s: %s", appointment.appointment_number, reason)
        self._emit(notifications.APPOINTMENT_CANCELLED, appointment, reason)
        return appointment

    def complete(self, appointment_id: int, notes: Optional[str] = None, now: Optional[datetime] = None) -> Appointment:
        appointment = self.ledger.get(appointment_id)
        ensure_transition(appointment.status, AppointmentStatus.COMPLETED)

        appointment = self.ledger.complete(appointment, completed_at=now or local_now(), notes=(notes or "").strip() or None)
        logger.info("Completed %s", appointment.appointment_number)
        self._emit(notifications.APPOINTMENT_COMPLETED, appointment)
        return appointment

    def delete(self, appointment_id: int) -> Appointment:
        appointment = self.ledger.soft_delete(self.ledger.get(appointment_id))
        logger.info("Logically deleted %s (status %s)", appointment.appointment_number, appointment.status)
        return appointment
