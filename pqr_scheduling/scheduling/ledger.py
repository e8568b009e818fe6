"""Record of booked appointments."""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pqr_scheduling.core.errors import ConflictError, NotFoundError
from pqr_scheduling.models.appointment import Appointment, AppointmentStatus
from pqr_scheduling.models.common import RecordState, only_active
from pqr_scheduling.scheduling.guards import storage_guard

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BookedSlot:
    appointment_type_id: int
    time_of_day: time


def _day_bounds(day: date) -> tuple[datetime, datetime]:
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)


class BookingLedger:
    def __init__(self, db: Session):
        self.db = db

    def _live(self):
        return self.db.query(Appointment).filter(
            Appointment.record_state == RecordState.ACTIVE.value,
            Appointment.status != AppointmentStatus.CANCELLED.value,
        )

    @storage_guard
    def list_active_appointments(self, branch_id: int, day: date) -> list[BookedSlot]:
        start, end = _day_bounds(day)
        rows = (
            self._live()
            .with_entities(Appointment.appointment_type_id, Appointment.appointment_date)
            .filter(
                Appointment.branch_id == branch_id,
                Appointment.appointment_date >= start,
                Appointment.appointment_date < end,
            )
            .all()
        )
        return [
            BookedSlot(appointment_type_id=appointment_type_id, time_of_day=booked_at.time().replace(second=0, microsecond=0))
            for appointment_type_id, booked_at in rows
        ]

    @storage_guard
    def insert(self, appointment: Appointment) -> Appointment:
        """Add ``appointment`` to the unit of work and flush it.

        The partial unique index on live bookings is the real guard against
        double booking; losing that race surfaces as ``ConflictError``.
        """
        self.db.add(appointment)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            logger.warning(
                'Slot conflict for branch %s type %s at %s',
                appointment.branch_id, appointment.appointment_type_id, appointment.appointment_date,
            )
            raise ConflictError(
                'The selected time slot is no longer available. Query availability again and pick another slot.'
            ) from exc
        return appointment

    @storage_guard
    def get(self, appointment_id: int, include_deleted: bool = False) -> Appointment:
        appointment = (
            only_active(self.db.query(Appointment), Appointment, include_deleted)
            .filter(Appointment.id == appointment_id)
            .first()
        )
        if appointment is None:
            raise NotFoundError(f'Appointment with ID {appointment_id} not found')
        return appointment

    @storage_guard
    def get_by_number(self, appointment_number: str, include_deleted: bool = False) -> Appointment:
        normalized = (appointment_number or '').strip().upper()
        appointment = (
            only_active(self.db.query(Appointment), Appointment, include_deleted)
            .filter(Appointment.appointment_number == normalized)
            .first()
        )
        if appointment is None:
            raise NotFoundError(f'Appointment {normalized} not found')
        return appointment

    @storage_guard
    def number_exists(self, appointment_number: str) -> bool:
        return self.db.query(Appointment.id).filter(Appointment.appointment_number == appointment_number).first() is not None

    def _listing(self, include_deleted: bool, appointment_type_ids: set[int] | None):
        query = only_active(self.db.query(Appointment), Appointment, include_deleted)
        if appointment_type_ids is not None:
            query = query.filter(Appointment.appointment_type_id.in_(appointment_type_ids))
        return query

    @storage_guard
    def list_by_branch(self, branch_id: int, include_deleted: bool = False,
                       appointment_type_ids: set[int] | None = None) -> list[Appointment]:
        return (
            self._listing(include_deleted, appointment_type_ids)
            .filter(Appointment.branch_id == branch_id)
            .order_by(Appointment.appointment_date.asc())
            .all()
        )

    @storage_guard
    def list_by_status(self, status: AppointmentStatus, include_deleted: bool = False,
                       appointment_type_ids: set[int] | None = None) -> list[Appointment]:
        return (
            self._listing(include_deleted, appointment_type_ids)
            .filter(Appointment.status == AppointmentStatus(status).value)
            .order_by(Appointment.appointment_date.asc())
            .all()
        )

    @storage_guard
    def list_by_client(self, client_id: int, include_deleted: bool = False) -> list[Appointment]:
        return (
            self._listing(include_deleted, None)
            .filter(Appointment.client_id == client_id)
            .order_by(Appointment.appointment_date.desc())
            .all()
        )

    def list_pending(self, appointment_type_ids: set[int] | None = None) -> list[Appointment]:
        return self.list_by_status(AppointmentStatus.PENDING, appointment_type_ids=appointment_type_ids)

    @storage_guard
    def set_status(self, appointment: Appointment, status: AppointmentStatus, **changes) -> Appointment:
        appointment.status = AppointmentStatus(status).value
        for key, value in changes.items():
            setattr(appointment, key, value)
        appointment.updated_at = datetime.utcnow()
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    def cancel(self, appointment: Appointment, reason: str) -> Appointment:
        return self.set_status(appointment, AppointmentStatus.CANCELLED, cancellation_reason=reason)

    def complete(self, appointment: Appointment, completed_at: datetime, notes: str | None = None) -> Appointment:
        changes = {'completed_at': completed_at}
        if notes:
            changes['notes'] = notes
        return self.set_status(appointment, AppointmentStatus.COMPLETED, **changes)

    @storage_guard
    def soft_delete(self, appointment: Appointment) -> Appointment:
        appointment.mark_deleted()
        self.db.commit()
        self.db.refresh(appointment)
        return appointment

    @storage_guard
    def save(self, appointment: Appointment) -> Appointment:
        self.db.commit()
        self.db.refresh(appointment)
        return appointment
