"""Bookable time slots for a branch, appointment type and date.

A slot is offered when all of the following hold:

- the branch and appointment type are active,
- the date is not a holiday for the branch,
- the date is today or later, and on today the slot time is strictly after
  the current wall-clock time,
- no live appointment of the same type already sits on that branch, date
  and time.

Appointment types keep independent catalogs, so a booking of one type never
hides a slot of another type at the same branch and time.
"""

import logging
from datetime import date, datetime, time

from sqlalchemy.orm import Session

from pqr_scheduling.core.clock import local_now
from pqr_scheduling.scheduling.directory import Directory
from pqr_scheduling.scheduling.holiday_calendar import HolidayCalendar
from pqr_scheduling.scheduling.ledger import BookingLedger
from pqr_scheduling.scheduling.time_catalog import TimeCatalog, TimeSlot

logger = logging.getLogger(__name__)


class AvailabilityEngine:
    def __init__(
        self,
        db: Session,
        directory: Directory | None = None,
        catalog: TimeCatalog | None = None,
        calendar: HolidayCalendar | None = None,
        ledger: BookingLedger | None = None,
    ):
        self.db = db
        self.directory = directory or Directory(db)
        self.catalog = catalog or TimeCatalog(db, self.directory)
        self.calendar = calendar or HolidayCalendar(db, self.directory)
        self.ledger = ledger or BookingLedger(db)

    def get_occupied_times(self, day: date, branch_id: int, appointment_type_id: int | None = None) -> list[time]:
        """Times already taken on ``day``; duplicates are kept once."""
        booked = self.ledger.list_active_appointments(branch_id, day)
        return sorted({
            slot.time_of_day
            for slot in booked
            if appointment_type_id is None or slot.appointment_type_id == appointment_type_id
        })

    def get_available_times(
        self,
        day: date,
        branch_id: int,
        appointment_type_id: int,
        now: datetime | None = None,
    ) -> list[TimeSlot]:
        self.directory.require_active(branch_id, appointment_type_id)

        if self.calendar.is_holiday(day, branch_id):
            logger.debug('Branch %s is closed on %s (holiday)', branch_id, day)
            return []

        now = now or local_now()
        today = now.date()
        if day < today:
            return []

        candidates = self.catalog.get_slots(branch_id, appointment_type_id)
        if day == today:
            current_time = now.time()
            candidates = [slot for slot in candidates if slot.time > current_time]

        if not candidates:
            return []

        taken = {
            booking.time_of_day
            for booking in self.ledger.list_active_appointments(branch_id, day)
            if booking.appointment_type_id == appointment_type_id
        }
        available = [slot for slot in candidates if slot.time not in taken]

        return sorted(available, key=lambda slot: slot.time)

    def is_slot_available(
        self,
        moment: datetime,
        branch_id: int,
        appointment_type_id: int,
        now: datetime | None = None,
    ) -> bool:
        slot_time = moment.time().replace(second=0, microsecond=0)
        return any(
            slot.time == slot_time
            for slot in self.get_available_times(moment.date(), branch_id, appointment_type_id, now=now)
        )
