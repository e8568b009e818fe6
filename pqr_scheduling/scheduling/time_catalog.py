"""Configured time slots per (branch, appointment type)."""

import logging
import re
from dataclasses import dataclass
from datetime import time
from typing import Iterable

from sqlalchemy.orm import Session

from pqr_scheduling.core.errors import NotFoundError, ValidationError
from pqr_scheduling.models.catalog import AvailableTime
from pqr_scheduling.models.common import only_active
from pqr_scheduling.scheduling.directory import Directory
from pqr_scheduling.scheduling.guards import storage_guard

logger = logging.getLogger(__name__)

TIME_PATTERN = re.compile(r'^([01]?[0-9]|2[0-3]):([0-5][0-9])$')


@dataclass(frozen=True)
class TimeSlot:
    id: int
    branch_id: int
    appointment_type_id: int
    time: time

    @property
    def label(self) -> str:
        return format_slot_time(self.time)


def parse_slot_time(value: str) -> time:
    if value is None or not str(value).strip():
        raise ValidationError('Time slot cannot be empty.')

    match = TIME_PATTERN.match(str(value).strip())
    if match is None:
        raise ValidationError(f'Invalid time format "{value}". Expected HH:MM (24-hour).')

    return time(int(match.group(1)), int(match.group(2)))


def format_slot_time(value: time) -> str:
    return value.strftime('%H:%M')


def to_time_slot(row: AvailableTime) -> TimeSlot:
    return TimeSlot(
        id=row.id,
        branch_id=row.branch_id,
        appointment_type_id=row.appointment_type_id,
        time=parse_slot_time(row.time),
    )


class TimeCatalog:
    """Source of truth for the slots a branch could ever offer."""

    def __init__(self, db: Session, directory: Directory | None = None):
        self.db = db
        self.directory = directory or Directory(db)

    def _rows(self, branch_id: int, appointment_type_id: int, include_deleted: bool = False):
        query = self.db.query(AvailableTime).filter(
            AvailableTime.branch_id == branch_id,
            AvailableTime.appointment_type_id == appointment_type_id,
        )
        return only_active(query, AvailableTime, include_deleted).all()

    @storage_guard
    def get_slots(self, branch_id: int, appointment_type_id: int) -> list[TimeSlot]:
        slots = [to_time_slot(row) for row in self._rows(branch_id, appointment_type_id)]
        return sorted(slots, key=lambda slot: slot.time)

    @storage_guard
    def list_slots(self, branch_id: int, include_deleted: bool = False) -> list[AvailableTime]:
        query = only_active(
            self.db.query(AvailableTime).filter(AvailableTime.branch_id == branch_id),
            AvailableTime,
            include_deleted,
        )
        return query.order_by(AvailableTime.appointment_type_id.asc(), AvailableTime.time.asc()).all()

    @storage_guard
    def configure(self, branch_id: int, appointment_type_id: int, times: Iterable[str]) -> list[TimeSlot]:
        """Replace the active slot set for the pair.

        Slots left out are soft-deleted so past appointments keep their
        reference; repeated times collapse into one slot.
        """
        requested = {parse_slot_time(value) for value in (times or [])}
        if not requested:
            raise ValidationError('At least one time slot is required.')

        self.directory.require_active(branch_id, appointment_type_id)

        active: dict[time, AvailableTime] = {}
        deleted: dict[time, AvailableTime] = {}
        for row in self._rows(branch_id, appointment_type_id, include_deleted=True):
            slot_time = parse_slot_time(row.time)
            if row.is_active:
                active[slot_time] = row
            else:
                deleted.setdefault(slot_time, row)

        removed = 0
        for slot_time, row in active.items():
            if slot_time not in requested:
                row.mark_deleted()
                removed += 1

        created = 0
        for slot_time in requested:
            if slot_time in active:
                continue
            if slot_time in deleted:
                deleted[slot_time].mark_active()
            else:
                self.db.add(
                    AvailableTime(
                        branch_id=branch_id,
                        appointment_type_id=appointment_type_id,
                        time=format_slot_time(slot_time),
                    )
                )
            created += 1

        self.db.commit()
        logger.info(
            'Configured catalog for branch %s type %s: %s added, %s removed',
            branch_id, appointment_type_id, created, removed,
        )
        return self.get_slots(branch_id, appointment_type_id)

    @storage_guard
    def add_slot(self, branch_id: int, appointment_type_id: int, value: str) -> TimeSlot:
        slot_time = parse_slot_time(value)
        current = {slot.time for slot in self.get_slots(branch_id, appointment_type_id)}
        slots = self.configure(branch_id, appointment_type_id, [format_slot_time(t) for t in current | {slot_time}])
        return next(slot for slot in slots if slot.time == slot_time)

    @storage_guard
    def remove_slot(self, slot_id: int) -> AvailableTime:
        row = only_active(self.db.query(AvailableTime), AvailableTime).filter(AvailableTime.id == slot_id).first()
        if row is None:
            raise NotFoundError(f'Available time with ID {slot_id} not found')

        row.mark_deleted()
        self.db.commit()
        logger.info('Removed slot %s (%s) from branch %s', row.id, row.time, row.branch_id)
        return row
