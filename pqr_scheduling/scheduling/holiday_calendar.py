"""Holiday lookups and maintenance."""

import logging
from datetime import date

from sqlalchemy.orm import Session

from pqr_scheduling.core.clock import local_now
from pqr_scheduling.core.errors import ConflictError, NotFoundError, ValidationError
from pqr_scheduling.models.common import only_active
from pqr_scheduling.models.holiday import Holiday, HolidayType
from pqr_scheduling.scheduling.directory import Directory
from pqr_scheduling.scheduling.guards import storage_guard

logger = logging.getLogger(__name__)


class HolidayCalendar:
    def __init__(self, db: Session, directory: Directory | None = None):
        self.db = db
        self.directory = directory or Directory(db)

    @storage_guard
    def find_holiday(self, day: date, branch_id: int | None) -> Holiday | None:
        """Return the holiday closing ``branch_id`` on ``day``, if any.

        Company-wide holidays win over a local one on the same date.
        """
        holidays = (
            only_active(self.db.query(Holiday), Holiday)
            .filter(Holiday.holiday_date == day)
            .order_by(Holiday.branch_id.is_not(None), Holiday.id.asc())
            .all()
        )
        return next((holiday for holiday in holidays if holiday.applies_to_branch(branch_id)), None)

    def is_holiday(self, day: date, branch_id: int | None) -> bool:
        return self.find_holiday(day, branch_id) is not None

    @storage_guard
    def list_holidays(self, start_date: date, end_date: date, include_deleted: bool = False) -> list[Holiday]:
        if start_date > end_date:
            raise ValidationError('start_date must be on or before end_date.')

        query = only_active(self.db.query(Holiday), Holiday, include_deleted).filter(
            Holiday.holiday_date >= start_date,
            Holiday.holiday_date <= end_date,
        )
        return query.order_by(Holiday.holiday_date.asc(), Holiday.id.asc()).all()

    @storage_guard
    def create_holiday(
        self,
        holiday_date: date,
        holiday_name: str,
        holiday_type: HolidayType | str = HolidayType.NATIONAL,
        branch_id: int | None = None,
        today: date | None = None,
    ) -> Holiday:
        name = (holiday_name or '').strip()
        if not name:
            raise ValidationError('Holiday name cannot be empty.')

        try:
            kind = HolidayType(str(getattr(holiday_type, 'value', holiday_type)).upper())
        except ValueError as exc:
            raise ValidationError(f'Invalid holiday type: {holiday_type}') from exc

        today = today or local_now().date()
        if holiday_date < today:
            raise ValidationError('Holidays cannot be created in the past.')

        if kind is HolidayType.LOCAL:
            if branch_id is None or branch_id <= 0:
                raise ValidationError('Local holidays require a branch.')
            branch = self.directory.get_branch(branch_id)
            scope_label = f'branch {branch.name}'
        else:
            if branch_id is not None:
                raise ValidationError(f'{kind.value.title()} holidays apply to every branch and take no branch.')
            scope_label = 'all branches'

        duplicate = (
            only_active(self.db.query(Holiday), Holiday)
            .filter(Holiday.holiday_date == holiday_date)
            .filter(Holiday.branch_id.is_(None) if branch_id is None else Holiday.branch_id == branch_id)
            .first()
        )
        if duplicate is not None:
            raise ConflictError(f'A holiday already exists on {holiday_date.isoformat()} for {scope_label}.')

        holiday = Holiday(
            holiday_date=holiday_date,
            holiday_name=name,
            holiday_type=kind.value,
            branch_id=branch_id,
        )
        self.db.add(holiday)
        self.db.commit()
        self.db.refresh(holiday)
        logger.info('Created %s holiday %s on %s', kind.value, holiday.id, holiday_date.isoformat())
        return holiday

    @storage_guard
    def delete_holiday(self, holiday_id: int) -> Holiday:
        holiday = only_active(self.db.query(Holiday), Holiday).filter(Holiday.id == holiday_id).first()
        if holiday is None:
            raise NotFoundError(f'Holiday with ID {holiday_id} not found')

        holiday.mark_deleted()
        self.db.commit()
        logger.info('Logically deleted holiday %s', holiday_id)
        return holiday
