from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from pqr_scheduling.auth.dependencies import require_admin
from pqr_scheduling.database import get_db
from pqr_scheduling.models.holiday import Holiday, HolidayType
from pqr_scheduling.models.user import User
from pqr_scheduling.scheduling.holiday_calendar import HolidayCalendar

router = APIRouter(tags=['holidays'])


class CreateHolidayRequest(BaseModel):
    holiday_date: date
    holiday_name: str
    holiday_type: HolidayType = HolidayType.NATIONAL
    branch_id: int | None = None

    @field_validator('holiday_name')
    @classmethod
    def validate_holiday_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Holiday name is required.')
        if len(normalized) > 100:
            raise ValueError('Holiday name must be 100 characters or fewer.')
        return normalized


class HolidayResponse(BaseModel):
    id: int
    holiday_date: date
    holiday_name: str
    holiday_type: str
    branch_id: int | None = None
    is_active: bool
    created_at: datetime


class HolidayCheckResponse(BaseModel):
    date: date
    branch_id: int | None = None
    is_holiday: bool
    holiday_name: str | None = None
    holiday_type: str | None = None


def to_holiday_response(holiday: Holiday) -> HolidayResponse:
    return HolidayResponse(
        id=holiday.id,
        holiday_date=holiday.holiday_date,
        holiday_name=holiday.holiday_name,
        holiday_type=holiday.holiday_type,
        branch_id=holiday.branch_id,
        is_active=holiday.is_active,
        created_at=holiday.created_at,
    )


@router.get('', response_model=list[HolidayResponse])
def list_holidays(
    start_date: date = Query(...),
    end_date: date = Query(...),
    include_deleted: bool = Query(default=False),
    db: Session = Depends(get_db),
):
    holidays = HolidayCalendar(db).list_holidays(start_date, end_date, include_deleted)
    return [to_holiday_response(holiday) for holiday in holidays]


@router.get('/check', response_model=HolidayCheckResponse)
def check_holiday(
    date: date = Query(...),
    branch_id: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
):
    holiday = HolidayCalendar(db).find_holiday(date, branch_id)
    return HolidayCheckResponse(
        date=date,
        branch_id=branch_id,
        is_holiday=holiday is not None,
        holiday_name=holiday.holiday_name if holiday else None,
        holiday_type=holiday.holiday_type if holiday else None,
    )


@router.post('', response_model=HolidayResponse, status_code=status.HTTP_201_CREATED)
def create_holiday(
    data: CreateHolidayRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    holiday = HolidayCalendar(db).create_holiday(
        data.holiday_date,
        data.holiday_name,
        data.holiday_type,
        data.branch_id,
    )
    return to_holiday_response(holiday)


@router.delete('/{holiday_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_holiday(
    holiday_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    HolidayCalendar(db).delete_holiday(holiday_id)
