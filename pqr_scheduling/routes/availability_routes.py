from datetime import date, datetime, time

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from pqr_scheduling.auth.dependencies import get_current_user, require_admin
from pqr_scheduling.core import errors
from pqr_scheduling.database import get_db
from pqr_scheduling.models.catalog import AvailableTime
from pqr_scheduling.models.user import User
from pqr_scheduling.scheduling.availability import AvailabilityEngine
from pqr_scheduling.scheduling.time_catalog import TimeCatalog, TimeSlot, format_slot_time

router = APIRouter(tags=['availability'])

MAX_BULK_CONFIGURATIONS = 100


class ConfigureCatalogRequest(BaseModel):
    branch_id: int
    appointment_type_id: int
    times: list[str]

    @field_validator('branch_id', 'appointment_type_id')
    @classmethod
    def validate_positive_id(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('IDs must be positive integers.')
        return value

    @field_validator('times')
    @classmethod
    def validate_times(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError('At least one time slot is required.')

        normalized = [item.strip() for item in value]
        if not all(normalized):
            raise ValueError('Time slots cannot be blank.')
        return normalized


class BulkConfigureCatalogRequest(BaseModel):
    configurations: list[ConfigureCatalogRequest]

    @field_validator('configurations')
    @classmethod
    def validate_configurations(cls, value: list[ConfigureCatalogRequest]) -> list[ConfigureCatalogRequest]:
        if not value:
            raise ValueError('At least one configuration is required.')
        if len(value) > MAX_BULK_CONFIGURATIONS:
            raise ValueError(f'At most {MAX_BULK_CONFIGURATIONS} configurations per request.')
        return value


class TimeSlotResponse(BaseModel):
    id: int
    branch_id: int
    appointment_type_id: int
    time: str


class CatalogEntryResponse(TimeSlotResponse):
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None


class AvailableTimesResponse(BaseModel):
    date: date
    branch_id: int
    appointment_type_id: int
    times: list[str]


class OccupiedTimesResponse(BaseModel):
    date: date
    branch_id: int
    appointment_type_id: int | None = None
    times: list[str]


class BulkConfigureResponse(BaseModel):
    processed_configurations: int
    successful_configurations: int
    total_active_times: int
    errors: list[str]


def to_time_slot_response(slot: TimeSlot) -> TimeSlotResponse:
    return TimeSlotResponse(
        id=slot.id,
        branch_id=slot.branch_id,
        appointment_type_id=slot.appointment_type_id,
        time=slot.label,
    )


def to_catalog_entry_response(row: AvailableTime) -> CatalogEntryResponse:
    return CatalogEntryResponse(
        id=row.id,
        branch_id=row.branch_id,
        appointment_type_id=row.appointment_type_id,
        time=row.time,
        is_active=row.is_active,
        created_at=row.created_at,
        updated_at=row.updated_at,
    )


def format_times(values: list[time]) -> list[str]:
    return [format_slot_time(value) for value in values]


@router.get('/times', response_model=AvailableTimesResponse)
def get_available_times(
    date: date = Query(...),
    branch_id: int = Query(..., gt=0),
    appointment_type_id: int = Query(..., gt=0),
    db: Session = Depends(get_db),
):
    slots = AvailabilityEngine(db).get_available_times(date, branch_id, appointment_type_id)
    return AvailableTimesResponse(
        date=date,
        branch_id=branch_id,
        appointment_type_id=appointment_type_id,
        times=[slot.label for slot in slots],
    )


@router.get('/occupied', response_model=OccupiedTimesResponse)
def get_occupied_times(
    date: date = Query(...),
    branch_id: int = Query(..., gt=0),
    appointment_type_id: int | None = Query(default=None, gt=0),
    db: Session = Depends(get_db),
):
    occupied = AvailabilityEngine(db).get_occupied_times(date, branch_id, appointment_type_id)
    return OccupiedTimesResponse(
        date=date,
        branch_id=branch_id,
        appointment_type_id=appointment_type_id,
        times=format_times(occupied),
    )


@router.get('/catalog', response_model=list[CatalogEntryResponse])
def list_catalog(
    branch_id: int = Query(..., gt=0),
    include_deleted: bool = Query(default=False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return [to_catalog_entry_response(row) for row in TimeCatalog(db).list_slots(branch_id, include_deleted)]


@router.put('/catalog', response_model=list[TimeSlotResponse])
def configure_catalog(
    data: ConfigureCatalogRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    slots = TimeCatalog(db).configure(data.branch_id, data.appointment_type_id, data.times)
    return [to_time_slot_response(slot) for slot in slots]


@router.post('/catalog/bulk', response_model=BulkConfigureResponse)
def bulk_configure_catalog(
    data: BulkConfigureCatalogRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    catalog = TimeCatalog(db)
    successful = 0
    total_times = 0
    failures: list[str] = []

    for configuration in data.configurations:
        try:
            slots = catalog.configure(configuration.branch_id, configuration.appointment_type_id, configuration.times)
        except (errors.ValidationError, errors.NotFoundError) as exc:
            failures.append(
                f'Branch {configuration.branch_id}, type {configuration.appointment_type_id}: {exc.message}'
            )
            continue
        successful += 1
        total_times += len(slots)

    return BulkConfigureResponse(
        processed_configurations=len(data.configurations),
        successful_configurations=successful,
        total_active_times=total_times,
        errors=failures,
    )


@router.delete('/catalog/{slot_id}', status_code=status.HTTP_204_NO_CONTENT)
def remove_catalog_slot(
    slot_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    TimeCatalog(db).remove_slot(slot_id)
