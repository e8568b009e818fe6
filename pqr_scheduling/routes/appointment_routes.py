from datetime import datetime

from fastapi import APIRouter, BackgroundTasks, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from pqr_scheduling.auth.dependencies import get_current_user
from pqr_scheduling.database import get_db
from pqr_scheduling.models.appointment import Appointment, AppointmentStatus
from pqr_scheduling.models.user import User
from pqr_scheduling.routes.directory_routes import CreateClientRequest, to_client_details
from pqr_scheduling.scheduling.assignments import AssignmentService
from pqr_scheduling.scheduling.ledger import BookingLedger
from pqr_scheduling.scheduling.lifecycle import MAX_CANCELLATION_REASON_LENGTH, AppointmentLifecycle, AppointmentRequest
from pqr_scheduling.scheduling.notifications import AppointmentEvent, send_appointment_notifications

router = APIRouter(tags=['appointments'])

MAX_APPOINTMENT_NOTES_LENGTH = 1000


def positive_id(value: int) -> int:
    if value <= 0:
        raise ValueError('IDs must be positive integers.')
    return value


def normalize_notes(value: str | None) -> str | None:
    if value is None:
        return None

    normalized = value.strip()
    if not normalized:
        return None

    if len(normalized) > MAX_APPOINTMENT_NOTES_LENGTH:
        raise ValueError(f'Notes must be {MAX_APPOINTMENT_NOTES_LENGTH} characters or fewer.')

    return normalized


class CreateAppointmentRequest(BaseModel):
    client_id: int
    branch_id: int
    appointment_type_id: int
    appointment_date: datetime
    notes: str | None = None

    @field_validator('client_id', 'branch_id', 'appointment_type_id')
    @classmethod
    def validate_positive_id(cls, value: int) -> int:
        return positive_id(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)


class ScheduleAppointmentRequest(CreateClientRequest):
    """Public booking: the client is identified by document and registered on first use."""

    branch_id: int
    appointment_type_id: int
    appointment_date: datetime
    notes: str | None = None

    @field_validator('branch_id', 'appointment_type_id')
    @classmethod
    def validate_positive_id(cls, value: int) -> int:
        return positive_id(value)

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        return normalize_notes(value)


class CancelAppointmentRequest(BaseModel):
    reason: str

    @field_validator('reason')
    @classmethod
    def validate_reason(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('A cancellation reason is required.')
        if len(normalized) > MAX_CANCELLATION_REASON_LENGTH:
            raise ValueError(f'Cancellation reason must be {MAX_CANCELLATION_REASON_LENGTH} characters or fewer.')
        return normalized


class PublicCancelAppointmentRequest(CancelAppointmentRequest):
    appointment_number: str
    document_number: str

    @field_validator('appointment_number', 'document_number')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized


class CompleteAppointmentRequest(BaseModel):
    notes: str | None = None


class AppointmentResponse(BaseModel):
    id: int
    appointment_number: str
    client_id: int
    branch_id: int
    branch_name: str | None = None
    appointment_type_id: int
    appointment_type_name: str | None = None
    appointment_date: datetime
    appointment_time: str
    status: str
    notes: str | None = None
    cancellation_reason: str | None = None
    completed_at: datetime | None = None
    is_active: bool
    created_at: datetime
    updated_at: datetime | None = None


class PublicAppointmentResponse(BaseModel):
    appointment_number: str
    branch_name: str | None = None
    appointment_type_name: str | None = None
    appointment_date: datetime
    appointment_time: str
    status: str


def to_appointment_response(appointment: Appointment) -> AppointmentResponse:
    return AppointmentResponse(
        id=appointment.id,
        appointment_number=appointment.appointment_number,
        client_id=appointment.client_id,
        branch_id=appointment.branch_id,
        branch_name=appointment.branch.name if appointment.branch else None,
        appointment_type_id=appointment.appointment_type_id,
        appointment_type_name=appointment.appointment_type.name if appointment.appointment_type else None,
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_date.strftime('%H:%M'),
        status=appointment.status,
        notes=appointment.notes,
        cancellation_reason=appointment.cancellation_reason,
        completed_at=appointment.completed_at,
        is_active=appointment.is_active,
        created_at=appointment.created_at,
        updated_at=appointment.updated_at,
    )


def to_public_appointment_response(appointment: Appointment) -> PublicAppointmentResponse:
    return PublicAppointmentResponse(
        appointment_number=appointment.appointment_number,
        branch_name=appointment.branch.name if appointment.branch else None,
        appointment_type_name=appointment.appointment_type.name if appointment.appointment_type else None,
        appointment_date=appointment.appointment_date,
        appointment_time=appointment.appointment_date.strftime('%H:%M'),
        status=appointment.status,
    )


def notifier(background_tasks: BackgroundTasks):
    def publish(event: AppointmentEvent) -> None:
        background_tasks.add_task(send_appointment_notifications, [event])

    return publish


def ensure_can_manage(db: Session, user: User, appointment: Appointment) -> None:
    if not AssignmentService(db).can_manage(user, appointment.appointment_type_id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='You are not assigned to this appointment type.',
        )


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    lifecycle = AppointmentLifecycle(db, publish=notifier(background_tasks))
    appointment = lifecycle.create(
        AppointmentRequest(
            client_id=data.client_id,
            branch_id=data.branch_id,
            appointment_type_id=data.appointment_type_id,
            appointment_date=data.appointment_date,
            notes=data.notes,
        )
    )
    return to_appointment_response(appointment)


@router.post('/schedule', response_model=PublicAppointmentResponse, status_code=status.HTTP_201_CREATED)
def schedule_appointment(
    data: ScheduleAppointmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    lifecycle = AppointmentLifecycle(db, publish=notifier(background_tasks))
    appointment = lifecycle.schedule_for_client(
        to_client_details(data),
        branch_id=data.branch_id,
        appointment_type_id=data.appointment_type_id,
        appointment_date=data.appointment_date,
        notes=data.notes,
    )
    return to_public_appointment_response(appointment)


@router.get('/number/{appointment_number}', response_model=PublicAppointmentResponse)
def get_appointment_by_number(appointment_number: str, db: Session = Depends(get_db)):
    return to_public_appointment_response(BookingLedger(db).get_by_number(appointment_number))


@router.post('/public/cancel', response_model=PublicAppointmentResponse)
def cancel_public_appointment(
    data: PublicCancelAppointmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
):
    lifecycle = AppointmentLifecycle(db, publish=notifier(background_tasks))
    appointment = lifecycle.cancel_by_number(data.appointment_number, data.document_number, data.reason)
    return to_public_appointment_response(appointment)


@router.get('/branch/{branch_id}', response_model=list[AppointmentResponse])
def list_branch_appointments(
    branch_id: int,
    include_deleted: bool = Query(default=False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    visible = AssignmentService(db).visible_type_ids(current_user)
    appointments = BookingLedger(db).list_by_branch(branch_id, include_deleted, appointment_type_ids=visible)
    return [to_appointment_response(appointment) for appointment in appointments]


@router.get('/status/{appointment_status}', response_model=list[AppointmentResponse])
def list_appointments_by_status(
    appointment_status: AppointmentStatus,
    include_deleted: bool = Query(default=False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    visible = AssignmentService(db).visible_type_ids(current_user)
    appointments = BookingLedger(db).list_by_status(appointment_status, include_deleted, appointment_type_ids=visible)
    return [to_appointment_response(appointment) for appointment in appointments]


@router.get('/pending', response_model=list[AppointmentResponse])
def list_pending_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    visible = AssignmentService(db).visible_type_ids(current_user)
    return [to_appointment_response(appointment) for appointment in BookingLedger(db).list_pending(visible)]


@router.get('/client/{client_id}', response_model=list[AppointmentResponse])
def list_client_appointments(
    client_id: int,
    include_deleted: bool = Query(default=False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    visible = AssignmentService(db).visible_type_ids(current_user)
    appointments = BookingLedger(db).list_by_client(client_id, include_deleted)
    return [
        to_appointment_response(appointment)
        for appointment in appointments
        if visible is None or appointment.appointment_type_id in visible
    ]


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    include_deleted: bool = Query(default=False),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    appointment = BookingLedger(db).get(appointment_id, include_deleted)
    ensure_can_manage(db, current_user, appointment)
    return to_appointment_response(appointment)


@router.post('/{appointment_id}/confirm', response_model=AppointmentResponse)
def confirm_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    lifecycle = AppointmentLifecycle(db, publish=notifier(background_tasks))
    ensure_can_manage(db, current_user, lifecycle.ledger.get(appointment_id))
    return to_appointment_response(lifecycle.confirm(appointment_id))


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    data: CancelAppointmentRequest,
    background_tasks: BackgroundTasks,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    lifecycle = AppointmentLifecycle(db, publish=notifier(background_tasks))
    ensure_can_manage(db, current_user, lifecycle.ledger.get(appointment_id))
    return to_appointment_response(lifecycle.cancel(appointment_id, data.reason))


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    background_tasks: BackgroundTasks,
    data: CompleteAppointmentRequest | None = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    lifecycle = AppointmentLifecycle(db, publish=notifier(background_tasks))
    ensure_can_manage(db, current_user, lifecycle.ledger.get(appointment_id))
    notes = data.notes if data else None
    return to_appointment_response(lifecycle.complete(appointment_id, notes=notes))


@router.delete('/{appointment_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    lifecycle = AppointmentLifecycle(db)
    ensure_can_manage(db, current_user, lifecycle.ledger.get(appointment_id))
    lifecycle.delete(appointment_id)
