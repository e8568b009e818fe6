from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from pqr_scheduling.auth.dependencies import get_current_user, require_admin
from pqr_scheduling.database import get_db
from pqr_scheduling.models.user import User
from pqr_scheduling.scheduling.assignments import AssignmentService

router = APIRouter(tags=['user-assignments'])


class AssignAppointmentTypeRequest(BaseModel):
    user_id: int
    appointment_type_id: int

    @field_validator('user_id', 'appointment_type_id')
    @classmethod
    def validate_positive_id(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('IDs must be positive integers.')
        return value


class UserAssignmentsResponse(BaseModel):
    user_id: int
    appointment_type_ids: list[int]


def assignments_response(service: AssignmentService, user_id: int) -> UserAssignmentsResponse:
    return UserAssignmentsResponse(
        user_id=user_id,
        appointment_type_ids=sorted(service.list_assigned_type_ids(user_id)),
    )


@router.get('/me', response_model=UserAssignmentsResponse)
def my_assignments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return assignments_response(AssignmentService(db), current_user.id)


@router.get('/{user_id}', response_model=UserAssignmentsResponse)
def user_assignments(
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    service = AssignmentService(db)
    service.get_user(user_id)
    return assignments_response(service, user_id)


@router.post('', response_model=UserAssignmentsResponse, status_code=status.HTTP_201_CREATED)
def assign_appointment_type(
    data: AssignAppointmentTypeRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    service = AssignmentService(db)
    service.assign(data.user_id, data.appointment_type_id)
    return assignments_response(service, data.user_id)


@router.delete('/{user_id}/{appointment_type_id}', response_model=UserAssignmentsResponse)
def unassign_appointment_type(
    user_id: int,
    appointment_type_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    service = AssignmentService(db)
    service.unassign(user_id, appointment_type_id)
    return assignments_response(service, user_id)
