from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from pqr_scheduling.auth.dependencies import get_current_user, require_admin
from pqr_scheduling.database import get_db
from pqr_scheduling.models.catalog import AppointmentType, Branch
from pqr_scheduling.models.client import Client
from pqr_scheduling.models.user import User
from pqr_scheduling.scheduling.directory import ClientDetails, Directory

branch_router = APIRouter(tags=['branches'])
appointment_type_router = APIRouter(tags=['appointment-types'])
client_router = APIRouter(tags=['clients'])


class CreateBranchRequest(BaseModel):
    code: str
    name: str
    address: str | None = None
    city: str | None = None
    is_main: bool = False

    @field_validator('code', 'name')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized


class CreateAppointmentTypeRequest(BaseModel):
    name: str
    description: str | None = None
    estimated_time_minutes: int = 30
    requires_documentation: bool = False

    @field_validator('estimated_time_minutes')
    @classmethod
    def validate_estimated_time(cls, value: int) -> int:
        if value <= 0:
            raise ValueError('Estimated time must be greater than zero.')
        return value


class CreateClientRequest(BaseModel):
    document_number: str
    full_name: str
    document_type: str = 'CC'
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    @field_validator('document_number', 'full_name')
    @classmethod
    def validate_required(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('This field is required.')
        return normalized

    @field_validator('document_type')
    @classmethod
    def validate_document_type(cls, value: str) -> str:
        return value.strip().upper()


class BranchResponse(BaseModel):
    id: int
    code: str
    name: str
    address: str | None = None
    city: str | None = None
    is_main: bool
    is_active: bool
    created_at: datetime


class AppointmentTypeResponse(BaseModel):
    id: int
    name: str
    description: str | None = None
    estimated_time_minutes: int
    requires_documentation: bool
    is_active: bool
    created_at: datetime


class ClientResponse(BaseModel):
    id: int
    client_number: str
    document_type: str
    document_number: str
    full_name: str
    email: str | None = None
    phone: str | None = None
    address: str | None = None
    is_active: bool
    created_at: datetime


def to_client_details(data: CreateClientRequest) -> ClientDetails:
    return ClientDetails(
        document_number=data.document_number,
        full_name=data.full_name,
        document_type=data.document_type,
        email=data.email,
        phone=data.phone,
        address=data.address,
    )


def to_client_response(client: Client) -> ClientResponse:
    return ClientResponse(
        id=client.id,
        client_number=client.client_number,
        document_type=client.document_type,
        document_number=client.document_number,
        full_name=client.full_name,
        email=client.email,
        phone=client.phone,
        address=client.address,
        is_active=client.is_active,
        created_at=client.created_at,
    )


def to_branch_response(branch: Branch) -> BranchResponse:
    return BranchResponse(
        id=branch.id,
        code=branch.code,
        name=branch.name,
        address=branch.address,
        city=branch.city,
        is_main=branch.is_main,
        is_active=branch.is_active,
        created_at=branch.created_at,
    )


def to_appointment_type_response(appointment_type: AppointmentType) -> AppointmentTypeResponse:
    return AppointmentTypeResponse(
        id=appointment_type.id,
        name=appointment_type.name,
        description=appointment_type.description,
        estimated_time_minutes=appointment_type.estimated_time_minutes,
        requires_documentation=appointment_type.requires_documentation,
        is_active=appointment_type.is_active,
        created_at=appointment_type.created_at,
    )


@branch_router.get('', response_model=list[BranchResponse])
def list_branches(include_deleted: bool = Query(default=False), db: Session = Depends(get_db)):
    return [to_branch_response(branch) for branch in Directory(db).list_branches(include_deleted)]


@branch_router.post('', response_model=BranchResponse, status_code=status.HTTP_201_CREATED)
def create_branch(
    data: CreateBranchRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    branch = Directory(db).create_branch(data.code, data.name, data.address, data.city, data.is_main)
    return to_branch_response(branch)


@branch_router.delete('/{branch_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_branch(
    branch_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    Directory(db).delete_branch(branch_id)


@appointment_type_router.get('', response_model=list[AppointmentTypeResponse])
def list_appointment_types(include_deleted: bool = Query(default=False), db: Session = Depends(get_db)):
    appointment_types = Directory(db).list_appointment_types(include_deleted)
    return [to_appointment_type_response(appointment_type) for appointment_type in appointment_types]


@appointment_type_router.post('', response_model=AppointmentTypeResponse, status_code=status.HTTP_201_CREATED)
def create_appointment_type(
    data: CreateAppointmentTypeRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    appointment_type = Directory(db).create_appointment_type(
        data.name,
        data.description,
        data.estimated_time_minutes,
        data.requires_documentation,
    )
    return to_appointment_type_response(appointment_type)


@appointment_type_router.delete('/{appointment_type_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_appointment_type(
    appointment_type_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    Directory(db).delete_appointment_type(appointment_type_id)


@client_router.post('', response_model=ClientResponse, status_code=status.HTTP_201_CREATED)
def create_client(
    data: CreateClientRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return to_client_response(Directory(db).create_client(to_client_details(data)))


@client_router.get('/document/{document_number}', response_model=ClientResponse)
def get_client_by_document(
    document_number: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return to_client_response(Directory(db).get_client_by_document(document_number))


@client_router.get('/{client_id}', response_model=ClientResponse)
def get_client(
    client_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return to_client_response(Directory(db).get_client(client_id))


@client_router.delete('/{client_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_client(
    client_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_admin),
):
    Directory(db).delete_client(client_id)
