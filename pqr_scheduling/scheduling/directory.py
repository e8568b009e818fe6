"""Branch, appointment-type and client lookups."""

import logging
import uuid
from dataclasses import dataclass, replace
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from pqr_scheduling.core.errors import ConflictError, NotFoundError, ValidationError
from pqr_scheduling.models.catalog import AppointmentType, Branch
from pqr_scheduling.models.client import Client
from pqr_scheduling.models.common import only_active
from pqr_scheduling.scheduling.guards import storage_guard

logger = logging.getLogger(__name__)

DOCUMENT_TYPES = {"CC", "TI", "RC", "CE", "NIT", "PASAPORTE"}
MIN_DOCUMENT_LENGTH = 6
MIN_NAME_LENGTH = 2


def generate_client_number(moment: datetime | None = None) -> str:
    moment = moment or datetime.utcnow()
    return f"CLI-{moment:%Y%m%d}-{uuid.uuid4().hex[:8].upper()}"


def _optional(value: str | None) -> str | None:
    if value is None:
        return None
    return value.strip() or None


@dataclass(frozen=True)
class ClientDetails:
    document_number: str
    full_name: str
    document_type: str = "CC"
    email: str | None = None
    phone: str | None = None
    address: str | None = None

    def normalized(self) -> "ClientDetails":
        document_number = (self.document_number or "").strip()
        full_name = (self.full_name or "").strip()
        document_type = (self.document_type or "").strip().upper()

        if len(document_number) < MIN_DOCUMENT_LENGTH:
            raise ValidationError(f"Document number must be at least {MIN_DOCUMENT_LENGTH} characters")
        if len(full_name) < MIN_NAME_LENGTH:
            raise ValidationError(f"Full name must be at least {MIN_NAME_LENGTH} characters")
        if document_type not in DOCUMENT_TYPES:
            raise ValidationError(f"Invalid document type: {self.document_type}")

        return replace(
            self,
            document_number=document_number,
            full_name=full_name,
            document_type=document_type,
            email=_optional(self.email),
            phone=_optional(self.phone),
            address=_optional(self.address),
        )


class Directory:
    """Resolves branches, appointment types and clients for the scheduling services."""

    def __init__(self, db: Session):
        self.db = db

    @storage_guard
    def is_active_branch(self, branch_id: int) -> bool:
        return only_active(self.db.query(Branch.id), Branch).filter(Branch.id == branch_id).first() is not None

    @storage_guard
    def is_active_appointment_type(self, appointment_type_id: int) -> bool:
        query = only_active(self.db.query(AppointmentType.id), AppointmentType)
        return query.filter(AppointmentType.id == appointment_type_id).first() is not None

    def require_active(self, branch_id: int, appointment_type_id: int) -> None:
        if not self.is_active_branch(branch_id):
            raise NotFoundError(f"Branch with ID {branch_id} not found")
        if not self.is_active_appointment_type(appointment_type_id):
            raise NotFoundError(f"Appointment type with ID {appointment_type_id} not found")

    @storage_guard
    def get_branch(self, branch_id: int, include_deleted: bool = False) -> Branch:
        branch = only_active(self.db.query(Branch), Branch, include_deleted).filter(Branch.id == branch_id).first()
        if branch is None:
            raise NotFoundError(f"Branch with ID {branch_id} not found")
        return branch

    @storage_guard
    def get_appointment_type(self, appointment_type_id: int, include_deleted: bool = False) -> AppointmentType:
        appointment_type = (
            only_active(self.db.query(AppointmentType), AppointmentType, include_deleted)
            .filter(AppointmentType.id == appointment_type_id)
            .first()
        )
        if appointment_type is None:
            raise NotFoundError(f"Appointment type with ID {appointment_type_id} not found")
        return appointment_type

    @storage_guard
    def list_branches(self, include_deleted: bool = False) -> list[Branch]:
        return only_active(self.db.query(Branch), Branch, include_deleted).order_by(Branch.name.asc()).all()

    @storage_guard
    def list_appointment_types(self, include_deleted: bool = False) -> list[AppointmentType]:
        query = only_active(self.db.query(AppointmentType), AppointmentType, include_deleted)
        return query.order_by(AppointmentType.name.asc()).all()

    @storage_guard
    def create_branch(self, code: str, name: str, address: str | None = None,
                      city: str | None = None, is_main: bool = False) -> Branch:
        code = (code or "").strip().upper()
        name = (name or "").strip()
        if not code or not name:
            raise ValidationError("Branch code and name are required")
        if self.db.query(Branch.id).filter(Branch.code == code).first() is not None:
            raise ConflictError(f"A branch with code {code} already exists")

        branch = Branch(code=code, name=name, address=address, city=city, is_main=is_main)
        self.db.add(branch)
        self.db.commit()
        self.db.refresh(branch)
        logger.info("Created branch %s (%s)", branch.id, branch.code)
        return branch

    @storage_guard
    def create_appointment_type(self, name: str, description: str | None = None,
                                estimated_time_minutes: int = 30,
                                requires_documentation: bool = False) -> AppointmentType:
        name = (name or "").strip()
        if not name:
            raise ValidationError("Appointment type name is required")
        if estimated_time_minutes <= 0:
            raise ValidationError("Estimated time must be greater than zero")
        if self.db.query(AppointmentType.id).filter(AppointmentType.name == name).first() is not None:
            raise ConflictError(f"An appointment type named {name} already exists")

        appointment_type = AppointmentType(
            name=name,
            description=description,
            estimated_time_minutes=estimated_time_minutes,
            requires_documentation=requires_documentation,
        )
        self.db.add(appointment_type)
        self.db.commit()
        self.db.refresh(appointment_type)
        logger.info("Created appointment type %s (%s)", appointment_type.id, appointment_type.name)
        return appointment_type

    @storage_guard
    def delete_branch(self, branch_id: int) -> Branch:
        branch = self.get_branch(branch_id)
        branch.mark_deleted()
        self.db.commit()
        logger.info("Logically deleted branch %s", branch_id)
        return branch

    @storage_guard
    def delete_appointment_type(self, appointment_type_id: int) -> AppointmentType:
        appointment_type = self.get_appointment_type(appointment_type_id)
        appointment_type.mark_deleted()
        self.db.commit()
        logger.info("Logically deleted appointment type %s", appointment_type_id)
        return appointment_type

    @storage_guard
    def get_client(self, client_id: int) -> Client:
        client = only_active(self.db.query(Client), Client).filter(Client.id == client_id).first()
        if client is None:
            raise NotFoundError(f"Client with ID {client_id} not found")
        return client

    @storage_guard
    def find_client_by_document(self, document_number: str) -> Client | None:
        document = (document_number or "").strip()
        return only_active(self.db.query(Client), Client).filter(Client.document_number == document).first()

    def get_client_by_document(self, document_number: str) -> Client:
        client = self.find_client_by_document(document_number)
        if client is None:
            raise NotFoundError(f"Client with document {(document_number or '').strip()} not found")
        return client

    @storage_guard
    def create_client(self, details: ClientDetails) -> Client:
        details = details.normalized()
        if self.find_client_by_document(details.document_number) is not None:
            raise ConflictError(f"A client with document {details.document_number} already exists")

        client = Client(
            client_number=generate_client_number(),
            document_type=details.document_type,
            document_number=details.document_number,
            full_name=details.full_name,
            email=details.email,
            phone=details.phone,
            address=details.address,
        )
        self.db.add(client)
        try:
            self.db.flush()
        except IntegrityError as exc:
            self.db.rollback()
            raise ConflictError(f"A client with document {details.document_number} already exists") from exc
        self.db.commit()
        self.db.refresh(client)
        logger.info("Created client %s (%s)", client.id, client.client_number)
        return client

    def find_or_create_client(self, details: ClientDetails) -> Client:
        """Existing active client for the document, or a new one built from ``details``."""
        client = self.find_client_by_document(details.document_number)
        if client is not None:
            return client
        try:
            return self.create_client(details)
        except ConflictError:
            # Another request registered the same document first.
            return self.get_client_by_document(details.document_number)

    @storage_guard
    def delete_client(self, client_id: int) -> Client:
        client = self.get_client(client_id)
        client.mark_deleted()
        self.db.commit()
        logger.info("Logically deleted client %s", client_id)
        return client
