"""Which appointment types a staff user may see and manage."""

import logging

from sqlalchemy.orm import Session

from pqr_scheduling.core.errors import NotFoundError
from pqr_scheduling.models.common import only_active
from pqr_scheduling.models.user import User, UserAppointmentTypeAssignment
from pqr_scheduling.scheduling.directory import Directory
from pqr_scheduling.scheduling.guards import storage_guard

logger = logging.getLogger(__name__)

ADMIN_ROLE = "admin"


class AssignmentService:
    def __init__(self, db: Session, directory: Directory | None = None):
        self.db = db
        self.directory = directory or Directory(db)

    def _links(self, user_id: int, appointment_type_id: int | None = None, include_deleted: bool = False):
        query = self.db.query(UserAppointmentTypeAssignment).filter(UserAppointmentTypeAssignment.user_id == user_id)
        if appointment_type_id is not None:
            query = query.filter(UserAppointmentTypeAssignment.appointment_type_id == appointment_type_id)
        return only_active(query, UserAppointmentTypeAssignment, include_deleted)

    @storage_guard
    def get_user(self, user_id: int) -> User:
        user = only_active(self.db.query(User), User).filter(User.id == user_id).first()
        if user is None:
            raise NotFoundError(f"User with ID {user_id} not found")
        return user

    @storage_guard
    def assign(self, user_id: int, appointment_type_id: int) -> UserAppointmentTypeAssignment:
        self.get_user(user_id)
        self.directory.get_appointment_type(appointment_type_id)

        existing = self._links(user_id, appointment_type_id, include_deleted=True).order_by(
            UserAppointmentTypeAssignment.id.desc()
        ).all()
        for link in existing:
            if link.is_active:
                return link

        if existing:
            link = existing[0]
            link.mark_active()
        else:
            link = UserAppointmentTypeAssignment(user_id=user_id, appointment_type_id=appointment_type_id)
            self.db.add(link)

        self.db.commit()
        self.db.refresh(link)
        logger.info("Assigned appointment type %s to user %s", appointment_type_id, user_id)
        return link

    @storage_guard
    def unassign(self, user_id: int, appointment_type_id: int) -> UserAppointmentTypeAssignment:
        link = self._links(user_id, appointment_type_id).first()
        if link is None:
            raise NotFoundError(f"User {user_id} is not assigned to appointment type {appointment_type_id}")

        link.mark_deleted()
        self.db.commit()
        logger.info("Unassigned appointment type %s from user %s", appointment_type_id, user_id)
        return link

    @storage_guard
    def list_assigned_type_ids(self, user_id: int) -> set[int]:
        return {link.appointment_type_id for link in self._links(user_id).all()}

    def visible_type_ids(self, user: User) -> set[int] | None:
        """``None`` means every type (admins); otherwise the assigned ids."""
        if user.role == ADMIN_ROLE:
            return None
        return self.list_assigned_type_ids(user.id)

    def can_manage(self, user: User, appointment_type_id: int) -> bool:
        visible = self.visible_type_ids(user)
        return visible is None or appointment_type_id in visible
