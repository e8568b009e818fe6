"""User model definitions."""

from sqlalchemy import Column, ForeignKey, Index, Integer, String, text

from pqr_scheduling.database import Base
from pqr_scheduling.models.common import LifecycleMixin


class User(LifecycleMixin, Base):
    """Represents a back-office user."""
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(50), unique=True, nullable=False)
    email = Column(String, unique=True, index=True)
    role = Column(String(20), nullable=False, default="staff")  # staff/admin


class UserAppointmentTypeAssignment(LifecycleMixin, Base):
    """Limits the appointment types a staff user can see and manage."""
    __tablename__ = "user_appointment_type_assignments"
    __table_args__ = (
        Index(
            "uq_user_type_assignment_active",
            "user_id",
            "appointment_type_id",
            unique=True,
            sqlite_where=text("record_state = 'active'"),
            postgresql_where=text("record_state = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    appointment_type_id = Column(Integer, ForeignKey("appointment_types.id"), nullable=False)
