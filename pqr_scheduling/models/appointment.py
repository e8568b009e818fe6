"""Appointment model definitions."""

import enum

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String, text
from sqlalchemy.orm import relationship

from pqr_scheduling.database import ACTIVE_BOOKING_INDEX, ACTIVE_BOOKING_PREDICATE, Base
from pqr_scheduling.models import catalog, client  # noqa: F401
from pqr_scheduling.models.common import LifecycleMixin


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class Appointment(LifecycleMixin, Base):
    """Represents a scheduled appointment."""
    __tablename__ = "appointments"
    __table_args__ = (
        # At most one live booking per (branch, type, date and time).
        Index(
            ACTIVE_BOOKING_INDEX,
            "branch_id",
            "appointment_type_id",
            "appointment_date",
            unique=True,
            sqlite_where=text(ACTIVE_BOOKING_PREDICATE),
            postgresql_where=text(ACTIVE_BOOKING_PREDICATE),
        ),
    )

    id = Column(Integer, primary_key=True)
    appointment_number = Column(String(50), unique=True, nullable=False, index=True)
    client_id = Column(Integer, ForeignKey("clients.id"), nullable=False, index=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False)
    appointment_type_id = Column(Integer, ForeignKey("appointment_types.id"), nullable=False)
    appointment_date = Column(DateTime, nullable=False)
    status = Column(String(20), nullable=False, default=AppointmentStatus.PENDING.value)
    notes = Column(String(1000))
    cancellation_reason = Column(String(500))
    completed_at = Column(DateTime)

    client = relationship("Client", lazy="joined")
    branch = relationship("Branch", lazy="joined")
    appointment_type = relationship("AppointmentType", lazy="joined")
