"""Branch configuration: branches, appointment types and their time catalogs."""

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, String, text

from pqr_scheduling.database import Base
from pqr_scheduling.models.common import LifecycleMixin


class Branch(LifecycleMixin, Base):
    """An office where appointments are attended."""
    __tablename__ = "branches"

    id = Column(Integer, primary_key=True, index=True)
    code = Column(String(20), unique=True, nullable=False)
    name = Column(String(100), nullable=False)
    address = Column(String(200))
    city = Column(String(100))
    is_main = Column(Boolean, default=False, nullable=False)


class AppointmentType(LifecycleMixin, Base):
    """A kind of service a client can book (new connection, claim review...)."""
    __tablename__ = "appointment_types"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), unique=True, nullable=False)
    description = Column(String(500))
    estimated_time_minutes = Column(Integer, default=30, nullable=False)
    requires_documentation = Column(Boolean, default=False, nullable=False)


class AvailableTime(LifecycleMixin, Base):
    """One configured time slot for a (branch, appointment type) pair."""
    __tablename__ = "available_times"
    __table_args__ = (
        Index(
            "uq_available_times_active_slot",
            "branch_id",
            "appointment_type_id",
            "time",
            unique=True,
            sqlite_where=text("record_state = 'active'"),
            postgresql_where=text("record_state = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=False, index=True)
    appointment_type_id = Column(Integer, ForeignKey("appointment_types.id"), nullable=False)
    time = Column(String(5), nullable=False)  # HH:MM, 24h
