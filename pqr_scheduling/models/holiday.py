"""Holiday model definitions."""

import enum

from sqlalchemy import Column, Date, ForeignKey, Index, Integer, String, text

from pqr_scheduling.database import Base
from pqr_scheduling.models.common import LifecycleMixin


class HolidayType(str, enum.Enum):
    NATIONAL = "NATIONAL"
    COMPANY = "COMPANY"
    LOCAL = "LOCAL"


class Holiday(LifecycleMixin, Base):
    """A closed day, company-wide when ``branch_id`` is null."""
    __tablename__ = "holidays"
    __table_args__ = (
        Index(
            "uq_holidays_active_date_scope",
            "holiday_date",
            "branch_id",
            unique=True,
            sqlite_where=text("record_state = 'active'"),
            postgresql_where=text("record_state = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True)
    holiday_date = Column(Date, nullable=False, index=True)
    holiday_name = Column(String(100), nullable=False)
    holiday_type = Column(String(20), nullable=False, default=HolidayType.NATIONAL.value)
    branch_id = Column(Integer, ForeignKey("branches.id"), nullable=True)

    def applies_to_branch(self, branch_id: int | None) -> bool:
        if self.branch_id is None:
            return True
        return self.branch_id == branch_id
