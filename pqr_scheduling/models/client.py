"""Client model definitions."""

from sqlalchemy import Column, Index, Integer, String, text

from pqr_scheduling.database import ACTIVE_CLIENT_DOCUMENT_INDEX, Base
from pqr_scheduling.models.common import LifecycleMixin


class Client(LifecycleMixin, Base):
    """A utility customer who books appointments."""
    __tablename__ = "clients"
    __table_args__ = (
        # One active client per document number.
        Index(
            ACTIVE_CLIENT_DOCUMENT_INDEX,
            "document_number",
            unique=True,
            sqlite_where=text("record_state = 'active'"),
            postgresql_where=text("record_state = 'active'"),
        ),
    )

    id = Column(Integer, primary_key=True, index=True)
    client_number = Column(String(30), unique=True, nullable=False)
    document_type = Column(String(10), default="CC", nullable=False)
    document_number = Column(String(20), nullable=False)
    full_name = Column(String(200), nullable=False)
    email = Column(String(100))
    phone = Column(String(20))
    address = Column(String(200))
