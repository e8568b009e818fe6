"""Columns shared by every scheduling table."""

import enum
from datetime import datetime

from sqlalchemy import Column, DateTime, String


class RecordState(str, enum.Enum):
    """Lifecycle tag replacing per-entity ``is_active`` flags."""

    ACTIVE = "active"
    DELETED = "deleted"


class LifecycleMixin:
    record_state = Column(String(10), nullable=False, default=RecordState.ACTIVE.value, index=True)
    created_at = Column(DateTime, nullable=False, default=datetime.utcnow)
    updated_at = Column(DateTime, nullable=True, onupdate=datetime.utcnow)

    @property
    def is_active(self) -> bool:
        return self.record_state == RecordState.ACTIVE.value

    def mark_deleted(self) -> None:
        self.record_state = RecordState.DELETED.value
        self.updated_at = datetime.utcnow()

    def mark_active(self) -> None:
        self.record_state = RecordState.ACTIVE.value
        self.updated_at = datetime.utcnow()


def only_active(query, model, include_deleted: bool = False):
    """Restrict ``query`` to active rows unless the caller asks for history."""
    if include_deleted:
        return query
    return query.filter(model.record_state == RecordState.ACTIVE.value)
