import os
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from pqr_scheduling.database import Base, init_db  # noqa: E402
from pqr_scheduling.models.catalog import AppointmentType, AvailableTime, Branch  # noqa: E402
from pqr_scheduling.models.client import Client  # noqa: E402
from pqr_scheduling.models.user import User  # noqa: E402

# 2025-06-10 is a Tuesday; "now" sits a week earlier unless a test says otherwise.
BOOKING_DAY = datetime(2025, 6, 10).date()
NOW = datetime(2025, 6, 3, 8, 0)


@pytest.fixture
def engine():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    init_db(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture
def db(engine):
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def seed(db):
    """One branch, one appointment type, one client and a 09:00/10:30/14:00 catalog."""
    branch = Branch(code='NEI', name='Neiva Centro', city='Neiva', is_main=True)
    appointment_type = AppointmentType(name='New connection', estimated_time_minutes=30)
    other_type = AppointmentType(name='Billing claim', estimated_time_minutes=30)
    client = Client(client_number='CLI-0001', document_number='1075000001', full_name='Ana Torres')
    db.add_all([branch, appointment_type, other_type, client])
    db.commit()

    for slot in ('14:00', '09:00', '10:30'):
        db.add(AvailableTime(branch_id=branch.id, appointment_type_id=appointment_type.id, time=slot))
        db.add(AvailableTime(branch_id=branch.id, appointment_type_id=other_type.id, time=slot))
    db.commit()

    return {
        'branch': branch,
        'appointment_type': appointment_type,
        'other_type': other_type,
        'client': client,
    }


@pytest.fixture
def admin_user(db):
    user = User(username='admin', email='admin@electrohuila.example', role='admin')
    db.add(user)
    db.commit()
    return user


@pytest.fixture
def staff_user(db):
    user = User(username='agent', email='agent@electrohuila.example', role='staff')
    db.add(user)
    db.commit()
    return user
