import re
import threading
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from conftest import BOOKING_DAY, NOW
from pqr_scheduling.core.errors import ConflictError, InvalidStateError, NotFoundError, ValidationError
from pqr_scheduling.database import Base, init_db
from pqr_scheduling.models.appointment import Appointment, AppointmentStatus
from pqr_scheduling.models.catalog import AppointmentType, AvailableTime, Branch
from pqr_scheduling.models.client import Client
from pqr_scheduling.models.holiday import Holiday
from pqr_scheduling.scheduling import notifications
from pqr_scheduling.scheduling.availability import AvailabilityEngine
from pqr_scheduling.scheduling.directory import ClientDetails
from pqr_scheduling.scheduling.ledger import BookingLedger
from pqr_scheduling.scheduling.lifecycle import (
    AppointmentLifecycle,
    AppointmentRequest,
    ensure_transition,
    generate_appointment_number,
)


def request_for(seed, hour=10, minute=30, **overrides) -> AppointmentRequest:
    values = {
        'client_id': seed['client'].id,
        'branch_id': seed['branch'].id,
        'appointment_type_id': seed['appointment_type'].id,
        'appointment_date': datetime(BOOKING_DAY.year, BOOKING_DAY.month, BOOKING_DAY.day, hour, minute),
    }
    values.update(overrides)
    return AppointmentRequest(**values)


def available_labels(db, seed) -> list[str]:
    slots = AvailabilityEngine(db).get_available_times(
        BOOKING_DAY, seed['branch'].id, seed['appointment_type'].id, now=NOW
    )
    return [slot.label for slot in slots]


def test_generate_appointment_number_format() -> None:
    number = generate_appointment_number(datetime(2025, 6, 3, 8, 0))

    assert re.fullmatch(r'APT-20250603-[0-9A-F]{32}', number)


def test_generated_numbers_are_unique() -> None:
    numbers = {generate_appointment_number() for _ in range(500)}

    assert len(numbers) == 500


@pytest.mark.parametrize(
    ('current', 'target', 'message'),
    [
        ('pending', AppointmentStatus.COMPLETED, 'Cannot move an appointment from pending to completed'),
        ('completed', AppointmentStatus.CANCELLED, 'Cannot move an appointment from completed to cancelled'),
        ('cancelled', AppointmentStatus.CONFIRMED, 'Cannot move an appointment from cancelled to confirmed'),
        ('confirmed', AppointmentStatus.CONFIRMED, 'Appointment is already confirmed'),
    ],
)
def test_ensure_transition_rejects_illegal_moves(current, target, message) -> None:
    with pytest.raises(InvalidStateError) as exception_info:
        ensure_transition(current, target)

    assert exception_info.value.message == message


def test_create_books_pending_appointment_and_takes_slot(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)

    appointment = lifecycle.create(request_for(seed, notes='  Bring invoice  '), now=NOW)

    assert appointment.status == 'pending'
    assert appointment.is_active
    assert appointment.notes == 'Bring invoice'
    assert appointment.appointment_number.startswith('APT-')
    assert available_labels(db, seed) == ['09:00', '14:00']
    assert [event.event_type for event in lifecycle.published] == [notifications.APPOINTMENT_SCHEDULED]


def test_create_truncates_seconds(db, seed) -> None:
    appointment = AppointmentLifecycle(db).create(
        request_for(seed, appointment_date=datetime(2025, 6, 10, 9, 0, 42, 1000)),
        now=NOW,
    )

    assert appointment.appointment_date == datetime(2025, 6, 10, 9, 0)


def test_second_booking_for_same_slot_conflicts(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    lifecycle.create(request_for(seed), now=NOW)

    with pytest.raises(ConflictError):
        lifecycle.create(request_for(seed), now=NOW)


def test_same_time_different_type_is_allowed(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    lifecycle.create(request_for(seed), now=NOW)

    other = lifecycle.create(request_for(seed, appointment_type_id=seed['other_type'].id), now=NOW)

    assert other.appointment_type_id == seed['other_type'].id


@pytest.mark.parametrize('field_name', ['client_id', 'branch_id', 'appointment_type_id'])
def test_create_rejects_non_positive_ids(db, seed, field_name) -> None:
    with pytest.raises(ValidationError) as exception_info:
        AppointmentLifecycle(db).create(request_for(seed, **{field_name: 0}), now=NOW)

    assert exception_info.value.message == f'{field_name} must be a positive integer'


def test_create_rejects_past_moment(db, seed) -> None:
    with pytest.raises(ValidationError):
        AppointmentLifecycle(db).create(request_for(seed, appointment_date=datetime(2025, 6, 2, 9, 0)), now=NOW)


def test_create_rejects_time_outside_catalog(db, seed) -> None:
    with pytest.raises(ValidationError):
        AppointmentLifecycle(db).create(request_for(seed, hour=11, minute=0), now=NOW)


def test_create_rejects_holiday(db, seed) -> None:
    db.add(Holiday(holiday_date=BOOKING_DAY, holiday_name='Festivo', holiday_type='NATIONAL'))
    db.commit()

    with pytest.raises(ValidationError) as exception_info:
        AppointmentLifecycle(db).create(request_for(seed), now=NOW)

    assert 'holiday' in exception_info.value.message


def test_create_rejects_unknown_client_branch_or_type(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)

    for overrides in ({'client_id': 999}, {'branch_id': 999}, {'appointment_type_id': 999}):
        with pytest.raises(NotFoundError):
            lifecycle.create(request_for(seed, **overrides), now=NOW)


def test_full_lifecycle_pending_confirmed_completed(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    appointment = lifecycle.create(request_for(seed), now=NOW)

    confirmed = lifecycle.confirm(appointment.id)
    assert confirmed.status == 'confirmed'

    completed = lifecycle.complete(appointment.id, notes='Meter installed', now=datetime(2025, 6, 10, 11, 0))

    assert completed.status == 'completed'
    assert completed.completed_at == datetime(2025, 6, 10, 11, 0)
    assert completed.notes == 'Meter installed'
    assert [event.event_type for event in lifecycle.published] == [
        notifications.APPOINTMENT_SCHEDULED,
        notifications.APPOINTMENT_CONFIRMED,
        notifications.APPOINTMENT_COMPLETED,
    ]
    # Completed appointments keep holding their slot.
    assert available_labels(db, seed) == ['09:00', '14:00']


def test_complete_requires_confirmation(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    appointment = lifecycle.create(request_for(seed), now=NOW)

    with pytest.raises(InvalidStateError):
        lifecycle.complete(appointment.id)


def test_confirm_twice_is_invalid(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    appointment = lifecycle.create(request_for(seed), now=NOW)
    lifecycle.confirm(appointment.id)

    with pytest.raises(InvalidStateError):
        lifecycle.confirm(appointment.id)


def test_cancel_records_reason_and_frees_slot(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    appointment = lifecycle.create(request_for(seed), now=NOW)

    cancelled = lifecycle.cancel(appointment.id, '  Client rescheduled  ')

    assert cancelled.status == 'cancelled'
    assert cancelled.cancellation_reason == 'Client rescheduled'
    assert lifecycle.published[-1].event_type == notifications.APPOINTMENT_CANCELLED
    assert lifecycle.published[-1].reason == 'Client rescheduled'
    assert available_labels(db, seed) == ['09:00', '10:30', '14:00']

    rebooked = lifecycle.create(request_for(seed), now=NOW)
    assert rebooked.id != appointment.id


def test_cancel_requires_reason(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    appointment = lifecycle.create(request_for(seed), now=NOW)

    with pytest.raises(ValidationError):
        lifecycle.cancel(appointment.id, '   ')
    with pytest.raises(ValidationError):
        lifecycle.cancel(appointment.id, 'x' * 501)


def test_cancel_completed_appointment_is_invalid(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    appointment = lifecycle.create(request_for(seed), now=NOW)
    lifecycle.confirm(appointment.id)
    lifecycle.complete(appointment.id)

    with pytest.raises(InvalidStateError):
        lifecycle.cancel(appointment.id, 'Too late')


def test_cancel_by_number_checks_document(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    appointment = lifecycle.create(request_for(seed), now=NOW)

    with pytest.raises(NotFoundError):
        lifecycle.cancel_by_number(appointment.appointment_number, '999', 'Not mine')

    cancelled = lifecycle.cancel_by_number(appointment.appointment_number.lower(), '1075000001', 'Cannot attend')
    assert cancelled.status == 'cancelled'


def test_delete_hides_appointment_and_frees_slot(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    appointment = lifecycle.create(request_for(seed), now=NOW)

    lifecycle.delete(appointment.id)

    with pytest.raises(NotFoundError):
        lifecycle.ledger.get(appointment.id)
    assert lifecycle.ledger.get(appointment.id, include_deleted=True).status == 'pending'
    assert available_labels(db, seed) == ['09:00', '10:30', '14:00']


def test_publisher_failure_does_not_undo_booking(db, seed) -> None:
    def broken_publish(event) -> None:
        raise RuntimeError('queue down')

    lifecycle = AppointmentLifecycle(db, publish=broken_publish)
    appointment = lifecycle.create(request_for(seed), now=NOW)

    assert BookingLedger(db).get(appointment.id).status == 'pending'


def test_listings_filter_by_status_and_visible_types(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    first = lifecycle.create(request_for(seed, hour=9, minute=0), now=NOW)
    lifecycle.create(request_for(seed, appointment_type_id=seed['other_type'].id), now=NOW)
    lifecycle.confirm(first.id)
    ledger = BookingLedger(db)

    assert [item.id for item in ledger.list_by_status(AppointmentStatus.CONFIRMED)] == [first.id]
    assert len(ledger.list_pending()) == 1
    assert ledger.list_pending({seed['appointment_type'].id}) == []
    assert len(ledger.list_by_branch(seed['branch'].id)) == 2
    assert len(ledger.list_by_client(seed['client'].id)) == 2


def test_schedule_for_client_registers_unknown_document(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    details = ClientDetails(document_number='1075000009', full_name='Marta Rojas', phone='3001234567')

    appointment = lifecycle.schedule_for_client(
        details,
        seed['branch'].id,
        seed['appointment_type'].id,
        datetime(2025, 6, 10, 9, 0),
        notes='First visit',
        now=NOW,
    )

    client = db.query(Client).filter(Client.document_number == '1075000009').one()
    assert appointment.client_id == client.id
    assert appointment.status == 'pending'
    assert appointment.notes == 'First visit'
    assert client.phone == '3001234567'
    assert lifecycle.published[-1].event_type == notifications.APPOINTMENT_SCHEDULED


def test_schedule_for_client_reuses_existing_client(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)

    appointment = lifecycle.schedule_for_client(
        ClientDetails(document_number='1075000001', full_name='Ana Torres'),
        seed['branch'].id,
        seed['appointment_type'].id,
        datetime(2025, 6, 10, 9, 0),
        now=NOW,
    )

    assert appointment.client_id == seed['client'].id
    assert db.query(Client).count() == 1


def test_schedule_for_client_leaves_no_client_when_slot_is_taken(db, seed) -> None:
    lifecycle = AppointmentLifecycle(db)
    lifecycle.create(request_for(seed), now=NOW)

    with pytest.raises(ConflictError):
        lifecycle.schedule_for_client(
            ClientDetails(document_number='1075000009', full_name='Marta Rojas'),
            seed['branch'].id,
            seed['appointment_type'].id,
            datetime(2025, 6, 10, 10, 30),
            now=NOW,
        )

    assert db.query(Client).count() == 1


def test_schedule_for_client_validates_details_before_booking(db, seed) -> None:
    with pytest.raises(ValidationError):
        AppointmentLifecycle(db).schedule_for_client(
            ClientDetails(document_number='123', full_name='Marta Rojas'),
            seed['branch'].id,
            seed['appointment_type'].id,
            datetime(2025, 6, 10, 9, 0),
            now=NOW,
        )

    assert db.query(Appointment).count() == 0


@pytest.fixture
def shared_database(tmp_path):
    engine = create_engine(
        f"sqlite:///{tmp_path / 'race.db'}",
        connect_args={'check_same_thread': False, 'timeout': 30},
    )
    init_db(bind=engine)
    session_factory = sessionmaker(autocommit=False, autoflush=False, bind=engine)

    setup = session_factory()
    branch = Branch(code='NEI', name='Neiva Centro')
    appointment_type = AppointmentType(name='New connection')
    client = Client(client_number='CLI-0001', document_number='1075000001', full_name='Ana Torres')
    setup.add_all([branch, appointment_type, client])
    setup.commit()
    setup.add(AvailableTime(branch_id=branch.id, appointment_type_id=appointment_type.id, time='10:30'))
    setup.commit()
    ids = {'client': client.id, 'branch': branch.id, 'appointment_type': appointment_type.id}
    setup.close()

    try:
        yield session_factory, ids
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def test_racing_sessions_book_slot_exactly_once(shared_database) -> None:
    session_factory, ids = shared_database
    first_session, second_session = session_factory(), session_factory()
    moment = datetime(2025, 6, 10, 10, 30)
    request = AppointmentRequest(ids['client'], ids['branch'], ids['appointment_type'], moment)

    try:
        first = AppointmentLifecycle(first_session)
        second = AppointmentLifecycle(second_session)
        # Both callers saw the slot as free before either wrote.
        assert first.engine.is_slot_available(moment, ids['branch'], ids['appointment_type'], now=NOW)
        assert second.engine.is_slot_available(moment, ids['branch'], ids['appointment_type'], now=NOW)

        first.create(request, now=NOW)

        losing = Appointment(
            appointment_number=generate_appointment_number(),
            client_id=ids['client'],
            branch_id=ids['branch'],
            appointment_type_id=ids['appointment_type'],
            appointment_date=moment,
            status=AppointmentStatus.PENDING.value,
        )
        with pytest.raises(ConflictError):
            second.ledger.insert(losing)

        live = second_session.query(Appointment).filter(Appointment.status != 'cancelled').count()
        assert live == 1
    finally:
        first_session.close()
        second_session.close()


def test_concurrent_creates_book_slot_exactly_once(shared_database) -> None:
    session_factory, ids = shared_database
    barrier = threading.Barrier(2)
    outcomes: list[str] = []
    request = AppointmentRequest(ids['client'], ids['branch'], ids['appointment_type'], datetime(2025, 6, 10, 10, 30))

    def book() -> None:
        session = session_factory()
        try:
            lifecycle = AppointmentLifecycle(session)
            barrier.wait()
            lifecycle.create(request, now=NOW)
            outcomes.append('ok')
        except ConflictError:
            outcomes.append('ConflictError')
        finally:
            session.close()

    threads = [threading.Thread(target=book) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join(timeout=60)

    assert sorted(outcomes) == ['ConflictError', 'ok']

    check = session_factory()
    try:
        assert check.query(Appointment).count() == 1
    finally:
        check.close()
