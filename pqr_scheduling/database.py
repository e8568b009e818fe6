from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from pqr_scheduling.core import config


def _connect_args(database_url: str) -> dict:
    if database_url.startswith("sqlite"):
        return {"check_same_thread": False}
    return {}


engine = create_engine(
    config.DATABASE_URL,
    echo=config.DATABASE_ECHO,
    pool_pre_ping=True,
    connect_args=_connect_args(config.DATABASE_URL),
)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_indexes_checked = False

ACTIVE_BOOKING_INDEX = 'uq_appointments_active_slot'
ACTIVE_BOOKING_PREDICATE = "record_state = 'active' AND status <> 'cancelled'"
ACTIVE_CLIENT_DOCUMENT_INDEX = 'uq_clients_active_document'

# table -> [(index name, DDL)]
PARTIAL_INDEXES = {
    'appointments': [
        (
            ACTIVE_BOOKING_INDEX,
            f'CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_BOOKING_INDEX} '
            'ON appointments(branch_id, appointment_type_id, appointment_date) '
            f'WHERE {ACTIVE_BOOKING_PREDICATE}',
        ),
        (
            'idx_appointments_branch_date',
            'CREATE INDEX IF NOT EXISTS idx_appointments_branch_date ON appointments(branch_id, appointment_date)',
        ),
    ],
    'clients': [
        (
            ACTIVE_CLIENT_DOCUMENT_INDEX,
            f'CREATE UNIQUE INDEX IF NOT EXISTS {ACTIVE_CLIENT_DOCUMENT_INDEX} '
            "ON clients(document_number) WHERE record_state = 'active'",
        ),
    ],
}


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_partial_indexes(bind=None) -> None:
    """Add the live-row unique indexes to tables created before they existed.

    ``create_all`` never touches a table that is already there, so these are
    created by hand. Fresh databases get them from the model metadata.
    """
    global _indexes_checked

    if _indexes_checked and bind is None:
        return

    target = bind or engine

    with _schema_lock:
        if _indexes_checked and bind is None:
            return

        inspector = inspect(target)
        tables = set(inspector.get_table_names())

        with target.begin() as connection:
            for table_name, indexes in PARTIAL_INDEXES.items():
                if table_name not in tables:
                    continue
                existing = {index['name'] for index in inspector.get_indexes(table_name)}
                for index_name, statement in indexes:
                    if index_name not in existing:
                        connection.execute(text(statement))

        if bind is None:
            _indexes_checked = True


def init_db(bind=None) -> None:
    from pqr_scheduling.models import appointment, catalog, client, holiday, user  # noqa: F401

    target = bind or engine
    Base.metadata.create_all(bind=target)
    ensure_partial_indexes(bind)
