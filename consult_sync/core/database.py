"""SQLite engine and sessions shared by webhooks, the poll sync and scripts.

Duplicate detection lives in the schema, not in application locks. The
UNIQUE indexes on ``consultation.external_event_id`` and ``student.email``
are the only thing that stops a webhook delivery and a poll run, racing on
the same booking, from both inserting a row. The stores in
``consult_sync.calendar.stores`` flush each insert, catch the resulting
``IntegrityError``, roll back and re-read the winning row. Every connection
must therefore behave the same way, which is what the pragma hook ensures:

    - ``journal_mode=WAL`` so the status endpoint and webhook lookups keep
      reading while a poll batch is committing event by event.
    - ``foreign_keys=ON`` because SQLite does not enforce
      ``consultation.student_id`` otherwise, and a rolled-back student
      insert must never leave an orphaned consultation behind.
"""

from sqlalchemy import event as sa_event
from sqlmodel import Session, SQLModel, create_engine

from consult_sync.core.config import settings

# FastAPI runs sync routes in a threadpool; the scheduler job opens its own session.
connect_args = {"check_same_thread": False}

engine = create_engine(
    settings.database_url,
    connect_args=connect_args,
    echo=settings.debug,
)


@sa_event.listens_for(engine, "connect")
def apply_sqlite_pragmas(dbapi_connection, connection_record):
    """Set per-connection pragmas; they do not persist in the database file."""
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode=WAL")
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def create_db_and_tables():
    """Create the student, consultation and audit tables if missing."""
    SQLModel.metadata.create_all(engine)


def get_session():
    """Dependency for getting database session."""
    with Session(engine) as session:
        yield session
