import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker

from backend.core import config


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL, echo=config.SQL_ECHO)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_booking_schema_checked = False


def ensure_booking_schema() -> None:
    """Bring an older ``bookings`` table up to the current column set."""
    global _booking_schema_checked

    if _booking_schema_checked:
        return

    with _schema_lock:
        if _booking_schema_checked:
            return

        inspector = inspect(engine)

        if 'bookings' not in inspector.get_table_names():
            _booking_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('bookings')}
        migration_steps = [
            ('therapist_id', 'ALTER TABLE bookings ADD COLUMN therapist_id VARCHAR'),
            ('room_id', 'ALTER TABLE bookings ADD COLUMN room_id VARCHAR'),
            ('payment_status', "ALTER TABLE bookings ADD COLUMN payment_status VARCHAR DEFAULT 'unpaid'"),
            ('payment_type', 'ALTER TABLE bookings ADD COLUMN payment_type VARCHAR'),
            ('internal_note', 'ALTER TABLE bookings ADD COLUMN internal_note VARCHAR'),
            ('source', "ALTER TABLE bookings ADD COLUMN source VARCHAR DEFAULT 'online'"),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_date_status ON bookings(date, status)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_bookings_therapist_date ON bookings(therapist_id, date)')
            )

        _booking_schema_checked = True
