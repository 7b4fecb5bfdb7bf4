import os
from datetime import date, timedelta

import pytest
from fastapi import HTTPException
from sqlalchemy import create_engine
from sqlalchemy.exc import OperationalError
from sqlalchemy.orm import sessionmaker

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from backend.database import Base  # noqa: E402
from backend.models.booking import Booking  # noqa: E402
from backend.models.spa_settings import SpaSettings  # noqa: E402
from backend.models.therapist import Therapist, TherapistScheduleEntry  # noqa: E402
from backend.routes.availability_routes import list_available_dates, list_available_slots  # noqa: E402
from backend.services.availability import TimeSlot  # noqa: E402

MONDAY = date(2026, 1, 5)


@pytest.fixture
def spa_db(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setattr('backend.routes.availability_routes.ensure_database_ready', lambda: None)

    engine = create_engine('sqlite:///:memory:')
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    db = testing_session_local()
    try:
        yield db
    finally:
        db.close()
        Base.metadata.drop_all(bind=engine)


def test_list_available_slots_reports_counts_per_time(spa_db) -> None:
    spa_db.add_all([
        SpaSettings(id=1, slot_duration_minutes=60, booking_buffer_minutes=0),
        Therapist(id='a', name='Ayu', enabled=True),
        Therapist(id='b', name='Budi', enabled=True),
        TherapistScheduleEntry(therapist_id='a', day_of_week=1, start_time='10:00', end_time='12:00'),
        TherapistScheduleEntry(therapist_id='b', day_of_week=1, start_time='10:00', end_time='11:00'),
        Booking(client_id='c1', therapist_id='a', status='scheduled', date=MONDAY, start_time='10:00', end_time='11:00'),
    ])
    spa_db.commit()

    slots = list_available_slots(slot_date=MONDAY, db=spa_db)

    assert slots == [
        TimeSlot(time='10:00', available_count=1),
        TimeSlot(time='11:00', available_count=1),
    ]


def test_list_available_slots_is_empty_without_schedules(spa_db) -> None:
    assert list_available_slots(slot_date=MONDAY, db=spa_db) == []


def test_list_available_slots_returns_503_when_store_fails(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr('backend.routes.availability_routes.ensure_database_ready', lambda: None)

    class BrokenSession:
        def query(self, *args):
            raise OperationalError('SELECT', {}, Exception('connection refused'))

    with pytest.raises(HTTPException) as exception_info:
        list_available_slots(slot_date=MONDAY, db=BrokenSession())

    assert exception_info.value.status_code == 503
    assert exception_info.value.detail['code'] == 'DataUnavailable'


def test_list_available_dates_starts_today_by_default(spa_db) -> None:
    spa_db.add(Therapist(id='a', name='Ayu', enabled=True))
    spa_db.add_all([
        TherapistScheduleEntry(therapist_id='a', day_of_week=dow, start_time='10:00', end_time='18:00')
        for dow in range(7)
    ])
    spa_db.commit()

    today = date.today()

    assert list_available_dates(start_date=None, days=3, db=spa_db) == [
        today,
        today + timedelta(days=1),
        today + timedelta(days=2),
    ]


def test_list_available_dates_never_returns_past_dates(spa_db) -> None:
    spa_db.add(Therapist(id='a', name='Ayu', enabled=True))
    spa_db.add_all([
        TherapistScheduleEntry(therapist_id='a', day_of_week=dow, start_time='10:00', end_time='18:00')
        for dow in range(7)
    ])
    spa_db.commit()

    today = date.today()
    dates = list_available_dates(start_date=today - timedelta(days=3), days=5, db=spa_db)

    assert dates == [today, today + timedelta(days=1)]
