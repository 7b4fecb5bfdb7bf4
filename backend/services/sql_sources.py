"""SQLAlchemy-backed collaborators for the availability service."""

from datetime import date

from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.exceptions import DataUnavailable
from backend.models.booking import Booking
from backend.models.spa_settings import SETTINGS_ROW_ID, SpaSettings
from backend.models.therapist import Therapist, TherapistScheduleEntry
from backend.services.availability import (
    INACTIVE_BOOKING_STATUSES,
    BookingRecord,
    ScheduleConfig,
    ScheduleSlot,
    TherapistSchedule,
)


def load_booking_settings(db: Session) -> tuple[int, int]:
    """Slot duration and buffer in minutes, falling back to configured defaults."""
    settings = db.get(SpaSettings, SETTINGS_ROW_ID)

    duration = config.DEFAULT_SLOT_DURATION_MINUTES
    buffer = config.DEFAULT_BOOKING_BUFFER_MINUTES
    if settings is not None:
        if settings.slot_duration_minutes is not None:
            duration = settings.slot_duration_minutes
        if settings.booking_buffer_minutes is not None:
            buffer = settings.booking_buffer_minutes

    return duration, buffer


def build_therapist_schedule(therapist: Therapist, entries: list[TherapistScheduleEntry]) -> TherapistSchedule:
    return TherapistSchedule(
        id=therapist.id,
        enabled=bool(therapist.enabled),
        schedule=[
            ScheduleSlot(
                day_of_week=entry.day_of_week,
                start_time=entry.start_time,
                end_time=entry.end_time,
            )
            for entry in entries
        ],
    )


class SqlScheduleConfigProvider:
    def __init__(self, db: Session):
        self.db = db

    def get_schedule_config(self) -> ScheduleConfig:
        try:
            therapists = self.db.query(Therapist).order_by(Therapist.id.asc()).all()
            entries = self.db.query(TherapistScheduleEntry).order_by(
                TherapistScheduleEntry.therapist_id.asc(),
                TherapistScheduleEntry.day_of_week.asc(),
                TherapistScheduleEntry.start_time.asc(),
            ).all()
            duration, buffer = load_booking_settings(self.db)
        except SQLAlchemyError as exc:
            raise DataUnavailable('Schedule configuration could not be loaded.') from exc

        entries_by_therapist: dict[str, list[TherapistScheduleEntry]] = {}
        for entry in entries:
            entries_by_therapist.setdefault(entry.therapist_id, []).append(entry)

        try:
            return ScheduleConfig(
                therapists=[
                    build_therapist_schedule(therapist, entries_by_therapist.get(therapist.id, []))
                    for therapist in therapists
                ],
                slot_duration_minutes=duration,
                booking_buffer_minutes=buffer,
            )
        except ValidationError as exc:
            raise DataUnavailable('Stored schedule configuration is invalid.') from exc


class SqlBookingSource:
    def __init__(self, db: Session):
        self.db = db

    def list_bookings_for_date(self, booking_date: date) -> list[BookingRecord]:
        try:
            rows = self.db.query(
                Booking.start_time,
                Booking.end_time,
                Booking.therapist_id,
                Booking.status,
            ).filter(
                Booking.date == booking_date,
                Booking.status.notin_(sorted(INACTIVE_BOOKING_STATUSES)),
            ).all()
        except SQLAlchemyError as exc:
            raise DataUnavailable(f'Bookings for {booking_date.isoformat()} could not be loaded.') from exc

        return [
            BookingRecord(
                start_time=start_time,
                end_time=end_time,
                therapist_id=therapist_id,
                status=status,
            )
            for start_time, end_time, therapist_id, status in rows
        ]
