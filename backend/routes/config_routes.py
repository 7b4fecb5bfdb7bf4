import logging

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import ROLE_ADMIN, require_roles
from backend.core.exceptions import SpaDomainError
from backend.models.spa_settings import SETTINGS_ROW_ID, SpaSettings
from backend.models.therapist import Therapist, TherapistScheduleEntry
from backend.models.user import User
from backend.routes.common import database_unavailable, domain_error, ensure_database_ready, get_db
from backend.services.availability import ScheduleConfig, ScheduleSlot
from backend.services.sql_sources import SqlScheduleConfigProvider

router = APIRouter(tags=['config'])

logger = logging.getLogger(__name__)

admin_only = require_roles(ROLE_ADMIN)


class BookingSettingsRequest(BaseModel):
    slot_duration_minutes: int = Field(gt=0, le=24 * 60)
    booking_buffer_minutes: int = Field(ge=0, le=24 * 60)


class BookingSettingsResponse(BaseModel):
    slot_duration_minutes: int
    booking_buffer_minutes: int

    class Config:
        from_attributes = True


class TherapistRequest(BaseModel):
    name: str
    enabled: bool = True
    schedule: list[ScheduleSlot] = Field(default_factory=list)

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Therapist name is required.')
        return normalized


class TherapistResponse(BaseModel):
    id: str
    name: str
    enabled: bool
    schedule: list[ScheduleSlot]


@router.get('/schedule', response_model=ScheduleConfig)
def get_schedule_config(
    db: Session = Depends(get_db),
    _user: User = Depends(admin_only),
):
    ensure_database_ready()

    try:
        return SqlScheduleConfigProvider(db).get_schedule_config()
    except SpaDomainError as exc:
        raise domain_error(exc) from exc


@router.put('/booking-settings', response_model=BookingSettingsResponse)
def update_booking_settings(
    data: BookingSettingsRequest,
    db: Session = Depends(get_db),
    _user: User = Depends(admin_only),
):
    ensure_database_ready()

    try:
        settings = db.get(SpaSettings, SETTINGS_ROW_ID)
        if settings is None:
            settings = SpaSettings(id=SETTINGS_ROW_ID)
            db.add(settings)

        settings.slot_duration_minutes = data.slot_duration_minutes
        settings.booking_buffer_minutes = data.booking_buffer_minutes
        db.commit()
        db.refresh(settings)

        logger.info(
            'Booking settings changed: duration=%d buffer=%d',
            settings.slot_duration_minutes,
            settings.booking_buffer_minutes,
        )
        return settings
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.put('/therapists/{therapist_id}', response_model=TherapistResponse, status_code=status.HTTP_200_OK)
def save_therapist(
    therapist_id: str,
    data: TherapistRequest,
    db: Session = Depends(get_db),
    _user: User = Depends(admin_only),
):
    """Create or replace a therapist together with their weekly schedule."""
    ensure_database_ready()

    try:
        therapist = db.get(Therapist, therapist_id)
        if therapist is None:
            therapist = Therapist(id=therapist_id)
            db.add(therapist)

        therapist.name = data.name
        therapist.enabled = data.enabled

        db.query(TherapistScheduleEntry).filter(
            TherapistScheduleEntry.therapist_id == therapist_id,
        ).delete(synchronize_session=False)
        for window in data.schedule:
            db.add(
                TherapistScheduleEntry(
                    therapist_id=therapist_id,
                    day_of_week=window.day_of_week,
                    start_time=window.start_time,
                    end_time=window.end_time,
                )
            )

        db.commit()

        logger.info('Saved therapist %s with %d schedule windows', therapist_id, len(data.schedule))
        return TherapistResponse(
            id=therapist_id,
            name=data.name,
            enabled=data.enabled,
            schedule=data.schedule,
        )
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
