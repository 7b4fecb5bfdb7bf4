import logging
from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.auth.dependencies import ROLE_ADMIN, ROLE_RECEPTION, ROLE_THERAPIST, require_roles
from backend.core.exceptions import SpaDomainError
from backend.models.booking import Booking
from backend.models.therapist import Therapist
from backend.models.user import User
from backend.routes.availability_routes import build_availability_service
from backend.routes.client_routes import ensure_client_exists
from backend.routes.common import database_unavailable, domain_error, ensure_database_ready, get_db
from backend.services.availability import minutes_to_time, time_to_minutes
from backend.services.sql_sources import load_booking_settings

router = APIRouter(tags=['bookings'])

logger = logging.getLogger(__name__)

BOOKING_STATUSES = ('scheduled', 'checked_in', 'in_progress', 'done', 'cancelled')
PAYMENT_STATUSES = ('unpaid', 'paid')
SOURCE_ONLINE = 'online'
SOURCE_WALKIN = 'walkin'
MAX_INTERNAL_NOTE_LENGTH = 1000
MINUTES_PER_DAY = 24 * 60

staff_only = require_roles(ROLE_ADMIN, ROLE_RECEPTION)


def _normalize_time(value: str) -> str:
    try:
        return minutes_to_time(time_to_minutes(value))
    except ValueError as exc:
        raise ValueError('Time must be in HH:MM format.') from exc


def _normalize_optional_id(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    return normalized or None


class CreateBookingRequest(BaseModel):
    client_id: str
    date: date
    start_time: str
    therapist_id: str | None = None
    room_id: str | None = None

    @field_validator('client_id')
    @classmethod
    def validate_client_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Client is required.')
        return normalized

    @field_validator('start_time')
    @classmethod
    def validate_start_time(cls, value: str) -> str:
        return _normalize_time(value)

    @field_validator('therapist_id', 'room_id')
    @classmethod
    def validate_optional_ids(cls, value: str | None) -> str | None:
        return _normalize_optional_id(value)


class UpdateBookingRequest(BaseModel):
    status: str | None = None
    therapist_id: str | None = None
    room_id: str | None = None
    payment_status: str | None = None
    payment_type: str | None = None
    internal_note: str | None = None

    @field_validator('status')
    @classmethod
    def validate_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in BOOKING_STATUSES:
            raise ValueError('Invalid booking status.')
        return normalized

    @field_validator('payment_status')
    @classmethod
    def validate_payment_status(cls, value: str | None) -> str | None:
        if value is None:
            return None
        normalized = value.strip().lower()
        if normalized not in PAYMENT_STATUSES:
            raise ValueError('Invalid payment status.')
        return normalized

    @field_validator('therapist_id', 'room_id')
    @classmethod
    def validate_optional_ids(cls, value: str | None) -> str | None:
        return _normalize_optional_id(value)

    @field_validator('internal_note')
    @classmethod
    def validate_internal_note(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if len(normalized) > MAX_INTERNAL_NOTE_LENGTH:
            raise ValueError(f'Internal note must be {MAX_INTERNAL_NOTE_LENGTH} characters or fewer.')

        return normalized


class BookingResponse(BaseModel):
    id: int
    client_id: str
    therapist_id: str | None = None
    room_id: str | None = None
    status: str
    date: date
    start_time: str | None = None
    end_time: str | None = None
    payment_status: str | None = None
    payment_type: str | None = None
    internal_note: str | None = None
    source: str | None = None
    created_at: datetime | None = None

    class Config:
        from_attributes = True


def compute_end_time(start_time: str, duration_minutes: int) -> str:
    end_minutes = time_to_minutes(start_time) + duration_minutes
    if end_minutes > MINUTES_PER_DAY:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Bookings cannot run past midnight.',
        )
    return minutes_to_time(end_minutes)


def ensure_therapist_exists(therapist_id: str | None, db: Session) -> None:
    if therapist_id is None:
        return

    therapist = db.query(Therapist).filter(Therapist.id == therapist_id).first()
    if therapist is None or not therapist.enabled:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Unknown or disabled therapist.',
        )


def ensure_start_not_passed(booking_date: date, start_time: str, now: datetime | None = None) -> None:
    now = now or datetime.now()

    if booking_date < now.date():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='Bookings must be for today or a future date.',
        )

    if booking_date == now.date() and time_to_minutes(start_time) <= now.hour * 60 + now.minute:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail='This time has already passed.',
        )


def store_booking(data: CreateBookingRequest, source: str, db: Session) -> Booking:
    duration_minutes, _ = load_booking_settings(db)

    booking = Booking(
        client_id=data.client_id,
        therapist_id=data.therapist_id,
        room_id=data.room_id,
        status='scheduled',
        date=data.date,
        start_time=data.start_time,
        end_time=compute_end_time(data.start_time, duration_minutes),
        payment_status='unpaid',
        source=source,
    )
    db.add(booking)
    db.commit()
    db.refresh(booking)

    logger.info(
        'Created %s booking %s on %s at %s',
        source,
        booking.id,
        booking.date.isoformat(),
        booking.start_time,
    )
    return booking


@router.post('', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_booking(data: CreateBookingRequest, db: Session = Depends(get_db)):
    ensure_database_ready()

    ensure_start_not_passed(data.date, data.start_time)

    try:
        ensure_client_exists(data.client_id, db)
        ensure_therapist_exists(data.therapist_id, db)

        # Optimistic: another booking can still take this time before commit.
        service = build_availability_service(db)
        if not service.is_time_available(data.date, data.start_time, therapist_id=data.therapist_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail='This time is no longer available.',
            )

        return store_booking(data, SOURCE_ONLINE, db)
    except SpaDomainError as exc:
        db.rollback()
        raise domain_error(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


@router.post('/walk-in', response_model=BookingResponse, status_code=status.HTTP_201_CREATED)
def create_walk_in_booking(
    data: CreateBookingRequest,
    db: Session = Depends(get_db),
    _user: User = Depends(staff_only),
):
    ensure_database_ready()

    try:
        ensure_client_exists(data.client_id, db)
        ensure_therapist_exists(data.therapist_id, db)
        return store_booking(data, SOURCE_WALKIN, db)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc


def query_bookings(db: Session, booking_date: date, therapist_id: str | None = None) -> list[Booking]:
    query = db.query(Booking).filter(Booking.date == booking_date)
    if therapist_id is not None:
        query = query.filter(Booking.therapist_id == therapist_id)
    return query.order_by(Booking.start_time.asc(), Booking.id.asc()).all()


@router.get('', response_model=list[BookingResponse])
def list_bookings(
    booking_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
    _user: User = Depends(staff_only),
):
    ensure_database_ready()

    try:
        return query_bookings(db, booking_date)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/today', response_model=list[BookingResponse])
def list_today_bookings(
    db: Session = Depends(get_db),
    _user: User = Depends(staff_only),
):
    ensure_database_ready()

    try:
        return query_bookings(db, date.today())
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.get('/mine/today', response_model=list[BookingResponse])
def list_my_today_bookings(
    db: Session = Depends(get_db),
    user: User = Depends(require_roles(ROLE_THERAPIST)),
):
    if not user.therapist_id:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail='This account is not linked to a therapist.',
        )

    ensure_database_ready()

    try:
        return query_bookings(db, date.today(), therapist_id=user.therapist_id)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


def get_booking_or_404(booking_id: int, db: Session) -> Booking:
    booking = db.query(Booking).filter(Booking.id == booking_id).first()
    if booking is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail='Booking not found.',
        )
    return booking


@router.get('/{booking_id}', response_model=BookingResponse)
def get_booking(
    booking_id: int,
    db: Session = Depends(get_db),
    _user: User = Depends(staff_only),
):
    ensure_database_ready()

    try:
        return get_booking_or_404(booking_id, db)
    except SQLAlchemyError as exc:
        raise database_unavailable(exc) from exc


@router.patch('/{booking_id}', response_model=BookingResponse)
def update_booking(
    booking_id: int,
    data: UpdateBookingRequest,
    db: Session = Depends(get_db),
    _user: User = Depends(staff_only),
):
    ensure_database_ready()

    try:
        booking = get_booking_or_404(booking_id, db)
        changes = data.model_dump(exclude_unset=True)

        if 'therapist_id' in changes:
            ensure_therapist_exists(changes['therapist_id'], db)

        for field_name, value in changes.items():
            if field_name == 'status' and value is None:
                continue
            setattr(booking, field_name, value)

        db.commit()
        db.refresh(booking)

        logger.info('Updated booking %s: %s', booking.id, ', '.join(sorted(changes)) or 'no changes')
        return booking
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable(exc) from exc
