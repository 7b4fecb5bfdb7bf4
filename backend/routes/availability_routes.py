from datetime import date

from fastapi import APIRouter, Depends, Query
from sqlalchemy.orm import Session

from backend.core import config
from backend.core.exceptions import SpaDomainError
from backend.routes.common import domain_error, ensure_database_ready, get_db
from backend.services.availability import AvailabilityService, TimeSlot
from backend.services.sql_sources import SqlBookingSource, SqlScheduleConfigProvider

router = APIRouter(tags=['availability'])


def build_availability_service(db: Session) -> AvailabilityService:
    return AvailabilityService(SqlScheduleConfigProvider(db), SqlBookingSource(db))


@router.get('/slots', response_model=list[TimeSlot])
def list_available_slots(
    slot_date: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    try:
        return build_availability_service(db).get_available_slots(slot_date)
    except SpaDomainError as exc:
        raise domain_error(exc) from exc


@router.get('/dates', response_model=list[date])
def list_available_dates(
    start_date: date | None = Query(default=None),
    days: int = Query(default=config.AVAILABLE_DATES_DEFAULT_DAYS, ge=1, le=config.AVAILABLE_DATES_MAX_DAYS),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    today = date.today()
    try:
        return build_availability_service(db).get_available_dates(start_date or today, days, today=today)
    except SpaDomainError as exc:
        raise domain_error(exc) from exc
