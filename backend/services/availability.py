"""Appointment availability.

Turns therapist weekly schedules and the bookings of a single day into the
list of open start times shown on the public booking page.

All times are wall-clock ``HH:MM`` strings on one calendar day; arithmetic is
done in minutes since midnight. Weekdays use 0=Sunday .. 6=Saturday, the
numbering stored in schedule configuration.

Availability is optimistic: nothing is reserved between showing a slot and
creating the booking, so two clients can pick the same time.
"""

import logging
import re
from datetime import date, timedelta
from typing import Iterable, Protocol

from pydantic import BaseModel, Field, field_validator

from backend.core.exceptions import MalformedBookingTime

logger = logging.getLogger(__name__)

INACTIVE_BOOKING_STATUSES = frozenset({'cancelled', 'done'})

_TIME_PATTERN = re.compile(r'^(\d{1,2}):(\d{2})(?::\d{2})?$')


def time_to_minutes(value: str) -> int:
    match = _TIME_PATTERN.match(value.strip())
    if not match:
        raise ValueError(f'Invalid time {value!r}, expected HH:MM.')

    hours, minutes = int(match.group(1)), int(match.group(2))
    if minutes > 59 or hours > 24 or (hours == 24 and minutes != 0):
        raise ValueError(f'Invalid time {value!r}, expected HH:MM.')

    return hours * 60 + minutes


def minutes_to_time(minutes: int) -> str:
    return f'{minutes // 60:02d}:{minutes % 60:02d}'


def day_of_week(day: date) -> int:
    """Weekday of ``day`` with Sunday as 0."""
    return (day.weekday() + 1) % 7


class ScheduleSlot(BaseModel):
    day_of_week: int = Field(ge=0, le=6)
    start_time: str
    end_time: str

    @field_validator('start_time', 'end_time')
    @classmethod
    def normalize_time(cls, value: str) -> str:
        return minutes_to_time(time_to_minutes(value))


class TherapistSchedule(BaseModel):
    id: str
    enabled: bool = True
    schedule: list[ScheduleSlot] = Field(default_factory=list)


class ScheduleConfig(BaseModel):
    therapists: list[TherapistSchedule] = Field(default_factory=list)
    slot_duration_minutes: int = Field(gt=0)
    booking_buffer_minutes: int = Field(ge=0)


class BookingRecord(BaseModel):
    start_time: str | None = None
    end_time: str | None = None
    therapist_id: str | None = None
    status: str | None = None


class TimeSlot(BaseModel):
    time: str
    available_count: int


class ScheduleConfigProvider(Protocol):
    def get_schedule_config(self) -> ScheduleConfig:
        ...


class BookingSource(Protocol):
    def list_bookings_for_date(self, booking_date: date) -> list[BookingRecord]:
        ...


def generate_slots(start: str, end: str, duration: int, buffer: int) -> list[str]:
    """Candidate start times in the window ``start``-``end``.

    A slot fits when it ends at or before ``end``; consecutive slots are
    ``duration + buffer`` minutes apart. Inverted or too-short windows give
    an empty list.
    """
    step = duration + buffer
    if duration <= 0 or step <= 0:
        return []

    start_minutes = time_to_minutes(start)
    end_minutes = time_to_minutes(end)

    return [
        minutes_to_time(current)
        for current in range(start_minutes, end_minutes - duration + 1, step)
    ]


def _booking_minutes(value: str, booking: BookingRecord) -> int:
    try:
        return time_to_minutes(value)
    except ValueError as exc:
        raise MalformedBookingTime(
            f'Booking time {value!r} is not a valid HH:MM time '
            f'(therapist {booking.therapist_id or "unassigned"}).'
        ) from exc


def is_conflict_relevant(booking: BookingRecord) -> bool:
    if booking.status is None:
        return True
    return booking.status.strip().lower() not in INACTIVE_BOOKING_STATUSES


def candidate_slots_by_therapist(config: ScheduleConfig, target_date: date) -> dict[str, list[str]]:
    """Start times each enabled therapist offers on ``target_date``.

    Therapists without a window that weekday are left out; a therapist whose
    windows are all degenerate maps to an empty list. Each window contributes
    its own start times, so two windows offering the same time list it twice.
    """
    weekday = day_of_week(target_date)
    candidates: dict[str, list[str]] = {}

    for therapist in config.therapists:
        if not therapist.enabled:
            continue
        for window in therapist.schedule:
            if window.day_of_week != weekday:
                continue
            candidates.setdefault(therapist.id, []).extend(
                generate_slots(
                    window.start_time,
                    window.end_time,
                    config.slot_duration_minutes,
                    config.booking_buffer_minutes,
                )
            )

    return {therapist_id: sorted(slots) for therapist_id, slots in candidates.items()}


def busy_ranges_by_therapist(bookings: Iterable[BookingRecord], duration: int) -> dict[str, list[tuple[int, int]]]:
    """Occupied ``[start, end)`` minute ranges for each assigned therapist.

    A booking without an end time is taken to last the current global slot
    duration.
    """
    busy: dict[str, list[tuple[int, int]]] = {}

    for booking in bookings:
        if not booking.therapist_id or not booking.start_time:
            continue
        start = _booking_minutes(booking.start_time, booking)
        end = _booking_minutes(booking.end_time, booking) if booking.end_time else start + duration
        busy.setdefault(booking.therapist_id, []).append((start, end))

    return busy


def is_slot_occupied(slot_start: int, duration: int, busy_ranges: Iterable[tuple[int, int]]) -> bool:
    slot_end = slot_start + duration
    return any(slot_start < busy_end and slot_end > busy_start for busy_start, busy_end in busy_ranges)


def resolve_time_slots(
    candidates: dict[str, list[str]],
    bookings: list[BookingRecord],
    duration: int,
) -> list[TimeSlot]:
    busy = busy_ranges_by_therapist(bookings, duration)

    # Same clock time from different therapists merges into one entry.
    free_counts: dict[str, int] = {}
    for therapist_id, slots in candidates.items():
        therapist_busy = busy.get(therapist_id, [])
        for slot in slots:
            if not is_slot_occupied(time_to_minutes(slot), duration, therapist_busy):
                free_counts[slot] = free_counts.get(slot, 0) + 1

    # An unassigned booking takes one unit of capacity at its exact start time.
    for booking in bookings:
        if booking.therapist_id or not booking.start_time:
            continue
        slot = minutes_to_time(_booking_minutes(booking.start_time, booking))
        current = free_counts.get(slot)
        if current is not None and current > 0:
            free_counts[slot] = current - 1

    return [
        TimeSlot(time=slot, available_count=count)
        for slot, count in sorted(free_counts.items())
        if count > 0
    ]


def scan_available_dates(config: ScheduleConfig, start_date: date, days: int, today: date) -> list[date]:
    """Dates on which any enabled therapist works at all.

    Bookings are not considered; a date listed here can still turn out to be
    fully booked.
    """
    working_weekdays = {
        window.day_of_week
        for therapist in config.therapists
        if therapist.enabled
        for window in therapist.schedule
    }

    available: list[date] = []
    for offset in range(max(days, 0)):
        current = start_date + timedelta(days=offset)
        if current < today:
            continue
        if day_of_week(current) in working_weekdays:
            available.append(current)

    return available


class AvailabilityService:
    def __init__(self, config_provider: ScheduleConfigProvider, booking_source: BookingSource):
        self.config_provider = config_provider
        self.booking_source = booking_source

    def get_available_slots(self, target_date: date) -> list[TimeSlot]:
        config = self.config_provider.get_schedule_config()
        candidates = candidate_slots_by_therapist(config, target_date)

        if not candidates:
            logger.debug('No therapist scheduled on %s', target_date.isoformat())
            return []

        bookings = [
            booking
            for booking in self.booking_source.list_bookings_for_date(target_date)
            if is_conflict_relevant(booking)
        ]
        slots = resolve_time_slots(candidates, bookings, config.slot_duration_minutes)

        logger.debug(
            'Resolved %d open slots on %s from %d therapists and %d bookings',
            len(slots),
            target_date.isoformat(),
            len(candidates),
            len(bookings),
        )
        return slots

    def get_available_dates(self, start_date: date, days: int, today: date | None = None) -> list[date]:
        config = self.config_provider.get_schedule_config()
        return scan_available_dates(config, start_date, days, today or date.today())

    def is_time_available(self, target_date: date, start_time: str, therapist_id: str | None = None) -> bool:
        """Whether ``start_time`` can still be booked on ``target_date``.

        With ``therapist_id`` the time must be one of that therapist's own
        start times and must not overlap any of their bookings.
        """
        normalized = minutes_to_time(time_to_minutes(start_time))
        if therapist_id is None:
            return any(slot.time == normalized for slot in self.get_available_slots(target_date))

        config = self.config_provider.get_schedule_config()
        if normalized not in candidate_slots_by_therapist(config, target_date).get(therapist_id, []):
            return False

        bookings = [
            booking
            for booking in self.booking_source.list_bookings_for_date(target_date)
            if is_conflict_relevant(booking)
        ]
        busy = busy_ranges_by_therapist(bookings, config.slot_duration_minutes)
        return not is_slot_occupied(
            time_to_minutes(normalized),
            config.slot_duration_minutes,
            busy.get(therapist_id, []),
        )
