"""Therapist and weekly schedule model definitions."""

from sqlalchemy import Column, Integer, String, Boolean, ForeignKey
from backend.database import Base


class Therapist(Base):
    """A therapist who can be booked."""
    __tablename__ = "therapists"

    id = Column(String, primary_key=True)
    name = Column(String)
    enabled = Column(Boolean, default=True)


class TherapistScheduleEntry(Base):
    """One weekly working window. day_of_week: 0=Sunday .. 6=Saturday."""
    __tablename__ = "therapist_schedule_entries"

    id = Column(Integer, primary_key=True)
    therapist_id = Column(String, ForeignKey("therapists.id"), index=True)
    day_of_week = Column(Integer)
    start_time = Column(String(5))  # "10:00"
    end_time = Column(String(5))
