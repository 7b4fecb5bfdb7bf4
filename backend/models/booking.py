"""Booking model definitions."""

from datetime import datetime

from sqlalchemy import Column, Integer, String, Date, DateTime, ForeignKey
from backend.database import Base
from backend.models.client import Client  # noqa: F401  registers the referenced table


class Booking(Base):
    """Represents a booked spa session."""
    __tablename__ = "bookings"

    id = Column(Integer, primary_key=True)
    client_id = Column(String, ForeignKey("clients.id"), index=True)
    therapist_id = Column(String, ForeignKey("therapists.id"), nullable=True)
    room_id = Column(String, nullable=True)
    status = Column(String, default="scheduled")
    date = Column(Date, index=True)
    start_time = Column(String(5), nullable=True)
    end_time = Column(String(5), nullable=True)
    payment_status = Column(String, default="unpaid")
    payment_type = Column(String, nullable=True)
    internal_note = Column(String, nullable=True)
    source = Column(String, default="online")  # online/walkin
    created_at = Column(DateTime, default=datetime.now)
