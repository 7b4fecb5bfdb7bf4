"""Client model definitions."""

from datetime import datetime
from uuid import uuid4

from sqlalchemy import Boolean, Column, DateTime, String
from backend.database import Base


def new_client_id() -> str:
    return uuid4().hex


class Client(Base):
    """Represents a spa guest who can hold bookings."""
    __tablename__ = "clients"

    id = Column(String, primary_key=True, default=new_client_id)
    full_name = Column(String, nullable=False)
    email = Column(String, nullable=True)
    contact_method = Column(String, nullable=False)  # e.g. whatsapp/phone/email
    contact_value = Column(String, nullable=False, index=True)
    gender = Column(String, nullable=True)
    consent_privacy = Column(Boolean, default=True)
    consent_promotions = Column(Boolean, default=False)
    created_at = Column(DateTime, default=datetime.now)
