"""Global booking settings, stored as a single row."""

from sqlalchemy import Column, Integer
from backend.database import Base

SETTINGS_ROW_ID = 1


class SpaSettings(Base):
    __tablename__ = "spa_settings"

    id = Column(Integer, primary_key=True, default=SETTINGS_ROW_ID)
    slot_duration_minutes = Column(Integer)
    booking_buffer_minutes = Column(Integer)
