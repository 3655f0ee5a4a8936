"""
Building model. Owns floors and carries per-building booking settings.

`settings` shape:
    {
      "business_hours": {"monday": {"start": "08:00", "end": "18:00", "enabled": true}, ...},
      "booking_rules": {"max_concurrent_bookings": 3, "check_in_window_minutes": 15, ...},
      "amenities": []
    }
Any key may be missing; booking rules fall back to application defaults.
"""

from sqlalchemy import Boolean, Column, Integer, JSON, String, Text

from app.db.base import Base, TimestampMixin


class Building(Base, TimestampMixin):
    __tablename__ = "buildings"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False, index=True)
    address = Column(Text, nullable=False, default="")
    city = Column(String(100), nullable=False, default="", index=True)
    state = Column(String(100), nullable=False, default="")
    zip_code = Column(String(20), nullable=True)
    country = Column(String(100), nullable=False, default="Brasil")
    description = Column(Text, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    settings = Column(JSON, nullable=False, default=dict)

    def __repr__(self) -> str:
        return f"<Building(id={self.id}, name={self.name}, active={self.is_active})>"
