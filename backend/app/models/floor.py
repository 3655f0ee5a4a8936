"""
Floor model. Belongs to a building and owns spaces.
"""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String, UniqueConstraint

from app.db.base import Base, TimestampMixin


class Floor(Base, TimestampMixin):
    __tablename__ = "floors"

    id = Column(Integer, primary_key=True, index=True)
    building_id = Column(Integer, ForeignKey("buildings.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    floor_number = Column(Integer, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)

    __table_args__ = (
        UniqueConstraint("building_id", "floor_number", name="uq_building_floor_number"),
    )

    def __repr__(self) -> str:
        return f"<Floor(id={self.id}, building={self.building_id}, number={self.floor_number})>"
