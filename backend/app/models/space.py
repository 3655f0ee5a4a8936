"""
Space model: a bookable desk, room or booth on a floor.

Key design decisions:
- `version` is the per-space concurrency token. Every booking write on the
  space bumps it with a compare-and-set, so two requests racing for the same
  space cannot both pass the conflict scan and insert.
- A space is only bookable when it, its floor and its building are active
  and `is_bookable` is set (see services.availability).
"""

from sqlalchemy import Boolean, CheckConstraint, Column, ForeignKey, Integer, String

from app.db.base import Base, TimestampMixin

SPACE_TYPES = ("desk", "meeting_room", "office", "phone_booth", "other")


class Space(Base, TimestampMixin):
    __tablename__ = "spaces"

    id = Column(Integer, primary_key=True, index=True)
    floor_id = Column(Integer, ForeignKey("floors.id"), nullable=False, index=True)
    name = Column(String(100), nullable=False)
    type = Column(String(20), nullable=False, default="desk")
    capacity = Column(Integer, nullable=False, default=1)
    is_active = Column(Boolean, nullable=False, default=True)
    is_bookable = Column(Boolean, nullable=False, default=True)

    # Optimistic locking token for the space's reservation set
    version = Column(Integer, nullable=False, default=1)

    __table_args__ = (
        CheckConstraint("capacity > 0", name="check_space_capacity_positive"),
        CheckConstraint(
            "type IN ('desk', 'meeting_room', 'office', 'phone_booth', 'other')",
            name="check_space_type",
        ),
    )

    def __repr__(self) -> str:
        return f"<Space(id={self.id}, name={self.name}, bookable={self.is_bookable})>"
