"""
Immutable audit entry written when a reservation is checked in.
"""

from sqlalchemy import Column, ForeignKey, Integer, UniqueConstraint

from app.db.base import Base, UTCDateTime


class CheckInRecord(Base):
    __tablename__ = "check_ins"

    id = Column(Integer, primary_key=True, index=True)
    reservation_id = Column(Integer, ForeignKey("reservations.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    space_id = Column(Integer, ForeignKey("spaces.id"), nullable=False, index=True)
    checked_in_at = Column(UTCDateTime(), nullable=False)
    checked_in_by = Column(Integer, ForeignKey("users.id"), nullable=False)

    __table_args__ = (
        # One check-in per reservation, ever
        UniqueConstraint("reservation_id", name="uq_check_in_reservation"),
    )

    def __repr__(self) -> str:
        return f"<CheckInRecord(id={self.id}, reservation={self.reservation_id})>"
