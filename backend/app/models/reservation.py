"""
Reservation model: one user's hold on one space for a time interval.

Key design decisions:
- Never deleted; cancellation and completion are terminal statuses
- `version` is mapped as the ORM version_id_col, so every lifecycle UPDATE
  is a compare-and-set on the row (StaleDataError on concurrent change)
- CHECK start_time < end_time backs up the service-level validation
- Indexes cover the three access patterns: by space+status, by user+status,
  and by start_time range
"""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Index, Integer, String, Text

from app.core.timeutils import Interval
from app.db.base import Base, TimestampMixin, UTCDateTime


class ReservationStatus:
    CONFIRMED = "confirmed"
    CHECKED_IN = "checked_in"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    ALL = (CONFIRMED, CHECKED_IN, COMPLETED, CANCELLED)
    # Statuses that hold the space and count against quota
    ACTIVE = (CONFIRMED, CHECKED_IN)
    # Statuses that count as occupied time in reports
    OCCUPYING = (CONFIRMED, CHECKED_IN, COMPLETED)
    TERMINAL = (COMPLETED, CANCELLED)


class Reservation(Base, TimestampMixin):
    __tablename__ = "reservations"

    id = Column(Integer, primary_key=True, index=True)
    space_id = Column(Integer, ForeignKey("spaces.id"), nullable=False)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    start_time = Column(UTCDateTime(), nullable=False)
    end_time = Column(UTCDateTime(), nullable=False)
    title = Column(String(200), nullable=False, default="Reservation")
    description = Column(Text, nullable=True)
    attendees_count = Column(Integer, nullable=False, default=1)
    status = Column(String(20), nullable=False, default=ReservationStatus.CONFIRMED)

    # Audit trail
    created_by = Column(Integer, ForeignKey("users.id"), nullable=False)
    cancelled_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    cancelled_at = Column(UTCDateTime(), nullable=True)
    cancellation_reason = Column(Text, nullable=True)
    checked_in_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    checked_in_at = Column(UTCDateTime(), nullable=True)
    checked_out_by = Column(Integer, ForeignKey("users.id"), nullable=True)
    checked_out_at = Column(UTCDateTime(), nullable=True)

    version = Column(Integer, nullable=False, default=1)

    __mapper_args__ = {"version_id_col": version}

    __table_args__ = (
        CheckConstraint("start_time < end_time", name="check_reservation_interval"),
        CheckConstraint("attendees_count > 0", name="check_reservation_attendees_positive"),
        CheckConstraint(
            "status IN ('confirmed', 'checked_in', 'completed', 'cancelled')",
            name="check_reservation_status",
        ),
        Index("ix_reservations_space_status", "space_id", "status"),
        Index("ix_reservations_user_status", "user_id", "status"),
        Index("ix_reservations_start_time", "start_time"),
        Index("ix_reservations_space_window", "space_id", "start_time", "end_time"),
    )

    @property
    def is_active(self) -> bool:
        return self.status in ReservationStatus.ACTIVE

    @property
    def interval(self) -> Interval:
        return Interval(self.start_time, self.end_time)

    def __repr__(self) -> str:
        return (
            f"<Reservation(id={self.id}, space={self.space_id}, user={self.user_id}, "
            f"status={self.status})>"
        )
