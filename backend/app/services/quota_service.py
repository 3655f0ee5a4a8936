"""
Per-user quota: how many of a user's active reservations touch an interval.

Bounds are inclusive here (start <= candidate_end and end >= candidate_start),
so a reservation ending exactly when the candidate starts still counts.
"""

from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import QuotaExceeded
from app.core.logging import get_logger
from app.core.timeutils import Interval
from app.db.repository import Repository
from app.models.reservation import Reservation, ReservationStatus

logger = get_logger(__name__)


async def count_overlapping(
    db: AsyncSession,
    user_id: int,
    interval: Interval,
    exclude_reservation_id: Optional[int] = None,
) -> int:
    candidates = await Repository(db, Reservation).find_by_range(
        "start_time",
        upper=interval.end,
        user_id=user_id,
        status=ReservationStatus.ACTIVE,
    )
    return sum(
        1
        for r in candidates
        if r.id != exclude_reservation_id and r.interval.touches(interval)
    )


async def enforce_quota(
    db: AsyncSession,
    user_id: int,
    interval: Interval,
    limit: int,
    exclude_reservation_id: Optional[int] = None,
) -> None:
    held = await count_overlapping(db, user_id, interval, exclude_reservation_id)
    if held >= limit:
        logger.warning(
            "reservation_quota_exceeded",
            user_id=user_id,
            held=held,
            limit=limit,
            start=interval.start.isoformat(),
            end=interval.end.isoformat(),
        )
        raise QuotaExceeded(
            f"You already hold {held} overlapping active reservations. Limit: {limit}",
            user_id=user_id,
            held=held,
            limit=limit,
        )
