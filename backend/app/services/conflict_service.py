"""
Conflict detection on a space's reservation set.

Overlap is half-open: [start, end) intervals that merely touch do not
conflict, so 10:00-11:00 and 11:00-12:00 can both be held on one space.
"""

from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.timeutils import Interval
from app.db.repository import Repository
from app.models.reservation import Reservation, ReservationStatus


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return Interval(a_start, a_end).overlaps(Interval(b_start, b_end))


async def find_conflict(
    db: AsyncSession,
    space_id: int,
    interval: Interval,
    exclude_reservation_id: Optional[int] = None,
) -> Optional[Reservation]:
    """First active reservation on the space overlapping `interval`, if any."""
    # end_time >= start narrows the scan via the (space_id, start, end) index;
    # the exact half-open test below decides
    candidates = await Repository(db, Reservation).find_by_range(
        "end_time",
        lower=interval.start,
        order_by="start_time",
        space_id=space_id,
        status=ReservationStatus.ACTIVE,
    )
    for reservation in candidates:
        if reservation.id == exclude_reservation_id:
            continue
        if reservation.interval.overlaps(interval):
            return reservation
    return None


async def find_blocking_reservations(
    db: AsyncSession,
    space_ids: Iterable[int],
    now: datetime,
) -> list[Reservation]:
    """Active reservations on any of the spaces that have not ended yet."""
    space_ids = list(space_ids)
    if not space_ids:
        return []
    candidates = await Repository(db, Reservation).find_by_range(
        "end_time",
        lower=now,
        space_id=space_ids,
        status=ReservationStatus.ACTIVE,
    )
    return [r for r in candidates if r.end_time > now]
