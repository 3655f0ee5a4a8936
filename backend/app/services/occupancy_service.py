"""
Occupancy calculator: read-only aggregation of reserved hours over a period.

Counts reservations that are confirmed, checked in or completed and whose
start_time falls inside [period_start, period_end]. The rate is

    total_hours / (period_hours * capacity_units) * 100

where capacity_units is 1 for a single space or user, and the number of
bookable spaces for a building. A zero denominator yields a rate of 0.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import ValidationFailed
from app.core.timeutils import Interval, as_utc
from app.db.repository import Repository
from app.models.reservation import Reservation, ReservationStatus
from app.services.directory import get_building, get_space, list_bookable_spaces_for_building

SCOPE_SPACE = "space"
SCOPE_USER = "user"
SCOPE_BUILDING = "building"
SCOPES = (SCOPE_SPACE, SCOPE_USER, SCOPE_BUILDING)


@dataclass
class OccupancyStats:
    total_reservations: int
    total_hours: float
    occupancy_rate: float


@dataclass
class SpaceOccupancy:
    space_id: int
    space_name: str
    stats: OccupancyStats


@dataclass
class OccupancyReport:
    scope: str
    scope_id: int
    period_start: datetime
    period_end: datetime
    stats: OccupancyStats
    spaces: list[SpaceOccupancy] = field(default_factory=list)


@dataclass
class UserActivity:
    user_id: int
    total_reservations: int = 0
    confirmed_reservations: int = 0
    checked_in_reservations: int = 0
    completed_reservations: int = 0
    cancelled_reservations: int = 0
    total_hours: float = 0.0


def summarize(
    reservations: Iterable[Reservation],
    period_start: datetime,
    period_end: datetime,
    capacity_units: int = 1,
) -> OccupancyStats:
    reservations = list(reservations)
    total_hours = sum(Interval(r.start_time, r.end_time).hours for r in reservations)
    period_hours = Interval(period_start, period_end).hours
    denominator = period_hours * capacity_units

    rate = (total_hours / denominator * 100) if denominator > 0 else 0.0
    return OccupancyStats(
        total_reservations=len(reservations),
        total_hours=round(total_hours, 2),
        occupancy_rate=round(rate, 2),
    )


def _validate_period(period_start: datetime, period_end: datetime) -> tuple[datetime, datetime]:
    period_start, period_end = as_utc(period_start), as_utc(period_end)
    if period_end < period_start:
        raise ValidationFailed("Period end must not be before period start")
    return period_start, period_end


async def _occupying_reservations(
    db: AsyncSession,
    period_start: datetime,
    period_end: datetime,
    **filters,
) -> list[Reservation]:
    return await Repository(db, Reservation).find_by_range(
        "start_time",
        lower=period_start,
        upper=period_end,
        status=ReservationStatus.OCCUPYING,
        **filters,
    )


async def space_occupancy(
    db: AsyncSession, space_id: int, period_start: datetime, period_end: datetime
) -> OccupancyReport:
    period_start, period_end = _validate_period(period_start, period_end)
    await get_space(db, space_id)
    reservations = await _occupying_reservations(db, period_start, period_end, space_id=space_id)
    return OccupancyReport(
        scope=SCOPE_SPACE,
        scope_id=space_id,
        period_start=period_start,
        period_end=period_end,
        stats=summarize(reservations, period_start, period_end),
    )


async def user_occupancy(
    db: AsyncSession, user_id: int, period_start: datetime, period_end: datetime
) -> OccupancyReport:
    period_start, period_end = _validate_period(period_start, period_end)
    reservations = await _occupying_reservations(db, period_start, period_end, user_id=user_id)
    return OccupancyReport(
        scope=SCOPE_USER,
        scope_id=user_id,
        period_start=period_start,
        period_end=period_end,
        stats=summarize(reservations, period_start, period_end),
    )


async def building_occupancy(
    db: AsyncSession, building_id: int, period_start: datetime, period_end: datetime
) -> OccupancyReport:
    """Per-space breakdown over the building's bookable spaces, plus the aggregate."""
    period_start, period_end = _validate_period(period_start, period_end)
    await get_building(db, building_id)
    spaces = await list_bookable_spaces_for_building(db, building_id)

    reservations = []
    if spaces:
        reservations = await _occupying_reservations(
            db, period_start, period_end, space_id=[s.id for s in spaces]
        )

    by_space: dict[int, list[Reservation]] = {s.id: [] for s in spaces}
    for reservation in reservations:
        by_space[reservation.space_id].append(reservation)

    return OccupancyReport(
        scope=SCOPE_BUILDING,
        scope_id=building_id,
        period_start=period_start,
        period_end=period_end,
        stats=summarize(reservations, period_start, period_end, capacity_units=len(spaces)),
        spaces=[
            SpaceOccupancy(
                space_id=space.id,
                space_name=space.name,
                stats=summarize(by_space[space.id], period_start, period_end),
            )
            for space in spaces
        ],
    )


async def occupancy_report(
    db: AsyncSession,
    scope: str,
    scope_id: int,
    period_start: datetime,
    period_end: datetime,
) -> OccupancyReport:
    if scope == SCOPE_SPACE:
        return await space_occupancy(db, scope_id, period_start, period_end)
    if scope == SCOPE_USER:
        return await user_occupancy(db, scope_id, period_start, period_end)
    if scope == SCOPE_BUILDING:
        return await building_occupancy(db, scope_id, period_start, period_end)
    raise ValidationFailed(f"Unknown occupancy scope {scope!r}; expected one of {', '.join(SCOPES)}")


async def user_activity_report(
    db: AsyncSession,
    period_start: datetime,
    period_end: datetime,
    user_id: Optional[int] = None,
) -> list[UserActivity]:
    """Per-user counts by status (cancelled included) and booked hours."""
    period_start, period_end = _validate_period(period_start, period_end)
    filters = {"user_id": user_id} if user_id is not None else {}
    reservations = await Repository(db, Reservation).find_by_range(
        "start_time", lower=period_start, upper=period_end, **filters
    )

    activity: dict[int, UserActivity] = {}
    for reservation in reservations:
        entry = activity.setdefault(reservation.user_id, UserActivity(user_id=reservation.user_id))
        entry.total_reservations += 1
        counter = f"{reservation.status}_reservations"
        setattr(entry, counter, getattr(entry, counter) + 1)
        entry.total_hours += Interval(reservation.start_time, reservation.end_time).hours

    for entry in activity.values():
        entry.total_hours = round(entry.total_hours, 2)
    return sorted(activity.values(), key=lambda e: e.user_id)
