"""
Deactivation guard for spaces, floors and buildings.

A directory entry can only be switched off when none of the spaces under it
holds a confirmed or checked-in reservation that has not ended yet.

The guard and the switch run as one unit against the same per-space
version tokens the booking path claims: every affected space's `version`
is bumped with a compare-and-set, so a booking that raced past the scan
fails its own claim, retries, and then sees the space as unavailable.
"""

from datetime import datetime
from typing import Optional

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import get_settings
from app.core.exceptions import InvalidState
from app.core.logging import get_logger
from app.core.timeutils import as_utc, utcnow
from app.db.repository import VersionConflict, with_transaction
from app.models.space import Space
from app.services.conflict_service import find_blocking_reservations
from app.services.directory import (
    get_building,
    get_floor,
    get_space,
    list_space_ids_for_building,
    list_space_ids_for_floor,
)

logger = get_logger(__name__)
settings = get_settings()


async def _ensure_no_blocking(db: AsyncSession, entity: str, entity_id: int, space_ids: list[int], now: datetime) -> None:
    blocking = await find_blocking_reservations(db, space_ids, now)
    if blocking:
        logger.warning(
            "deactivation_blocked",
            entity=entity,
            entity_id=entity_id,
            blocking_reservations=len(blocking),
        )
        raise InvalidState(
            f"Cannot deactivate {entity} {entity_id}: "
            f"{len(blocking)} active or upcoming reservation(s) depend on it",
            entity=entity,
            entity_id=entity_id,
            blocking_reservation_ids=[r.id for r in blocking],
        )


async def ensure_space_can_be_deactivated(db: AsyncSession, space_id: int, now: Optional[datetime] = None) -> None:
    now = as_utc(now) if now else utcnow()
    await get_space(db, space_id)
    await _ensure_no_blocking(db, "space", space_id, [space_id], now)


async def ensure_floor_can_be_deactivated(db: AsyncSession, floor_id: int, now: Optional[datetime] = None) -> None:
    now = as_utc(now) if now else utcnow()
    await get_floor(db, floor_id)
    space_ids = await list_space_ids_for_floor(db, floor_id)
    await _ensure_no_blocking(db, "floor", floor_id, space_ids, now)


async def ensure_building_can_be_deactivated(db: AsyncSession, building_id: int, now: Optional[datetime] = None) -> None:
    now = as_utc(now) if now else utcnow()
    await get_building(db, building_id)
    space_ids = await list_space_ids_for_building(db, building_id)
    await _ensure_no_blocking(db, "building", building_id, space_ids, now)


async def _read_space_versions(db: AsyncSession, space_ids: list[int]) -> dict[int, int]:
    if not space_ids:
        return {}
    result = await db.execute(select(Space.id, Space.version).where(Space.id.in_(space_ids)))
    return {row.id: row.version for row in result}


async def _bump_space_versions(db: AsyncSession, versions: dict[int, int]) -> None:
    # Ascending id order matches the order concurrent deactivations claim in
    for space_id in sorted(versions):
        result = await db.execute(
            update(Space)
            .where(Space.id == space_id, Space.version == versions[space_id])
            .values(version=Space.version + 1)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount == 0:
            raise VersionConflict("Space", space_id)


async def _deactivate(
    db: AsyncSession,
    entity: str,
    entity_id: int,
    load,
    list_space_ids,
    now: datetime,
):
    async def attempt():
        target = await load(db, entity_id)
        space_ids = await list_space_ids(db, entity_id)
        versions = await _read_space_versions(db, space_ids)
        await _ensure_no_blocking(db, entity, entity_id, space_ids, now)
        await _bump_space_versions(db, versions)

        target.is_active = False
        await db.flush()
        await db.refresh(target)
        return target

    target = await with_transaction(
        db,
        attempt,
        operation=f"deactivate_{entity}",
        max_attempts=settings.BOOKING_MAX_RETRY_ATTEMPTS,
        entity_id=entity_id,
    )
    logger.info(f"{entity}_deactivated", entity_id=entity_id)
    return target


async def _single_space(db: AsyncSession, space_id: int) -> list[int]:
    return [space_id]


async def deactivate_space(db: AsyncSession, space_id: int, now: Optional[datetime] = None) -> Space:
    now = as_utc(now) if now else utcnow()
    return await _deactivate(db, "space", space_id, get_space, _single_space, now)


async def deactivate_floor(db: AsyncSession, floor_id: int, now: Optional[datetime] = None):
    now = as_utc(now) if now else utcnow()
    return await _deactivate(db, "floor", floor_id, get_floor, list_space_ids_for_floor, now)


async def deactivate_building(db: AsyncSession, building_id: int, now: Optional[datetime] = None):
    now = as_utc(now) if now else utcnow()
    return await _deactivate(db, "building", building_id, get_building, list_space_ids_for_building, now)
