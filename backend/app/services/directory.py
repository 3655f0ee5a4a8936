"""
Directory lookups: spaces, floors and buildings as the booking core sees them.
"""

from dataclasses import dataclass

from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import NotFound
from app.db.repository import Repository
from app.models.building import Building
from app.models.floor import Floor
from app.models.space import Space


@dataclass(frozen=True)
class SpaceChain:
    """A space resolved together with the floor and building above it."""

    space: Space
    floor: Floor
    building: Building


async def get_space(db: AsyncSession, space_id: int, fresh: bool = False) -> Space:
    space = await Repository(db, Space).get(space_id, fresh=fresh)
    if not space:
        raise NotFound(f"Space {space_id} not found", space_id=space_id)
    return space


async def get_floor(db: AsyncSession, floor_id: int, fresh: bool = False) -> Floor:
    floor = await Repository(db, Floor).get(floor_id, fresh=fresh)
    if not floor:
        raise NotFound(f"Floor {floor_id} not found", floor_id=floor_id)
    return floor


async def get_building(db: AsyncSession, building_id: int, fresh: bool = False) -> Building:
    building = await Repository(db, Building).get(building_id, fresh=fresh)
    if not building:
        raise NotFound(f"Building {building_id} not found", building_id=building_id)
    return building


async def resolve_space_chain(db: AsyncSession, space_id: int, fresh: bool = False) -> SpaceChain:
    space = await get_space(db, space_id, fresh=fresh)
    floor = await get_floor(db, space.floor_id, fresh=fresh)
    building = await get_building(db, floor.building_id, fresh=fresh)
    return SpaceChain(space=space, floor=floor, building=building)


async def list_space_ids_for_floor(db: AsyncSession, floor_id: int) -> list[int]:
    spaces = await Repository(db, Space).find_by_equality(floor_id=floor_id)
    return [s.id for s in spaces]


async def list_space_ids_for_building(db: AsyncSession, building_id: int) -> list[int]:
    floors = await Repository(db, Floor).find_by_equality(building_id=building_id)
    if not floors:
        return []
    spaces = await Repository(db, Space).find_by_equality(floor_id=[f.id for f in floors])
    return [s.id for s in spaces]


async def list_bookable_spaces_for_building(db: AsyncSession, building_id: int) -> list[Space]:
    """Active, bookable spaces on the building's active floors."""
    floors = await Repository(db, Floor).find_by_equality(building_id=building_id, is_active=True)
    if not floors:
        return []
    return await Repository(db, Space).find_by_equality(
        order_by="id",
        floor_id=[f.id for f in floors],
        is_active=True,
        is_bookable=True,
    )
