"""
Admin-only deactivation endpoints for the directory CRUD layer.
"""

from fastapi import APIRouter, Depends
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.security import Actor, require_admin
from app.db.session import get_db
from app.services.cache_service import commit_and_invalidate
from app.services.deactivation_service import (
    deactivate_building,
    deactivate_floor,
    deactivate_space,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/directory", tags=["Directory"])


class DeactivationResponse(BaseModel):
    message: str
    entity: str
    entity_id: int
    is_active: bool


@router.post("/spaces/{space_id}/deactivate", response_model=DeactivationResponse)
async def deactivate_space_endpoint(
    space_id: int,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Switch a space off. Refused while it has current or upcoming reservations."""
    space = await deactivate_space(db, space_id)
    await commit_and_invalidate(db)
    return DeactivationResponse(
        message="Space deactivated", entity="space", entity_id=space.id, is_active=space.is_active
    )


@router.post("/floors/{floor_id}/deactivate", response_model=DeactivationResponse)
async def deactivate_floor_endpoint(
    floor_id: int,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    floor = await deactivate_floor(db, floor_id)
    await commit_and_invalidate(db)
    return DeactivationResponse(
        message="Floor deactivated", entity="floor", entity_id=floor.id, is_active=floor.is_active
    )


@router.post("/buildings/{building_id}/deactivate", response_model=DeactivationResponse)
async def deactivate_building_endpoint(
    building_id: int,
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    building = await deactivate_building(db, building_id)
    await commit_and_invalidate(db)
    return DeactivationResponse(
        message="Building deactivated",
        entity="building",
        entity_id=building.id,
        is_active=building.is_active,
    )
