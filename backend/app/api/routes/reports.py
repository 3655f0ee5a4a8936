"""
Report endpoints with Redis caching.
Cached entries are dropped whenever a reservation changes.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import Forbidden
from app.core.logging import get_logger
from app.core.security import Actor, get_current_actor, require_admin
from app.core.timeutils import as_utc
from app.db.session import get_db
from app.schemas.report import (
    OccupancyReportResponse,
    UserActivityReportResponse,
    UserActivityResponse,
)
from app.services.cache_service import get_cached_report, make_report_key, set_cached_report
from app.services.occupancy_service import SCOPE_USER, occupancy_report, user_activity_report

logger = get_logger(__name__)
router = APIRouter(prefix="/reports", tags=["Reports"])


def _ensure_can_view(actor: Actor, scope: str, scope_id: int) -> None:
    if actor.is_admin:
        return
    if scope == SCOPE_USER and scope_id == actor.user_id:
        return
    raise Forbidden("Only administrators can view this report", scope=scope, scope_id=scope_id)


@router.get("/occupancy", response_model=OccupancyReportResponse)
async def occupancy_report_endpoint(
    scope: str = Query(..., pattern="^(space|user|building)$"),
    scope_id: int = Query(...),
    start: datetime = Query(...),
    end: datetime = Query(...),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Occupancy for a space, a user or a whole building over [start, end].
    Space and building reports are admin-only; users may view their own.
    """
    _ensure_can_view(actor, scope, scope_id)
    start, end = as_utc(start), as_utc(end)

    key = make_report_key("occupancy", scope, scope_id, start.isoformat(), end.isoformat())
    cached = await get_cached_report(key)
    if cached:
        logger.info("occupancy_report_cache_hit", scope=scope, scope_id=scope_id)
        cached["cached"] = True
        return OccupancyReportResponse(**cached)

    report = await occupancy_report(db, scope, scope_id, start, end)
    response = OccupancyReportResponse.model_validate(report)
    await set_cached_report(key, response.model_dump(mode="json"))
    return response


@router.get("/users", response_model=UserActivityReportResponse)
async def user_activity_report_endpoint(
    start: datetime = Query(...),
    end: datetime = Query(...),
    user_id: Optional[int] = Query(None),
    actor: Actor = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Per-user reservation counts by status and booked hours. Admin only."""
    start, end = as_utc(start), as_utc(end)

    key = make_report_key("users", "user", user_id or "all", start.isoformat(), end.isoformat())
    cached = await get_cached_report(key)
    if cached:
        cached["cached"] = True
        return UserActivityReportResponse(**cached)

    activity = await user_activity_report(db, start, end, user_id=user_id)
    response = UserActivityReportResponse(
        period_start=start,
        period_end=end,
        users=[UserActivityResponse.model_validate(a) for a in activity],
    )
    await set_cached_report(key, response.model_dump(mode="json"))
    return response
