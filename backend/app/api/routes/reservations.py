"""
Reservation endpoints: booking, editing and the check-in lifecycle.
"""

from datetime import datetime
from typing import Optional

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.logging import get_logger
from app.core.security import Actor, get_current_actor
from app.db.session import get_db
from app.schemas.reservation import (
    ReservationActionResponse,
    ReservationCancel,
    ReservationCreate,
    ReservationListResponse,
    ReservationResponse,
    ReservationUpdate,
)
from app.services.cache_service import commit_and_invalidate
from app.services.reservation_service import (
    ReservationFilters,
    cancel_reservation,
    check_in,
    check_out,
    create_reservation,
    get_reservation,
    list_reservations,
    update_reservation,
)

logger = get_logger(__name__)
router = APIRouter(prefix="/reservations", tags=["Reservations"])


@router.post("/", response_model=ReservationResponse, status_code=status.HTTP_201_CREATED)
async def create_reservation_endpoint(
    reservation_data: ReservationCreate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """
    Reserve a space for the authenticated user.

    The conflict scan, quota scan and insert run as one unit guarded by the
    space's and the user's version tokens. A concurrent booking on the same
    space makes this request re-check from scratch, so at most one of two
    overlapping requests succeeds.
    """
    reservation = await create_reservation(db, actor, reservation_data)
    await commit_and_invalidate(db)
    return reservation


@router.get("/", response_model=ReservationListResponse)
async def list_reservations_endpoint(
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
    status_filter: Optional[str] = Query(None, alias="status"),
    space_id: Optional[int] = Query(None),
    user_id: Optional[int] = Query(None),
    start_from: Optional[datetime] = Query(None),
    start_to: Optional[datetime] = Query(None),
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """List reservations. Regular users only see their own."""
    filters = ReservationFilters(
        status=status_filter,
        space_id=space_id,
        user_id=user_id,
        start_from=start_from,
        start_to=start_to,
    )
    reservations, total = await list_reservations(db, actor, filters, page, page_size)
    return ReservationListResponse(
        reservations=[ReservationResponse.model_validate(r) for r in reservations],
        total=total,
        page=page,
        page_size=page_size,
    )


@router.get("/{reservation_id}", response_model=ReservationResponse)
async def get_reservation_endpoint(
    reservation_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    return await get_reservation(db, actor, reservation_id)


@router.patch("/{reservation_id}", response_model=ReservationResponse)
async def update_reservation_endpoint(
    reservation_id: int,
    patch: ReservationUpdate,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Edit a confirmed or checked-in reservation. A new interval is re-checked for conflicts and quota."""
    reservation = await update_reservation(db, actor, reservation_id, patch)
    await commit_and_invalidate(db)
    return reservation


@router.post("/{reservation_id}/cancel", response_model=ReservationActionResponse)
async def cancel_reservation_endpoint(
    reservation_id: int,
    body: Optional[ReservationCancel] = None,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Cancel a reservation and free its slot."""
    reservation = await cancel_reservation(
        db, actor, reservation_id, reason=body.reason if body else None
    )
    await commit_and_invalidate(db)
    return ReservationActionResponse(
        message="Reservation cancelled successfully",
        reservation_id=reservation.id,
        status=reservation.status,
    )


@router.post("/{reservation_id}/check-in", response_model=ReservationActionResponse)
async def check_in_endpoint(
    reservation_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    """Check in, from the building's check-in window before the start until the end."""
    reservation = await check_in(db, actor, reservation_id)
    await commit_and_invalidate(db)
    return ReservationActionResponse(
        message="Checked in successfully",
        reservation_id=reservation.id,
        status=reservation.status,
    )


@router.post("/{reservation_id}/check-out", response_model=ReservationActionResponse)
async def check_out_endpoint(
    reservation_id: int,
    actor: Actor = Depends(get_current_actor),
    db: AsyncSession = Depends(get_db),
):
    reservation = await check_out(db, actor, reservation_id)
    await commit_and_invalidate(db)
    return ReservationActionResponse(
        message="Checked out successfully",
        reservation_id=reservation.id,
        status=reservation.status,
    )
