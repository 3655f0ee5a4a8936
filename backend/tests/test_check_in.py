"""
Tests for the check-in / check-out lifecycle and its time window.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.core.exceptions import Forbidden, InvalidState, ReservationExpired, TooEarlyToCheckIn
from app.models import CheckInRecord, ReservationStatus
from app.services.reservation_service import cancel_reservation, check_in, check_out
from conftest import actor_for, future, insert_reservation


@pytest.mark.asyncio
async def test_check_in_sixteen_minutes_before_start_too_early(db_session, test_user, space):
    reservation = await insert_reservation(db_session, space, test_user, future(1), future(2))

    with pytest.raises(TooEarlyToCheckIn):
        await check_in(
            db_session, actor_for(test_user), reservation.id, now=future(1) - timedelta(minutes=16)
        )


@pytest.mark.asyncio
async def test_check_in_fourteen_minutes_before_start(db_session, test_user, space):
    reservation = await insert_reservation(db_session, space, test_user, future(1), future(2))
    now = future(1) - timedelta(minutes=14)

    checked_in = await check_in(db_session, actor_for(test_user), reservation.id, now=now)
    await db_session.commit()

    assert checked_in.status == ReservationStatus.CHECKED_IN
    assert checked_in.checked_in_by == test_user.id
    assert checked_in.checked_in_at == now

    records = (
        await db_session.execute(select(CheckInRecord).where(CheckInRecord.reservation_id == reservation.id))
    ).scalars().all()
    assert len(records) == 1
    assert records[0].space_id == space.id
    assert records[0].checked_in_at == now


@pytest.mark.asyncio
async def test_check_in_one_second_after_end_expired(db_session, test_user, space):
    reservation = await insert_reservation(db_session, space, test_user, future(1), future(2))

    with pytest.raises(ReservationExpired):
        await check_in(
            db_session, actor_for(test_user), reservation.id, now=future(2) + timedelta(seconds=1)
        )


@pytest.mark.asyncio
async def test_check_in_window_from_building_settings(db_session, test_user, building, space):
    building.settings = {"booking_rules": {"check_in_window_minutes": 30}}
    await db_session.commit()
    reservation = await insert_reservation(db_session, space, test_user, future(1), future(2))

    checked_in = await check_in(
        db_session, actor_for(test_user), reservation.id, now=future(1) - timedelta(minutes=25)
    )
    assert checked_in.status == ReservationStatus.CHECKED_IN


@pytest.mark.asyncio
async def test_check_in_someone_elses_reservation_forbidden(db_session, test_user, other_user, space):
    reservation = await insert_reservation(db_session, space, test_user, future(1), future(2))

    with pytest.raises(Forbidden):
        await check_in(db_session, actor_for(other_user), reservation.id, now=future(1))


@pytest.mark.asyncio
async def test_lifecycle_is_monotonic(db_session, test_user, space):
    start, end = future(1), future(2)
    reservation = await insert_reservation(db_session, space, test_user, start, end)
    actor = actor_for(test_user)
    midway = start + timedelta(minutes=30)

    with pytest.raises(InvalidState):
        await check_out(db_session, actor, reservation.id, now=start)

    await check_in(db_session, actor, reservation.id, now=start)
    with pytest.raises(InvalidState, match="already checked_in"):
        await check_in(db_session, actor, reservation.id, now=midway)

    completed = await check_out(db_session, actor, reservation.id, now=midway)
    assert completed.status == ReservationStatus.COMPLETED
    assert completed.checked_out_at == midway

    with pytest.raises(InvalidState):
        await cancel_reservation(db_session, actor, reservation.id, now=end)
    with pytest.raises(InvalidState):
        await check_in(db_session, actor, reservation.id, now=end)


@pytest.mark.asyncio
async def test_checked_in_reservation_can_be_cancelled(db_session, test_user, space):
    reservation = await insert_reservation(db_session, space, test_user, future(1), future(2))
    actor = actor_for(test_user)

    await check_in(db_session, actor, reservation.id, now=future(1))
    cancelled = await cancel_reservation(db_session, actor, reservation.id, reason="Left early", now=future(1.2))
    assert cancelled.status == ReservationStatus.CANCELLED
    assert cancelled.cancellation_reason == "Left early"
    assert cancelled.cancelled_by == test_user.id


@pytest.mark.asyncio
async def test_check_in_and_out_over_http(client: AsyncClient, db_session, auth_headers, test_user, space):
    now = datetime.now(timezone.utc)
    reservation = await insert_reservation(
        db_session, space, test_user, now + timedelta(minutes=10), now + timedelta(minutes=70)
    )

    response = await client.post(f"/api/v1/reservations/{reservation.id}/check-in", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "checked_in"

    again = await client.post(f"/api/v1/reservations/{reservation.id}/check-in", headers=auth_headers)
    assert again.status_code == 400
    assert again.json()["code"] == "INVALID_STATE"

    response = await client.post(f"/api/v1/reservations/{reservation.id}/check-out", headers=auth_headers)
    assert response.status_code == 200
    assert response.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_check_in_too_early_over_http(client: AsyncClient, db_session, auth_headers, test_user, space):
    reservation = await insert_reservation(db_session, space, test_user, future(1), future(2))

    response = await client.post(f"/api/v1/reservations/{reservation.id}/check-in", headers=auth_headers)
    assert response.status_code == 400
    assert response.json()["code"] == "TOO_EARLY_TO_CHECK_IN"
