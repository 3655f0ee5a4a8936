"""
Tests for reservation endpoints: booking, conflicts, quota, editing and cancel.
"""

import pytest
from httpx import AsyncClient
from sqlalchemy import select

from app.models import Reservation, ReservationStatus
from app.services import cache_service
from conftest import TestSessionLocal, future, headers_for, insert_reservation


def booking(space_id: int, start_hours: float, end_hours: float, **extra) -> dict:
    return {
        "space_id": space_id,
        "start_time": future(start_hours).isoformat(),
        "end_time": future(end_hours).isoformat(),
        **extra,
    }


@pytest.mark.asyncio
async def test_create_reservation(client: AsyncClient, auth_headers, test_user, space):
    response = await client.post(
        "/api/v1/reservations/",
        json=booking(space.id, 1, 2, title="  Sprint planning ", attendees_count=4),
        headers=auth_headers,
    )
    assert response.status_code == 201
    data = response.json()
    assert data["space_id"] == space.id
    assert data["user_id"] == test_user.id
    assert data["created_by"] == test_user.id
    assert data["status"] == "confirmed"
    assert data["title"] == "Sprint planning"
    assert data["attendees_count"] == 4


@pytest.mark.asyncio
async def test_create_reservation_defaults_title(client: AsyncClient, auth_headers, space):
    response = await client.post(
        "/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers
    )
    assert response.status_code == 201
    assert response.json()["title"] == "Reservation"


@pytest.mark.asyncio
async def test_create_reservation_unauthenticated(client: AsyncClient, space):
    response = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_overlapping_reservation_conflicts(client: AsyncClient, auth_headers, other_user, space):
    first = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 3), headers=auth_headers)
    assert first.status_code == 201

    second = await client.post(
        "/api/v1/reservations/", json=booking(space.id, 2, 4), headers=headers_for(other_user)
    )
    assert second.status_code == 409
    assert second.json()["code"] == "SCHEDULE_CONFLICT"


@pytest.mark.asyncio
async def test_adjacent_reservations_do_not_conflict(client: AsyncClient, auth_headers, other_user, space):
    first = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    second = await client.post(
        "/api/v1/reservations/", json=booking(space.id, 2, 3), headers=headers_for(other_user)
    )
    assert first.status_code == 201
    assert second.status_code == 201


@pytest.mark.asyncio
async def test_start_in_past_rejected(client: AsyncClient, auth_headers, space):
    response = await client.post(
        "/api/v1/reservations/", json=booking(space.id, -48, -47), headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_FAILED"


@pytest.mark.asyncio
async def test_start_after_end_rejected(client: AsyncClient, auth_headers, space):
    response = await client.post(
        "/api/v1/reservations/", json=booking(space.id, 3, 2), headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "VALIDATION_FAILED"


@pytest.mark.asyncio
async def test_missing_field_is_schema_error(client: AsyncClient, auth_headers, space):
    response = await client.post(
        "/api/v1/reservations/",
        json={"space_id": space.id, "start_time": future(1).isoformat()},
        headers=auth_headers,
    )
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_attendees_over_capacity_rejected(client: AsyncClient, auth_headers, space):
    response = await client.post(
        "/api/v1/reservations/",
        json=booking(space.id, 1, 2, attendees_count=space.capacity + 1),
        headers=auth_headers,
    )
    assert response.status_code == 400
    assert "capacity" in response.json()["detail"]


@pytest.mark.asyncio
async def test_unknown_space_not_found(client: AsyncClient, auth_headers, test_user):
    response = await client.post("/api/v1/reservations/", json=booking(9999, 1, 2), headers=auth_headers)
    assert response.status_code == 404
    assert response.json()["code"] == "NOT_FOUND"


@pytest.mark.asyncio
async def test_inactive_space_unavailable(client: AsyncClient, auth_headers, db_session, space):
    space.is_active = False
    await db_session.commit()

    response = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    assert response.status_code == 409
    assert response.json()["code"] == "SPACE_UNAVAILABLE"


@pytest.mark.asyncio
async def test_inactive_building_makes_space_unavailable(
    client: AsyncClient, auth_headers, db_session, building, space
):
    building.is_active = False
    await db_session.commit()

    response = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    assert response.status_code == 409
    assert "building" in response.json()["detail"]


@pytest.mark.asyncio
async def test_quota_allows_up_to_limit_and_rejects_next(
    client: AsyncClient, auth_headers, spaces, space
):
    """Three overlapping reservations on different spaces fill the default quota of 3."""
    for desk in spaces:
        response = await client.post(
            "/api/v1/reservations/", json=booking(desk.id, 1, 3), headers=auth_headers
        )
        assert response.status_code == 201

    overlapping = await client.post(
        "/api/v1/reservations/", json=booking(space.id, 2, 4), headers=auth_headers
    )
    assert overlapping.status_code == 409
    assert overlapping.json()["code"] == "QUOTA_EXCEEDED"

    # Adjacent still counts towards quota; a real gap does not
    adjacent = await client.post(
        "/api/v1/reservations/", json=booking(space.id, 3, 4), headers=auth_headers
    )
    assert adjacent.status_code == 409

    later = await client.post(
        "/api/v1/reservations/", json=booking(space.id, 5, 6), headers=auth_headers
    )
    assert later.status_code == 201


@pytest.mark.asyncio
async def test_cancelled_reservations_free_quota(client: AsyncClient, auth_headers, spaces, space):
    ids = []
    for desk in spaces:
        response = await client.post(
            "/api/v1/reservations/", json=booking(desk.id, 1, 3), headers=auth_headers
        )
        ids.append(response.json()["id"])

    await client.post(f"/api/v1/reservations/{ids[0]}/cancel", headers=auth_headers)

    response = await client.post(
        "/api/v1/reservations/", json=booking(space.id, 1, 3), headers=auth_headers
    )
    assert response.status_code == 201


@pytest.mark.asyncio
async def test_building_quota_setting_applies(
    client: AsyncClient, auth_headers, db_session, building, spaces
):
    building.settings = {"booking_rules": {"max_concurrent_bookings": 1}}
    await db_session.commit()

    first = await client.post("/api/v1/reservations/", json=booking(spaces[0].id, 1, 2), headers=auth_headers)
    second = await client.post("/api/v1/reservations/", json=booking(spaces[1].id, 1, 2), headers=auth_headers)
    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["code"] == "QUOTA_EXCEEDED"


@pytest.mark.asyncio
async def test_cancel_frees_slot(client: AsyncClient, auth_headers, other_user, space):
    created = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    reservation_id = created.json()["id"]

    cancelled = await client.post(
        f"/api/v1/reservations/{reservation_id}/cancel",
        json={"reason": "Meeting moved"},
        headers=auth_headers,
    )
    assert cancelled.status_code == 200
    assert cancelled.json()["status"] == "cancelled"

    rebooked = await client.post(
        "/api/v1/reservations/", json=booking(space.id, 1, 2), headers=headers_for(other_user)
    )
    assert rebooked.status_code == 201

    async with TestSessionLocal() as session:
        stored = await session.get(Reservation, reservation_id)
        assert stored.cancellation_reason == "Meeting moved"
        assert stored.cancelled_at is not None


@pytest.mark.asyncio
async def test_cancel_twice_rejected(client: AsyncClient, auth_headers, space):
    created = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    reservation_id = created.json()["id"]

    await client.post(f"/api/v1/reservations/{reservation_id}/cancel", headers=auth_headers)
    again = await client.post(f"/api/v1/reservations/{reservation_id}/cancel", headers=auth_headers)
    assert again.status_code == 400
    assert again.json()["code"] == "INVALID_STATE"


@pytest.mark.asyncio
async def test_cancel_someone_elses_reservation_forbidden(
    client: AsyncClient, auth_headers, other_user, admin_headers, space
):
    created = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    reservation_id = created.json()["id"]

    response = await client.post(
        f"/api/v1/reservations/{reservation_id}/cancel", headers=headers_for(other_user)
    )
    assert response.status_code == 403
    assert response.json()["code"] == "FORBIDDEN"

    # Admins may act on anyone's reservation
    response = await client.post(f"/api/v1/reservations/{reservation_id}/cancel", headers=admin_headers)
    assert response.status_code == 200


@pytest.mark.asyncio
async def test_get_reservation_access(client: AsyncClient, auth_headers, other_user, admin_headers, space):
    created = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    reservation_id = created.json()["id"]

    assert (await client.get(f"/api/v1/reservations/{reservation_id}", headers=auth_headers)).status_code == 200
    assert (await client.get(f"/api/v1/reservations/{reservation_id}", headers=admin_headers)).status_code == 200
    assert (
        await client.get(f"/api/v1/reservations/{reservation_id}", headers=headers_for(other_user))
    ).status_code == 403
    assert (await client.get("/api/v1/reservations/9999", headers=auth_headers)).status_code == 404


@pytest.mark.asyncio
async def test_list_reservations_scoped_to_user(
    client: AsyncClient, db_session, auth_headers, test_user, other_user, admin_headers, space
):
    await insert_reservation(db_session, space, test_user, future(1), future(2))
    await insert_reservation(db_session, space, other_user, future(3), future(4))
    await insert_reservation(
        db_session, space, test_user, future(5), future(6), status=ReservationStatus.CANCELLED
    )

    mine = (await client.get("/api/v1/reservations/", headers=auth_headers)).json()
    assert mine["total"] == 2
    assert {r["user_id"] for r in mine["reservations"]} == {test_user.id}
    # Newest start first
    assert mine["reservations"][0]["start_time"] > mine["reservations"][1]["start_time"]

    confirmed = await client.get(
        "/api/v1/reservations/", params={"status": "confirmed"}, headers=auth_headers
    )
    assert confirmed.json()["total"] == 1

    everyone = (await client.get("/api/v1/reservations/", headers=admin_headers)).json()
    assert everyone["total"] == 3

    filtered = await client.get(
        "/api/v1/reservations/", params={"user_id": other_user.id}, headers=admin_headers
    )
    assert filtered.json()["total"] == 1


@pytest.mark.asyncio
async def test_update_reservation_interval(client: AsyncClient, auth_headers, other_user, space):
    mine = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    await client.post(
        "/api/v1/reservations/", json=booking(space.id, 4, 5), headers=headers_for(other_user)
    )
    reservation_id = mine.json()["id"]

    # Extending into its own slot is fine: the reservation never conflicts with itself
    extended = await client.patch(
        f"/api/v1/reservations/{reservation_id}",
        json={"end_time": future(3).isoformat(), "title": "Longer"},
        headers=auth_headers,
    )
    assert extended.status_code == 200
    assert extended.json()["title"] == "Longer"

    clash = await client.patch(
        f"/api/v1/reservations/{reservation_id}",
        json={"start_time": future(3.5).isoformat(), "end_time": future(4.5).isoformat()},
        headers=auth_headers,
    )
    assert clash.status_code == 409
    assert clash.json()["code"] == "SCHEDULE_CONFLICT"

    unchanged = await client.get(f"/api/v1/reservations/{reservation_id}", headers=auth_headers)
    assert unchanged.json()["end_time"] == extended.json()["end_time"]


@pytest.mark.asyncio
async def test_update_into_full_quota_window_rejected(client: AsyncClient, auth_headers, spaces, space):
    """Moving a reservation is re-checked against the quota, excluding itself."""
    for desk in spaces:
        response = await client.post(
            "/api/v1/reservations/", json=booking(desk.id, 1, 3), headers=auth_headers
        )
        assert response.status_code == 201

    later = await client.post("/api/v1/reservations/", json=booking(space.id, 5, 6), headers=auth_headers)
    assert later.status_code == 201
    reservation_id = later.json()["id"]

    moved = await client.patch(
        f"/api/v1/reservations/{reservation_id}",
        json={"start_time": future(2).isoformat(), "end_time": future(4).isoformat()},
        headers=auth_headers,
    )
    assert moved.status_code == 409
    assert moved.json()["code"] == "QUOTA_EXCEEDED"

    stored = await client.get(f"/api/v1/reservations/{reservation_id}", headers=auth_headers)
    assert stored.json()["start_time"] == later.json()["start_time"]
    assert stored.json()["end_time"] == later.json()["end_time"]


@pytest.mark.asyncio
async def test_update_into_past_rejected(client: AsyncClient, auth_headers, space):
    created = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    response = await client.patch(
        f"/api/v1/reservations/{created.json()['id']}",
        json={"start_time": future(-48).isoformat()},
        headers=auth_headers,
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_update_cancelled_reservation_rejected(client: AsyncClient, auth_headers, space):
    created = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    reservation_id = created.json()["id"]
    await client.post(f"/api/v1/reservations/{reservation_id}/cancel", headers=auth_headers)

    response = await client.patch(
        f"/api/v1/reservations/{reservation_id}", json={"title": "Too late"}, headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "INVALID_STATE"


@pytest.mark.asyncio
async def test_failed_booking_leaves_no_row(client: AsyncClient, auth_headers, other_user, space):
    await client.post("/api/v1/reservations/", json=booking(space.id, 1, 3), headers=auth_headers)
    await client.post(
        "/api/v1/reservations/", json=booking(space.id, 2, 4), headers=headers_for(other_user)
    )

    async with TestSessionLocal() as session:
        rows = (await session.execute(select(Reservation).where(Reservation.space_id == space.id))).scalars().all()
    assert len(rows) == 1


@pytest.mark.asyncio
async def test_report_cache_dropped_only_after_commit(client: AsyncClient, auth_headers, space, monkeypatch):
    """By the time cached reports are dropped, the change is visible to every other session."""
    seen = []

    async def record_visible_rows():
        async with TestSessionLocal() as session:
            rows = (await session.execute(select(Reservation).where(Reservation.space_id == space.id))).scalars().all()
        seen.append([r.status for r in rows])

    monkeypatch.setattr(cache_service, "invalidate_report_cache", record_visible_rows)

    created = await client.post("/api/v1/reservations/", json=booking(space.id, 1, 2), headers=auth_headers)
    assert created.status_code == 201
    await client.post(f"/api/v1/reservations/{created.json()['id']}/cancel", headers=auth_headers)

    assert seen == [[ReservationStatus.CONFIRMED], [ReservationStatus.CANCELLED]]
