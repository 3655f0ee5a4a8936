"""
Pytest fixtures for test database, client, and authentication.

Runs against a throwaway SQLite file (aiosqlite) so several sessions can
race on the same rows, with tables created and dropped around each test.
Redis is disabled; report endpoints fall through to the database.
"""

import os
import tempfile
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import AsyncGenerator, Optional

TEST_DB_PATH = Path(tempfile.gettempdir()) / "space_reservations_test.db"
TEST_DATABASE_URL = f"sqlite+aiosqlite:///{TEST_DB_PATH}"

# Must be set before the app reads its settings
os.environ["DATABASE_URL"] = TEST_DATABASE_URL
os.environ["REDIS_ENABLED"] = "false"
os.environ["ENVIRONMENT"] = "test"

import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker
from sqlalchemy.pool import NullPool

from app.main import app
from app.db.base import Base
from app.db.session import get_db
from app.core.security import ROLE_ADMIN, ROLE_USER, Actor, create_access_token
from app.models import Building, Floor, Reservation, ReservationStatus, Space, User

# One connection per session; `timeout` is SQLite's busy wait for the write lock
test_engine = create_async_engine(
    TEST_DATABASE_URL,
    echo=False,
    poolclass=NullPool,
    connect_args={"timeout": 30},
)
TestSessionLocal = async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


def future(hours: float = 0, days: int = 1) -> datetime:
    """A whole-hour instant `days` from now, offset by `hours`."""
    base = datetime.now(timezone.utc).replace(minute=0, second=0, microsecond=0)
    return base + timedelta(days=days, hours=hours)


@pytest_asyncio.fixture(scope="function")
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """Create tables, yield session, then drop tables for isolation."""
    async with test_engine.begin() as conn:
        # Leftovers from an interrupted run
        await conn.run_sync(Base.metadata.drop_all)
        await conn.run_sync(Base.metadata.create_all)

    async with TestSessionLocal() as session:
        yield session

    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)


@pytest_asyncio.fixture(scope="function")
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose requests each get their own session, like get_db."""

    async def override_get_db():
        async with TestSessionLocal() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


async def _persist(db_session: AsyncSession, instance):
    db_session.add(instance)
    await db_session.commit()
    await db_session.refresh(instance)
    return instance


@pytest_asyncio.fixture
async def test_user(db_session: AsyncSession) -> User:
    return await _persist(db_session, User(name="Test User", email="test@example.com", role=ROLE_USER))


@pytest_asyncio.fixture
async def other_user(db_session: AsyncSession) -> User:
    return await _persist(db_session, User(name="Other User", email="other@example.com", role=ROLE_USER))


@pytest_asyncio.fixture
async def admin_user(db_session: AsyncSession) -> User:
    return await _persist(db_session, User(name="Admin", email="admin@example.com", role=ROLE_ADMIN))


@pytest_asyncio.fixture
async def building(db_session: AsyncSession) -> Building:
    return await _persist(
        db_session,
        Building(name="HQ", address="Av. Paulista, 1000", city="Sao Paulo", state="SP", settings={}),
    )


@pytest_asyncio.fixture
async def floor(db_session: AsyncSession, building: Building) -> Floor:
    return await _persist(db_session, Floor(building_id=building.id, name="Ground", floor_number=0))


@pytest_asyncio.fixture
async def space(db_session: AsyncSession, floor: Floor) -> Space:
    return await _persist(
        db_session, Space(floor_id=floor.id, name="Room A", type="meeting_room", capacity=6)
    )


@pytest_asyncio.fixture
async def spaces(db_session: AsyncSession, floor: Floor) -> list[Space]:
    """Three desks on the same floor, for quota scenarios."""
    return [
        await _persist(db_session, Space(floor_id=floor.id, name=f"Desk {n}", type="desk", capacity=1))
        for n in range(1, 4)
    ]


def headers_for(user: User) -> dict:
    token = create_access_token(data={"sub": str(user.id), "role": user.role})
    return {"Authorization": f"Bearer {token}"}


def actor_for(user: User) -> Actor:
    return Actor(user_id=user.id, role=user.role)


@pytest_asyncio.fixture
async def auth_headers(test_user: User) -> dict:
    """Authorization headers with Bearer token."""
    return headers_for(test_user)


@pytest_asyncio.fixture
async def admin_headers(admin_user: User) -> dict:
    return headers_for(admin_user)


async def insert_reservation(
    db_session: AsyncSession,
    space: Space,
    user: User,
    start: datetime,
    end: datetime,
    status: str = ReservationStatus.CONFIRMED,
    title: Optional[str] = "Seeded",
) -> Reservation:
    """Write a reservation straight to the table, skipping the booking checks."""
    return await _persist(
        db_session,
        Reservation(
            space_id=space.id,
            user_id=user.id,
            start_time=start,
            end_time=end,
            title=title,
            status=status,
            created_by=user.id,
        ),
    )
