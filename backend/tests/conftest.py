"""
Pytest fixtures for test database, client, and authentication.

Each test gets a fresh SQLite file database (or TEST_DATABASE_URL when set,
e.g. a PostgreSQL test database) with all tables created.

Data is created through short-lived sessions that are committed and closed
immediately: the application opens its own transaction per ledger/RSVP
step, and an idle open transaction in a fixture would block those writers.
"""

import os

os.environ.setdefault("REDIS_ENABLED", "false")
os.environ.setdefault("ENVIRONMENT", "test")

from datetime import datetime, timezone, timedelta
from typing import AsyncGenerator, Optional

import pytest
import pytest_asyncio
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.main import app
from app.core.config import Settings
from app.core.security import create_access_token
from app.db.base import Base
from app.db.session import build_engine, build_session_factory, get_db, get_session_factory
from app.models.user import User
from app.schemas.event import ActivityCreate, EventCreate
from app.schemas.track import TrackCreate, TrackGroupCreate
from app.services import event_service
from app.services.admission_service import AdmissionOrchestrator
from app.services.ledger_service import SqlCapacityLedger

COMPLETE_PROFILE = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "phone_number": "+44 20 7946 0000",
    "t_shirt_size": "M",
    "dietary_restrictions": "none",
    "accessibility_needs": "none",
}


@pytest_asyncio.fixture(scope="function")
async def session_factory(tmp_path) -> AsyncGenerator[async_sessionmaker[AsyncSession], None]:
    """Create tables, yield a session factory, then drop tables for isolation."""
    url = os.environ.get("TEST_DATABASE_URL") or f"sqlite+aiosqlite:///{tmp_path / 'test.db'}"
    engine = build_engine(url)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield build_session_factory(engine)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def client(session_factory) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client whose DB dependencies point at the test database."""

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_session_factory] = lambda: session_factory

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()


@pytest.fixture
def fast_settings() -> Settings:
    """Settings with no retry backoff so failure tests run instantly."""
    return Settings(
        REDIS_ENABLED=False,
        ADMISSION_MAX_RETRIES=3,
        ADMISSION_RETRY_MIN_WAIT=0,
        ADMISSION_RETRY_MAX_WAIT=0,
        NOTIFY_TIMEOUT=0.2,
    )


@pytest.fixture
def ledger(session_factory) -> SqlCapacityLedger:
    return SqlCapacityLedger(session_factory)


@pytest.fixture
def orchestrator(session_factory, fast_settings) -> AdmissionOrchestrator:
    return AdmissionOrchestrator(session_factory, settings=fast_settings)


# ---------------------------------------------------------------------------
# Data factories
# ---------------------------------------------------------------------------

@pytest.fixture
def make_user(session_factory):
    counter = {"n": 0}

    async def _make_user(complete: bool = True, **overrides) -> str:
        counter["n"] += 1
        fields = dict(COMPLETE_PROFILE) if complete else {"first_name": "Incomplete"}
        fields["email"] = f"user{counter['n']}@example.com"
        fields.update(overrides)
        async with session_factory() as session:
            user = User(**fields)
            session.add(user)
            await session.commit()
            return user.id

    return _make_user


@pytest.fixture
def make_event(session_factory):
    async def _make_event(capacity: Optional[int] = None, title: str = "Community Day", **kwargs) -> str:
        async with session_factory() as session:
            event = await event_service.create_event(
                session,
                EventCreate(
                    title=title,
                    starts_at=datetime.now(timezone.utc) + timedelta(days=30),
                    capacity=capacity,
                    **kwargs,
                ),
            )
            await session.commit()
            return event.id

    return _make_event


@pytest.fixture
def make_group(session_factory):
    async def _make_group(event_id: str, name: str = "Morning", exclusive: bool = True) -> str:
        async with session_factory() as session:
            group = await event_service.create_track_group(
                session, event_id, TrackGroupCreate(name=name, is_mutually_exclusive=exclusive)
            )
            await session.commit()
            return group.id

    return _make_group


@pytest.fixture
def make_track(session_factory):
    async def _make_track(
        event_id: str,
        name: str = "Track",
        capacity: Optional[int] = None,
        group_id: Optional[str] = None,
        display_order: int = 0,
    ) -> str:
        async with session_factory() as session:
            track = await event_service.create_track(
                session,
                event_id,
                TrackCreate(name=name, capacity=capacity, group_id=group_id, display_order=display_order),
            )
            await session.commit()
            return track.id

    return _make_track


@pytest.fixture
def make_activity(session_factory):
    async def _make_activity(event_id: str, title: str = "Keynote") -> str:
        async with session_factory() as session:
            activity = await event_service.create_activity(session, event_id, ActivityCreate(title=title))
            await session.commit()
            return activity.id

    return _make_activity


@pytest_asyncio.fixture
async def user_id(make_user) -> str:
    """A user with a complete profile."""
    return await make_user()


@pytest_asyncio.fixture
async def incomplete_user_id(make_user) -> str:
    """A user missing phone number, T-shirt size and other profile fields."""
    return await make_user(complete=False)


@pytest_asyncio.fixture
async def tracked_event(make_event, make_group, make_track) -> dict:
    """
    Event (capacity 50) with an exclusive "Morning" group holding
    Workshop A (capacity 1) and Workshop B (capacity 10), plus an ungrouped
    unlimited Networking track.
    """
    event_id = await make_event(capacity=50, title="Workshop Day")
    group_id = await make_group(event_id, "Morning", exclusive=True)
    track_a = await make_track(event_id, "Workshop A", capacity=1, group_id=group_id, display_order=1)
    track_b = await make_track(event_id, "Workshop B", capacity=10, group_id=group_id, display_order=2)
    networking = await make_track(event_id, "Networking", capacity=None, display_order=3)
    return {
        "event_id": event_id,
        "group_id": group_id,
        "track_a": track_a,
        "track_b": track_b,
        "networking": networking,
    }


# ---------------------------------------------------------------------------
# Authentication
# ---------------------------------------------------------------------------

def _bearer(user_id: str) -> dict:
    return {"Authorization": f"Bearer {create_access_token(data={'sub': user_id})}"}


@pytest.fixture
def headers_for():
    """Build Authorization headers with a Bearer token for any user id."""
    return _bearer


@pytest.fixture
def auth_headers(user_id: str) -> dict:
    return _bearer(user_id)
