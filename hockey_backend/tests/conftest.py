"""
Shared pytest configuration for backend tests.

Uses an in-memory SQLite database (aiosqlite) shared through a StaticPool,
so every test gets a fresh schema without an external server.
"""

from datetime import datetime

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from hockey_backend.database.db import Base
from hockey_backend.database.models import (
    Match,
    MatchStatus,
    Player,
    PlayerSettings,
    User,
    UserSettings,
)
from hockey_backend.services import settings_service
from hockey_backend.services.demo_notification_store import DemoNotificationStore

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a fresh in-memory database engine for each test."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    async with engine.begin() as conn:
        # Ensure models are imported so Base.metadata includes all tables
        from hockey_backend.database import models  # noqa: F401

        await conn.run_sync(Base.metadata.create_all)

    # Code opening its own sessions (app lifespan) uses the test engine too
    from hockey_backend.database import db

    original_async_session_local = db.AsyncSessionLocal
    db.AsyncSessionLocal = async_sessionmaker(
        engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autocommit=False,
        autoflush=False,
    )

    yield engine

    db.AsyncSessionLocal = original_async_session_local
    await engine.dispose()


@pytest_asyncio.fixture
async def db_session(test_engine):
    """Database session with the same options the application uses."""
    async_session_maker = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )
    async with async_session_maker() as session:
        yield session
        await session.rollback()


@pytest.fixture(autouse=True)
def no_demo_mode_env(monkeypatch):
    """Tests start with demo mode off and no Redis settings cache."""
    monkeypatch.delenv("DEMO_MODE", raising=False)
    monkeypatch.setattr(settings_service, "REDIS_HOST", None)


@pytest.fixture
def demo_store():
    return DemoNotificationStore()


@pytest.fixture
def demo_mode(monkeypatch):
    """Turn on demo mode through the environment fallback."""
    monkeypatch.setenv("DEMO_MODE", "true")


# ---------------------------------------------------------------------------
# Data helpers
# ---------------------------------------------------------------------------


async def create_user(session, email="owner@example.com", full_name="Account Owner", **settings):
    user = User(email=email, full_name=full_name)
    session.add(user)
    await session.flush()
    if settings:
        session.add(UserSettings(user_id=user.id, **settings))
        await session.flush()
    return user


async def create_player(
    session,
    full_name,
    user=None,
    phone_number=None,
    primary_position=None,
    secondary_position=None,
    **settings,
):
    player = Player(
        full_name=full_name,
        phone_number=phone_number,
        primary_position=primary_position,
        secondary_position=secondary_position,
        user_id=user.id if user is not None else None,
    )
    session.add(player)
    await session.flush()
    if settings:
        session.add(PlayerSettings(player_id=player.id, **settings))
        await session.flush()
    return player


async def create_match(
    session, max_players=4, match_mode=None, status=MatchStatus.SCHEDULED, **kwargs
):
    match = Match(
        scheduled_at=kwargs.pop("scheduled_at", datetime(2030, 1, 15, 18, 30)),
        max_players=max_players,
        match_mode=match_mode,
        status=status,
        location=kwargs.pop("location", "Winter Stadium"),
        **kwargs,
    )
    session.add(match)
    await session.flush()
    return match
