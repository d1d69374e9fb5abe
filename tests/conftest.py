"""Pytest configuration and shared fixtures for all tests."""

import itertools
import os
from datetime import UTC, datetime

# Minimal environment for settings validation; tests run on in-memory SQLite
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("LOG_LEVEL", "DEBUG")
os.environ.setdefault("STORE_RETRY_BASE_DELAY", "0")

import pytest
import pytest_asyncio
from unittest.mock import AsyncMock, MagicMock

from app.config.database import create_engine, create_session_maker, init_models
from app.models.enums import PaymentStatus, TreeSide
from app.models.member import Member
from app.repositories.member_repository import MemberRepository
from app.services.binary.config import BinaryConfig
from app.services.binary.placement_orchestrator import PlacementOrchestrator


@pytest.fixture
def mock_session():
    """Mock AsyncSession for tests without a database."""
    session = AsyncMock()
    session.execute = AsyncMock()
    session.commit = AsyncMock()
    session.rollback = AsyncMock()
    session.close = AsyncMock()
    session.add = MagicMock()
    session.refresh = AsyncMock()
    return session


@pytest_asyncio.fixture
async def engine():
    """Fresh in-memory database with all tables."""
    engine = create_engine("sqlite+aiosqlite:///:memory:")
    await init_models(engine)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def session(engine):
    """Database session bound to the in-memory database."""
    session_maker = create_session_maker(engine)
    async with session_maker() as session:
        yield session


@pytest.fixture
def binary_config():
    """Default configuration without retry delays."""
    return BinaryConfig(store_retry_base_delay=0)


@pytest.fixture
def orchestrator(session, binary_config):
    """Placement orchestrator with default configuration."""
    return PlacementOrchestrator(session, binary_config)


@pytest.fixture
def member_factory(session):
    """
    Create registered (unplaced) members.

    Usage:
        member = await member_factory(sponsor_id=root.id)
    """
    counter = itertools.count(1)
    repo = MemberRepository(session)

    async def create(sponsor_id: int | None = None, **data) -> Member:
        n = next(counter)
        values = {
            "name": f"Member {n}",
            "email": f"member{n}@example.com",
            "referral_code": f"CODE{n:04d}",
            "sponsor_id": sponsor_id,
        }
        values.update(data)
        member = await repo.create(**values)
        await session.commit()
        return member

    return create


@pytest_asyncio.fixture
async def root(member_factory):
    """Active tree root."""
    return await member_factory(
        name="Company",
        depth=0,
        path="/",
        is_active=True,
        payment_status=PaymentStatus.APPROVED.value,
        placed_at=datetime.now(UTC),
    )


@pytest.fixture
def attach(session, member_factory):
    """
    Create a member already sitting at (parent, side) without propagation.

    Builds tree shapes directly for resolver and engine tests.
    """
    repo = MemberRepository(session)

    async def create(parent: Member, side: TreeSide, **data) -> Member:
        member = await member_factory(
            sponsor_id=parent.id,
            parent_id=parent.id,
            side=side.value,
            depth=parent.depth + 1,
            path=parent.subtree_path,
            is_active=True,
            placed_at=datetime.now(UTC),
            **data,
        )
        await repo.update(parent.id, **{f"{side.value}_child_id": member.id})
        await session.commit()
        return member

    return create


@pytest.fixture
def join(member_factory, orchestrator):
    """Register a member under a sponsor and place it."""

    async def create(sponsor: Member, **data) -> Member:
        member = await member_factory(sponsor_id=sponsor.id, **data)
        await orchestrator.place_member(member.id)
        return member

    return create


@pytest.fixture
def reload(session):
    """Re-read a member from the database."""
    repo = MemberRepository(session)

    async def fetch(member_id: int) -> Member:
        return await repo.refresh_by_id(member_id)

    return fetch
