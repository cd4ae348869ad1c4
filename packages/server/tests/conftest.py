"""
Shared fixtures: an in-memory SQLite database behind the real app and a
seeded organisation of teams, members and admins.
"""

from __future__ import annotations

import os

os.environ.setdefault("TICKETDESK_SECRET_KEY", "test-secret-key-0123456789abcdef")
os.environ.setdefault("TICKETDESK_BCRYPT_ROUNDS", "4")
os.environ.setdefault("TICKETDESK_DATABASE_URL", "sqlite+aiosqlite://")
os.environ.setdefault("TICKETDESK_LOG_FORMAT", "console")

from types import SimpleNamespace  # noqa: E402
from unittest.mock import AsyncMock, patch  # noqa: E402

import pytest  # noqa: E402
from httpx import ASGITransport, AsyncClient  # noqa: E402
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine  # noqa: E402
from sqlalchemy.orm import sessionmaker  # noqa: E402
from sqlalchemy.pool import StaticPool  # noqa: E402
from sqlmodel import SQLModel  # noqa: E402

import app.models  # noqa: E402,F401
from app.core.database import get_session  # noqa: E402
from app.main import app as fastapi_app  # noqa: E402

from .factories import make_account, make_team  # noqa: E402


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------


@pytest.fixture
async def engine():
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(SQLModel.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    """A session for seeding and inspecting rows outside the request cycle."""
    async with session_factory() as session:
        yield session


@pytest.fixture(autouse=True)
def no_revocations():
    """Token revocation lives in Redis; treat every token as live."""
    with patch("app.core.auth.is_jwt_revoked", AsyncMock(return_value=False)) as mock:
        yield mock


@pytest.fixture
async def client(session_factory):
    async def _get_session():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_session] = _get_session
    async with AsyncClient(transport=ASGITransport(app=fastapi_app), base_url="http://test") as ac:
        yield ac
    fastapi_app.dependency_overrides.clear()


@pytest.fixture
async def org(db):
    """Two teams with their logins, members and admins.

    ``platform`` is managed by ``admin``; ``infra`` by ``other_admin``.
    """
    root = await make_account(db, "super_admin", "root@desk.example.com")
    admin = await make_account(db, "admin", "admin@desk.example.com")
    other_admin = await make_account(db, "admin", "other-admin@desk.example.com")

    platform = await make_team(db, "Platform", admin_id=admin.id)
    infra = await make_team(db, "Infra", admin_id=other_admin.id)

    platform_lead = await make_account(db, "team", "platform@teams.example.com", team_id=platform.id)
    infra_lead = await make_account(db, "team", "infra@teams.example.com", team_id=infra.id)

    alice = await make_account(db, "user", "alice@desk.example.com", team_id=platform.id)
    bob = await make_account(db, "user", "bob@desk.example.com", team_id=platform.id)
    carol = await make_account(db, "user", "carol@desk.example.com", team_id=infra.id)

    return SimpleNamespace(
        root=root,
        admin=admin,
        other_admin=other_admin,
        platform=platform,
        infra=infra,
        platform_lead=platform_lead,
        infra_lead=infra_lead,
        alice=alice,
        bob=bob,
        carol=carol,
    )
