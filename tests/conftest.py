"""Shared pytest fixtures for feature access tests."""

from __future__ import annotations

from collections.abc import AsyncIterator, Callable
from pathlib import Path

import jwt
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import NullPool

from app.core import config
from app.core.database.base import Base
from app.core.database.engine import get_db
from app.core.limiter import limiter
from app.features.feature_access import models as feature_access_models  # noqa: F401
from app.features.users.models import Employee, User, UserRole
from app.main import app as fastapi_app


ADMIN_ID = "admin-1"
PARTNER_ID = "org-1"
OTHER_PARTNER_ID = "org-2"
EMPLOYEE_IDS = ("emp-1", "emp-2")
OTHER_EMPLOYEE_ID = "emp-9"


@pytest_asyncio.fixture()
async def engine(tmp_path: Path) -> AsyncIterator[AsyncEngine]:
    """File-backed SQLite database, fresh for every test."""

    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture()
def session_factory(engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)


@pytest_asyncio.fixture()
async def db(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncSession]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture()
async def directory(session_factory: async_sessionmaker[AsyncSession]) -> None:
    """Admin, two partners and their employees."""

    async with session_factory() as session:
        session.add_all([
            User(id=ADMIN_ID, email="admin@example.com", name="Admin", role=UserRole.ADMIN),
            User(id=PARTNER_ID, email="org1@example.com", name="Orthopädie Eins", role=UserRole.PARTNER),
            User(id=OTHER_PARTNER_ID, email="org2@example.com", name="Orthopädie Zwei", role=UserRole.PARTNER),
        ])
        await session.flush()
        session.add_all(
            [Employee(id=employee_id, partner_id=PARTNER_ID, name=employee_id) for employee_id in EMPLOYEE_IDS]
            + [Employee(id=OTHER_EMPLOYEE_ID, partner_id=OTHER_PARTNER_ID, name="other")]
        )
        await session.commit()


@pytest_asyncio.fixture()
async def async_client(session_factory: async_sessionmaker[AsyncSession]) -> AsyncIterator[AsyncClient]:
    """HTTPX async client bound to the app, using the test database."""

    async def _get_db() -> AsyncIterator[AsyncSession]:
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    fastapi_app.dependency_overrides[get_db] = _get_db
    limiter.reset()

    transport = ASGITransport(app=fastapi_app)
    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        yield client

    fastapi_app.dependency_overrides.clear()


def make_token(principal_id: str, role: str) -> str:
    return jwt.encode({"sub": principal_id, "role": role}, config.JWT_SECRET, algorithm=config.JWT_ALGORITHM)


@pytest.fixture()
def auth() -> Callable[[str, str], dict[str, str]]:
    """Build an Authorization header for a principal."""

    def _auth(principal_id: str, role: str) -> dict[str, str]:
        return {"Authorization": f"Bearer {make_token(principal_id, role)}"}

    return _auth
